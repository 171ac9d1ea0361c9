"""Tests for lensbundler.repair."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from lensbundler.encoding import to_base64_utf8
from lensbundler.failsafe import placeholder_payload, placeholder_script
from lensbundler.models import LensMetadata
from lensbundler.repair import (
    ContentShape,
    RepairInfeasible,
    classify_content,
    is_repairable,
    repair_descriptor,
    synchronize_content,
)
from lensbundler.validators import validate_minimal
from tests._fixtures.lens_builder import OMIT, decode_payload, lens_record

SCRIPT = "function enhance(epi) { return epi; }\n"
NOW = datetime(2025, 3, 4, 5, 6, 7, 890000, tzinfo=UTC)

MALFORMED = [
    (OMIT, ContentShape.MISSING),
    (None, ContentShape.NULL),
    ("not-an-array", ContentShape.SCALAR_STRING),
    ({"contentType": "text/plain", "title": "kept"}, ContentShape.SINGLE_OBJECT),
    ([], ContentShape.EMPTY_SEQUENCE),
    ([{}], ContentShape.SEQUENCE_OF_EMPTY_OBJECT),
    ([{"contentType": "application/javascript"}], ContentShape.SEQUENCE_MISSING_DATA),
]


@pytest.mark.parametrize(("content", "shape"), MALFORMED)
def test_classify_content_tags_every_malformed_shape(content: object, shape: ContentShape) -> None:
    assert classify_content(lens_record("lens", content=content)) is shape


def test_classify_content_tags_valid_and_other() -> None:
    assert classify_content(lens_record("lens")) is ContentShape.VALID
    assert classify_content(lens_record("lens", content=42)) is ContentShape.OTHER


@pytest.mark.parametrize(("content", "shape"), MALFORMED)
def test_every_malformed_shape_normalises_to_a_valid_descriptor(content: object, shape: ContentShape) -> None:
    record = lens_record("lens", content=content)

    repaired = synchronize_content(record, SCRIPT, touch_date=False)

    assert validate_minimal(repaired).is_valid
    first = repaired["content"][0]
    assert first["contentType"] == "application/javascript"
    assert decode_payload(first["data"]) == SCRIPT


def test_single_object_keeps_its_other_fields() -> None:
    record = lens_record("lens", content={"contentType": "text/plain", "title": "kept"})

    repaired = synchronize_content(record, SCRIPT)

    assert repaired["content"] == [
        {"contentType": "application/javascript", "title": "kept", "data": to_base64_utf8(SCRIPT)}
    ]


def test_sequence_missing_data_keeps_trailing_items() -> None:
    record = lens_record("lens", content=[{"contentType": "x"}, {"title": "second"}])

    repaired = synchronize_content(record, SCRIPT)

    assert repaired["content"][1] == {"title": "second"}


def test_valid_content_only_replaces_data() -> None:
    record = lens_record(
        "lens",
        content=[{"contentType": "text/javascript", "data": "b2xk", "language": "en"}, {"title": "extra"}],
    )

    updated = synchronize_content(record, SCRIPT, now=NOW)

    assert updated["content"] == [
        {"contentType": "text/javascript", "data": to_base64_utf8(SCRIPT), "language": "en"},
        {"title": "extra"},
    ]
    assert updated["date"] == "2025-03-04T05:06:07.890Z"


def test_synchronize_preserves_unknown_fields_and_input() -> None:
    record = lens_record("lens", customField={"nested": [1, 2]}, publisher="Someone")
    original = lens_record("lens", customField={"nested": [1, 2]}, publisher="Someone")

    updated = synchronize_content(record, SCRIPT, touch_date=False)

    assert record == original
    assert updated["customField"] == {"nested": [1, 2]}
    assert updated["publisher"] == "Someone"
    assert updated["date"] == record["date"]
    assert {key for key in updated if updated[key] != record.get(key)} == {"content"}


def test_synchronize_is_idempotent() -> None:
    record = lens_record("lens", content=None)

    once = synchronize_content(record, SCRIPT, now=NOW)
    twice = synchronize_content(once, SCRIPT, now=NOW)

    assert once == twice


def test_synchronize_without_text_embeds_placeholder() -> None:
    repaired = synchronize_content(lens_record("lens", content=[]), touch_date=False)

    assert repaired["content"][0]["data"] == placeholder_payload()
    assert "Not Enhancing" in placeholder_script()


def test_synchronize_without_existing_builds_library() -> None:
    record = synchronize_content(None, SCRIPT, metadata=LensMetadata(name="My Lens"), now=NOW)

    assert record["resourceType"] == "Library"
    assert record["id"] == "my-lens"
    assert record["date"] == "2025-03-04T05:06:07.890Z"
    assert record["content"] == [{"contentType": "application/javascript", "data": to_base64_utf8(SCRIPT)}]


def test_is_repairable_requires_content_to_be_the_only_problem() -> None:
    assert is_repairable(lens_record("lens", content=OMIT))
    assert not is_repairable(lens_record("lens"))
    assert not is_repairable(lens_record("lens", content=OMIT, url=None))
    assert not is_repairable(lens_record("lens", content=42))
    assert not is_repairable("lens")


def test_repair_descriptor_rejects_unrepairable_records() -> None:
    record = lens_record("lens", content=OMIT, status=None)

    with pytest.raises(RepairInfeasible) as excinfo:
        repair_descriptor(record, SCRIPT)

    assert "status is required and must be a string" in excinfo.value.errors


def test_repair_descriptor_keeps_date_by_default() -> None:
    record = lens_record("lens", content=[{}])

    repaired = repair_descriptor(record, SCRIPT)

    assert repaired["date"] == record["date"]
    assert validate_minimal(repaired).is_valid
