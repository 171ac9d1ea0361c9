"""Tests for lensbundler.integrity."""

from __future__ import annotations

from pathlib import Path

import pytest

from lensbundler.encoding import UnsupportedEncodingError, to_base64_utf8
from lensbundler.integrity import IntegrityMismatch, IntegrityReason, check_integrity
from tests._fixtures.lens_builder import LensBuilder, enhance_script

UNICODE_SCRIPT = "function enhance(epi) {\r\n  return 'naïve ✓ 😀';\n}\n"


def _bundle(lens_builder: LensBuilder, name: str, text: str) -> Path:
    return lens_builder.lens(
        f"{name}.json",
        content=[{"contentType": "application/javascript", "data": to_base64_utf8(text)}],
    )


def test_matching_pair_passes(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("lens.js", UNICODE_SCRIPT)
    bundle = _bundle(lens_builder, "lens", UNICODE_SCRIPT)

    result = check_integrity(script, bundle)

    assert result.passed
    assert result.reason is None
    assert result.name == "lens"
    assert result.version == "1.0.0"
    result.raise_for_failure()


def test_utf16le_script_passes_with_explicit_charset(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("lens.js", UNICODE_SCRIPT, encoding="utf-16-le", bom=True)
    bundle = _bundle(lens_builder, "lens", UNICODE_SCRIPT)

    assert check_integrity(script, bundle, "utf-16le").passed


def test_wrong_explicit_charset_reports_mismatch(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("lens.js", UNICODE_SCRIPT, encoding="utf-16-le")
    bundle = _bundle(lens_builder, "lens", UNICODE_SCRIPT)

    result = check_integrity(script, bundle, "latin1")

    assert not result.passed
    assert result.reason is IntegrityReason.MISMATCH
    with pytest.raises(IntegrityMismatch) as excinfo:
        result.raise_for_failure()
    assert "out of sync" in str(excinfo.value)


def test_modified_script_reports_mismatch(lens_builder: LensBuilder) -> None:
    bundle = _bundle(lens_builder, "lens", enhance_script("before"))
    script = lens_builder.script("lens.js", enhance_script("after"))

    assert check_integrity(script, bundle).reason is IntegrityReason.MISMATCH


@pytest.mark.parametrize(
    ("descriptor", "reason"),
    [
        ("{broken", IntegrityReason.PARSE_ERROR),
        ('{"resourceType": "Bundle"}', IntegrityReason.WRONG_RESOURCE_TYPE),
        ('["Library"]', IntegrityReason.WRONG_RESOURCE_TYPE),
        ('{"resourceType": "Library", "content": []}', IntegrityReason.NO_CONTENT_DATA),
        ('{"resourceType": "Library", "content": [{"data": 7}]}', IntegrityReason.NO_CONTENT_DATA),
    ],
)
def test_descriptor_failures(lens_builder: LensBuilder, descriptor: str, reason: IntegrityReason) -> None:
    script = lens_builder.script("lens.js")
    bundle = lens_builder.write_text("lens.json", descriptor)

    result = check_integrity(script, bundle)

    assert not result.passed
    assert result.reason is reason


def test_missing_files_are_reported(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("lens.js")

    assert check_integrity(lens_builder.path("gone.js"), script).reason is IntegrityReason.SOURCE_MISSING
    assert check_integrity(script, lens_builder.path("gone.json")).reason is IntegrityReason.DESCRIPTOR_MISSING


def test_unsupported_charset_raises(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("lens.js")

    with pytest.raises(UnsupportedEncodingError):
        check_integrity(script, lens_builder.path("lens.json"), "klingon")


def test_to_dict_uses_relative_paths(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("lens.js")
    result = check_integrity(script, lens_builder.path("lens.json"))

    assert result.to_dict(lens_builder.path().resolve()) == {
        "jsFile": "lens.js",
        "bundleFile": "lens.json",
        "passed": False,
        "error": "Bundle file not found",
    }
