"""Tests for descriptor/script pairing."""

from __future__ import annotations

from pathlib import Path

import pytest

from lensbundler.analyzers import build_pairing_index, resolve_source
from lensbundler.analyzers.pairing import EXACT_MATCH, FALLBACK
from lensbundler.encoding import UnsupportedEncodingError
from tests._fixtures.lens_builder import LensBuilder


def test_index_keeps_only_scripts_with_enhance(lens_builder: LensBuilder) -> None:
    lens = lens_builder.script("lens.js")
    helper = lens_builder.script("helper.js", "export const util = 1;\n")

    index = build_pairing_index([lens, helper])

    assert index.exact == {lens.with_suffix(".json"): lens}
    assert index.fallback == {lens.parent: [lens]}
    assert index.sources() == [lens]


def test_exact_match_wins_regardless_of_scan_order(lens_builder: LensBuilder) -> None:
    first = lens_builder.script("a.js")
    second = lens_builder.script("b.js")
    descriptor = lens_builder.path("b.json")

    for order in ([first, second], [second, first]):
        resolution = resolve_source(descriptor, build_pairing_index(order))
        assert resolution is not None
        assert resolution.path == second
        assert resolution.source == EXACT_MATCH


def test_fallback_uses_first_candidate_and_warns_on_ambiguity(
    lens_builder: LensBuilder, caplog: pytest.LogCaptureFixture
) -> None:
    first = lens_builder.script("a.js")
    second = lens_builder.script("b.js")
    index = build_pairing_index([first, second])

    with caplog.at_level("WARNING", logger="lensbundler.pairing"):
        resolution = resolve_source(lens_builder.path("other.json"), index)

    assert resolution is not None
    assert resolution.path == first
    assert resolution.source == FALLBACK
    assert "Ambiguous script for other.json" in caplog.text


def test_fallback_never_crosses_directories(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("one/lens.js")
    index = build_pairing_index([script])

    assert resolve_source(lens_builder.path("two/lens.json"), index) is None


def test_descriptors_for_lists_exact_targets(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("lens.js")
    index = build_pairing_index([script])

    assert index.descriptors_for(script) == [lens_builder.path("lens.json")]


def test_unreadable_scripts_are_skipped(lens_builder: LensBuilder) -> None:
    present = lens_builder.script("lens.js")

    index = build_pairing_index([lens_builder.path("gone.js"), present])

    assert index.sources() == [present]


def test_explicit_charset_decodes_utf16_scripts(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("lens.js", encoding="utf-16-le")

    index = build_pairing_index([script], charset="utf-16le")

    assert index.sources() == [script]


def test_unsupported_charset_is_fatal(lens_builder: LensBuilder) -> None:
    script = lens_builder.script("lens.js")

    with pytest.raises(UnsupportedEncodingError):
        build_pairing_index([script], charset="nope")
