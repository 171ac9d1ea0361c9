"""Tests for descriptor persistence."""

from __future__ import annotations

from pathlib import Path

import pytest

from lensbundler.stores import DescriptorParseError, load_descriptor, write_descriptor


def test_write_descriptor_uses_two_space_indent_and_keeps_non_ascii(tmp_path: Path) -> None:
    path = write_descriptor(tmp_path / "nested" / "lens.json", {"name": "lëns", "content": [{"data": "YQ=="}]})

    text = path.read_text(encoding="utf-8")

    assert text.startswith('{\n  "name": "lëns"')
    assert load_descriptor(path) == {"name": "lëns", "content": [{"data": "YQ=="}]}


def test_load_descriptor_tolerates_utf8_bom(tmp_path: Path) -> None:
    path = tmp_path / "lens.json"
    path.write_bytes(b"\xef\xbb\xbf{\"name\": \"lens\"}")

    assert load_descriptor(path) == {"name": "lens"}


def test_load_descriptor_returns_non_object_documents(tmp_path: Path) -> None:
    path = tmp_path / "list.json"
    path.write_text("[1, 2]", encoding="utf-8")

    assert load_descriptor(path) == [1, 2]


@pytest.mark.parametrize("raw", [b"{not json", b"\xff\xfe{}"])
def test_load_descriptor_wraps_parse_failures(tmp_path: Path, raw: bytes) -> None:
    path = tmp_path / "broken.json"
    path.write_bytes(raw)

    with pytest.raises(DescriptorParseError) as excinfo:
        load_descriptor(path)

    assert excinfo.value.path == path


def test_load_descriptor_missing_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_descriptor(tmp_path / "missing.json")
