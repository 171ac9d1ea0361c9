"""Tests for lensbundler.config."""

from __future__ import annotations

from pathlib import Path

import pytest

from lensbundler.config import ConfigError, LensBundlerConfig, load_config


def test_load_config_returns_defaults_when_missing(tmp_path: Path) -> None:
    config = load_config(tmp_path)

    assert isinstance(config, LensBundlerConfig)
    assert config.root == tmp_path.resolve()
    assert config.exclude == []
    assert config.source_encoding is None
    assert config.skip_date is False
    assert config.fhir.domain is None
    assert config.metadata.as_overrides() == {
        "publisher": None,
        "copyright": None,
        "url": None,
        "status": None,
        "version": None,
    }


def test_load_config_parses_expected_fields(tmp_path: Path) -> None:
    config_file = tmp_path / ".lensbundler.yml"
    config_file.write_text(
        """
exclude:
  - "\\\\.draft\\\\.json$"
  - "^archive$"
source_encoding: utf-16-le
skip_date: "yes"
fhir:
  domain: https://fhir.example.org/fhir
  timeout: "12.5"
metadata:
  publisher: Example Team
  copyright: (c) Example
  version: 2
""",
        encoding="utf-8",
    )

    config = load_config(config_file)

    assert config.exclude == ["\\.draft\\.json$", "^archive$"]
    assert config.source_encoding == "utf-16-le"
    assert config.skip_date is True
    assert config.fhir.domain == "https://fhir.example.org/fhir"
    assert config.fhir.timeout == 12.5
    assert config.metadata.publisher == "Example Team"
    assert config.metadata.copyright == "(c) Example"
    assert config.metadata.version == "2"


def test_load_config_accepts_single_exclude_string(tmp_path: Path) -> None:
    (tmp_path / ".lensbundler.yml").write_text("exclude: '^vendor$'\n", encoding="utf-8")

    assert load_config(tmp_path).exclude == ["^vendor$"]


def test_load_config_empty_file_yields_defaults(tmp_path: Path) -> None:
    (tmp_path / ".lensbundler.yml").write_text("\n", encoding="utf-8")

    assert load_config(tmp_path).exclude == []


def test_load_config_rejects_non_mapping(tmp_path: Path) -> None:
    (tmp_path / ".lensbundler.yml").write_text("- a\n- b\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_load_config_wraps_yaml_errors(tmp_path: Path) -> None:
    (tmp_path / ".lensbundler.yml").write_text("exclude: [unterminated\n", encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)

    assert ".lensbundler.yml" in str(excinfo.value)


@pytest.mark.parametrize(
    ("body", "needle"),
    [
        ("exclude: ['(unclosed']\n", "Invalid exclude pattern"),
        ("exclude: {a: b}\n", "'exclude'"),
        ("source_encoding: not-a-codec\n", "source_encoding"),
        ("skip_date: sometimes\n", "'skip_date'"),
        ("fhir: https://fhir.example.org\n", "'fhir'"),
        ("fhir:\n  domain: fhir.example.org\n", "fhir.domain"),
        ("fhir:\n  timeout: 0\n", "fhir.timeout"),
        ("fhir:\n  timeout: soon\n", "fhir.timeout"),
    ],
)
def test_load_config_rejects_invalid_values(tmp_path: Path, body: str, needle: str) -> None:
    (tmp_path / ".lensbundler.yml").write_text(body, encoding="utf-8")

    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)

    assert needle in str(excinfo.value)


def test_load_config_reads_file_next_to_given_path(tmp_path: Path) -> None:
    (tmp_path / ".lensbundler.yml").write_text("skip_date: off\nmetadata:\n  status: draft\n", encoding="utf-8")

    config = load_config(tmp_path / "lens.js")

    assert config.skip_date is False
    assert config.metadata.status == "draft"
