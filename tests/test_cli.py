"""CLI behaviour tests."""

from __future__ import annotations

import json

import pytest

from lensbundler import cli
from lensbundler.cli import _build_parser, main
from lensbundler.orchestrator import Orchestrator
from tests._fixtures.lens_builder import OMIT, STORED_SCRIPT, LensBuilder, enhance_script


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "batch-bundle"])
    assert args.verbose is True
    assert args.command == "batch-bundle"
    assert args.directory == "."


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["lslens", "-v"])
    assert args.verbose is True
    assert args.validate is False


def test_cli_lslens_uses_capital_v_for_validation() -> None:
    args = _build_parser().parse_args(["lslens", "lenses", "-V", "-e", "a", "-e", "b"])
    assert args.validate is True
    assert args.exclude == ["a", "b"]


def test_cli_batch_upload_flags() -> None:
    args = _build_parser().parse_args(["batch-upload", "dir", "-d", "https://x", "-t", "-s", "-f"])
    assert (args.domain, args.skip_date, args.skip_valid, args.force) == ("https://x", True, True, True)


def test_cli_batch_bundle_skip_date_defaults_to_config() -> None:
    args = _build_parser().parse_args(["batch-bundle"])
    assert args.skip_date is None


def test_bundle_then_check_succeeds(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.script("lens.js")

    main(["bundle", "lens.js", "-n", "lens", "-d"])
    main(["check", "lens.js"])

    out = capsys.readouterr().out
    assert "Bundle created at lens.json" in out
    assert "OK: Integrity check passed" in out


def test_check_mismatch_exits_one(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.lens("lens.json")
    lens_builder.script("lens.js", enhance_script("changed"))

    with pytest.raises(SystemExit) as excinfo:
        main(["check", "lens.js"])

    assert excinfo.value.code == 1
    assert "Content mismatch" in capsys.readouterr().out


def test_check_quiet_prints_nothing(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.script("lens.js")

    with pytest.raises(SystemExit) as excinfo:
        main(["check", "lens.js", "-q"])

    assert excinfo.value.code == 1
    assert capsys.readouterr().out == ""


def test_bundle_usage_error_exits_one(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.script("lens.js")

    with pytest.raises(SystemExit) as excinfo:
        main(["bundle", "lens.js", "-p", "-n", "x"])

    assert excinfo.value.code == 1
    assert "incompatible" in capsys.readouterr().err


def test_batch_check_json_output(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.lens("good.json")
    lens_builder.script("good.js", STORED_SCRIPT)
    lens_builder.lens("bad.json")
    lens_builder.script("bad.js")

    with pytest.raises(SystemExit) as excinfo:
        main(["batch-check", ".", "-j"])

    assert excinfo.value.code == 1
    payload = json.loads(capsys.readouterr().out)
    assert (payload["total"], payload["passed"], payload["failed"]) == (2, 1, 1)
    assert [row["jsFile"] for row in payload["results"]] == ["bad.js", "good.js"]


def test_batch_check_summary_line(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.lens("good.json")
    lens_builder.script("good.js", STORED_SCRIPT)

    main(["batch-check", "-q"])

    assert "Total: 1 | Passed: 1 | Failed: 0" in capsys.readouterr().out


def test_lslens_plain_and_json(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.lens("lens.json")
    lens_builder.lens("empty.json", content=OMIT, status=None)

    main(["lslens"])
    plain = capsys.readouterr().out.splitlines()
    main(["lslens", "-a", "-j", "-V"])
    listed = json.loads(capsys.readouterr().out)

    assert [line.rsplit("/", 1)[-1] for line in plain] == ["lens.json"]
    assert [item["name"] for item in listed] == ["empty", "lens"]
    assert listed[0]["validation"]["isValid"] is False


def test_lslens_report_and_empty(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())

    main(["lslens"])
    assert capsys.readouterr().out.strip() == "No lenses found."

    lens_builder.lens("lens.json")
    main(["lslens", "-r"])
    out = capsys.readouterr().out
    assert "Valid: Yes" in out
    assert "Required for Full Validation:" in out
    assert "Total lenses found: 1" in out


def test_lsenhancejs_details(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())

    main(["lsenhancejs"])
    assert "No valid enhance JavaScript files found." in capsys.readouterr().out

    lens_builder.lens("lens.json")
    lens_builder.script("lens.js")
    lens_builder.script("spare.js")
    main(["lsenhancejs", "-d", "-j"])
    payload = json.loads(capsys.readouterr().out)
    assert [item["type"] for item in payload] == ["exact", "fallback"]


def test_batch_bundle_prints_summary(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.lens("lens.json")
    lens_builder.script("lens.js", enhance_script("batched"))

    main(["batch-bundle", "--skip-date"])

    out = capsys.readouterr().out
    assert "Updated: 1" in out
    assert "Errors: 0" in out
    assert "batched" in lens_builder.payload("lens.json")
    assert lens_builder.read("lens.json")["date"] == "2024-01-01T00:00:00.000Z"


def test_new_command_uses_template(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    monkeypatch.setattr(
        cli,
        "Orchestrator",
        lambda: Orchestrator(template_fetcher=lambda url, timeout: enhance_script("template")),
    )

    main(["new", "demo", "--usage", "Demo usage"])

    out = capsys.readouterr().out
    assert "Created demo.js" in out
    assert "Created demo.json" in out
    assert lens_builder.read("demo.json")["usage"] == "Demo usage"

    with pytest.raises(SystemExit) as excinfo:
        main(["new", "demo"])
    assert excinfo.value.code == 1


def test_upload_without_domain_exits_one(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.lens("lens.json")

    with pytest.raises(SystemExit) as excinfo:
        main(["upload", "lens.json"])

    assert excinfo.value.code == 1
    assert "domain is required" in capsys.readouterr().err


@pytest.mark.parametrize(
    "argv",
    [
        ["lslens", ".", "-e", "["],
        ["lsenhancejs", ".", "-e", "("],
        ["batch-bundle", ".", "-e", "("],
        ["batch-check", ".", "-e", "("],
        ["batch-upload", ".", "-d", "https://fhir.example.org", "-e", "("],
    ],
)
def test_invalid_exclude_pattern_exits_one(
    argv: list[str],
    lens_builder: LensBuilder,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.lens("lens.json")

    with pytest.raises(SystemExit) as excinfo:
        main(argv)

    assert excinfo.value.code == 1
    assert "Invalid exclusion pattern" in capsys.readouterr().err


def test_upload_invalid_descriptor_exits_one(
    lens_builder: LensBuilder, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.chdir(lens_builder.path())
    lens_builder.lens("lens.json", url=None)

    with pytest.raises(SystemExit) as excinfo:
        main(["upload", "lens.json", "-d", "https://fhir.example.org"])

    assert excinfo.value.code == 1
    assert "Invalid lens.json: url is required" in capsys.readouterr().err
