"""CLI parser and entrypoint behaviour tests."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from ctxpack.cli import _build_parser, _pack_overrides, main
from tests._fixtures.repo_builder import RepoBuilder


def test_cli_accepts_verbose_before_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["--verbose", "pack"])
    assert args.verbose is True
    assert args.command == "pack"
    assert args.path == "."


def test_cli_accepts_verbose_after_command() -> None:
    parser = _build_parser()
    args = parser.parse_args(["pack", "--verbose"])
    assert args.verbose is True


def test_git_mode_flags_are_mutually_exclusive(capsys: pytest.CaptureFixture[str]) -> None:
    parser = _build_parser()

    assert parser.parse_args(["pack", "--git-only"]).mode == "tracked"
    assert parser.parse_args(["pack", "--no-git"]).mode == "traversal"
    assert parser.parse_args(["pack"]).mode is None
    with pytest.raises(SystemExit):
        parser.parse_args(["pack", "--git-only", "--no-git"])


def test_pack_overrides_only_include_given_flags() -> None:
    parser = _build_parser()

    assert _pack_overrides(parser.parse_args(["pack"])) == {}
    overrides = _pack_overrides(
        parser.parse_args(
            [
                "pack",
                "--max-depth",
                "4",
                "--include",
                r"^src/,\.toml$",
                "--code-only",
                "--no-deps",
                "--no-skeleton",
                "--out",
                "ctx",
            ]
        )
    )
    assert overrides == {
        "max_depth": 4,
        "include": [r"^src/", r"\.toml$"],
        "code_only": True,
        "collect_deps": False,
        "skeleton": False,
        "output_dir": "ctx",
    }


def test_main_pack_writes_artifacts(repo_builder: RepoBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    repo_builder.write({"requirements.txt": "requests>=2.31\nflask==3.0.0\n", "app.py": "def run():\n    pass\n"})
    root = repo_builder.path()

    main(["pack", str(root), "--no-git", "--no-deps", "--no-skeleton"])

    output = capsys.readouterr().out
    assert "kept 2" in output
    assert "PACK.txt" in output
    payload = json.loads((root / "ai-pack" / "PACK.json").read_text(encoding="utf-8"))
    assert "generated_at" in payload["project"]
    assert [item["path"] for item in payload["manifests"]] == ["requirements.txt"]


def test_main_pack_dry_run(repo_builder: RepoBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    repo_builder.write({"app.py": "def run():\n    pass\n"})
    root = repo_builder.path()

    main(["pack", str(root), "--no-git", "--dry-run"])

    assert "Dry run: no files written." in capsys.readouterr().out
    assert not (root / "ai-pack").exists()


def test_main_pack_reports_configuration_errors(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["pack", str(tmp_path / "missing")])

    assert excinfo.value.code == 1
    assert "ctxpack pack failed" in capsys.readouterr().err


def test_main_pack_rejects_invalid_depth(repo_builder: RepoBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        main(["pack", str(repo_builder.path()), "--max-depth", "0"])

    assert excinfo.value.code == 1
    assert "enumeration.max_depth" in capsys.readouterr().err


def test_main_request_prints_markdown(repo_builder: RepoBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    repo_builder.write({"src/app.py": "def run():\n    return 1\n"})
    request_file = repo_builder.path().parent / "request.yml"
    request_file.write_text(
        "REQUEST_FILE:\n  path: src/app.py\n  reason: inspect\n  range: lines 1-1\n",
        encoding="utf-8",
    )

    main(["request", str(request_file), str(repo_builder.path())])

    output = capsys.readouterr().out
    assert output.startswith("# REQUEST_FILE Results")
    assert "def run():" in output
    assert "return 1" not in output


def test_main_request_reports_missing_file(repo_builder: RepoBuilder, capsys: pytest.CaptureFixture[str]) -> None:
    request_file = repo_builder.path().parent / "request.yml"
    request_file.write_text("path: nope.py\nreason: inspect\n", encoding="utf-8")

    with pytest.raises(SystemExit) as excinfo:
        main(["request", str(request_file), str(repo_builder.path())])

    assert excinfo.value.code == 1
    assert "File not found: nope.py" in capsys.readouterr().err


def test_main_writes_log_file(repo_builder: RepoBuilder, tmp_path: Path) -> None:
    repo_builder.write({"app.py": "def run():\n    pass\n"})
    log_file = tmp_path / "pack.log"

    main(["--log-file", str(log_file), "pack", str(repo_builder.path()), "--no-git", "--dry-run"])

    assert "ctxpack.orchestrator: Dry run" in log_file.read_text(encoding="utf-8")
