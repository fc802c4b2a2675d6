"""Tests for the security & noise filter."""

from __future__ import annotations

from pathlib import Path

from ctxpack.config import FilterConfig, build_config, compile_patterns
from ctxpack.filters import EXCLUSION_REASONS, SecurityFilter

PATHS = [
    ".env",
    "config/.env.production",
    "deploy/id_rsa",
    "certs/server.pem",
    "assets/logo.png",
    "data/table.csv",
    "CHANGELOG.md",
    "Makefile",
    "src/main.rs",
    "src/notes.txt",
    "LICENSE",
]


def _filter(tmp_path: Path, **filters: object) -> SecurityFilter:
    return SecurityFilter(build_config({"filters": filters}, root=tmp_path).filters)


def test_secrets_and_binaries_are_always_excluded(tmp_path: Path) -> None:
    result = _filter(tmp_path).apply(PATHS)

    assert result.paths == ["CHANGELOG.md", "Makefile", "src/main.rs", "src/notes.txt", "LICENSE"]
    assert result.excluded["secret"] == 4
    assert result.excluded["binary"] == 2
    assert result.raw_count == len(PATHS)
    assert result.filtered_count + sum(result.excluded.values()) == result.raw_count
    assert set(result.excluded) == set(EXCLUSION_REASONS)


def test_secret_reason_wins_over_binary(tmp_path: Path) -> None:
    security = _filter(tmp_path)

    assert security.rejection_reason("keys/signing.key") == "secret"
    assert security.rejection_reason("keys/archive.zip") == "binary"
    assert security.accepts("keys/README.md")


def test_include_and_exclude_patterns(tmp_path: Path) -> None:
    security = _filter(tmp_path, include=[r"^src/"], exclude=[r"\.txt$"])

    result = security.apply(PATHS)

    assert result.paths == ["src/main.rs"]
    assert result.excluded["exclude-pattern"] == 1
    assert result.excluded["include-pattern"] == 3


def test_code_only_keeps_code_and_bare_build_files(tmp_path: Path) -> None:
    result = _filter(tmp_path, code_only=True).apply(PATHS)

    assert result.paths == ["CHANGELOG.md", "Makefile", "src/main.rs"]
    assert result.excluded["code-only"] == 2


def test_output_is_subset_and_preserves_order(tmp_path: Path) -> None:
    security = _filter(tmp_path)
    paths = ["z.py", "a.py", "img.gif", "m.py"]

    result = security.apply(paths)

    assert result.paths == ["z.py", "a.py", "m.py"]
    assert set(result.paths) <= set(paths)


def test_exclusion_is_independent_of_pattern_order() -> None:
    forward = SecurityFilter(FilterConfig(exclude=compile_patterns([r"^a", r"b$"], "filters.exclude")))
    backward = SecurityFilter(FilterConfig(exclude=compile_patterns([r"b$", r"^a"], "filters.exclude")))
    paths = ["ab", "a", "b", "c"]

    assert forward.apply(paths).paths == backward.apply(paths).paths == ["c"]
