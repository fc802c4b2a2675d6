"""Tests for the structure overview."""

from __future__ import annotations

from ctxpack.overview import build_overview, extension_snapshot

PATHS = [
    "Cargo.toml",
    "src/main.rs",
    "src/net/tcp/conn.rs",
    "web/package.json",
    "web/src/App.tsx",
    "Makefile",
    "LICENSE",
    "docs/guide.md",
]


def test_directories_respect_max_depth_and_include_root() -> None:
    overview = build_overview(PATHS, 2)

    assert [directory for directory, _ in overview.directories] == [
        ".",
        "docs",
        "src",
        "src/net",
        "web",
        "web/src",
    ]
    assert overview.files == sorted(PATHS, key=lambda path: (path.lower(), path))


def test_project_roots_are_labelled_from_markers() -> None:
    overview = build_overview(PATHS, 3)

    assert overview.project_roots == {".": ["Rust"], "web": ["Node"]}


def test_project_roots_follow_configured_markers() -> None:
    overview = build_overview(PATHS, 3, markers={"package.json": "Node"})

    assert overview.project_roots == {"web": ["Node"]}


def test_extension_snapshot_counts_bare_build_files() -> None:
    assert extension_snapshot(PATHS) == [
        ("rs", 2),
        ("(noext)", 1),
        ("json", 1),
        ("Makefile", 1),
        ("md", 1),
        ("toml", 1),
        ("tsx", 1),
    ]
