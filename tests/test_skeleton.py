"""Tests for the tree-sitter skeleton builder."""

from __future__ import annotations

import pytest

from ctxpack.errors import OptionalToolUnavailable
from ctxpack.skeleton import TREE_SITTER_AVAILABLE, SkeletonBuilder
from tests._fixtures.repo_builder import RepoBuilder


def test_disabled_builder_reports_unavailable(repo_builder: RepoBuilder) -> None:
    repo_builder.write({"app.py": "def main():\n    pass\n"})
    builder = SkeletonBuilder(repo_builder.path(), enabled=False)

    with pytest.raises(OptionalToolUnavailable) as excinfo:
        builder.build(repo_builder.describe())

    assert excinfo.value.tool == "tree-sitter"


def test_no_supported_files_is_unavailable(repo_builder: RepoBuilder) -> None:
    repo_builder.write({"README.md": "# demo\n"})
    builder = SkeletonBuilder(repo_builder.path(), enabled=True)

    with pytest.raises(OptionalToolUnavailable) as excinfo:
        builder.build(repo_builder.describe())

    assert excinfo.value.reason == "no supported source files"


@pytest.mark.skipif(not TREE_SITTER_AVAILABLE, reason="tree-sitter not installed")
def test_python_skeleton_keeps_signatures_only(repo_builder: RepoBuilder) -> None:
    repo_builder.write(
        {
            "pkg/service.py": """
                import os

                class Service:
                    def start(self, port: int) -> bool:
                        return os.getpid() > 0

                def main():
                    Service().start(8080)
            """,
        }
    )

    xml = SkeletonBuilder(repo_builder.path()).build(repo_builder.describe())

    assert xml.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert '<file path="pkg/service.py">' in xml
    assert "class Service: ..." in xml
    assert "def start(self, port: int) -&gt; bool: ..." in xml
    assert "def main(): ..." in xml
    assert "getpid" not in xml
