"""Tests for ctxpack.orchestrator and artifact composition."""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path
from typing import Sequence

import pytest

from ctxpack.composer import SECTION_ORDER, ArtifactComposer, PackArtifacts
from ctxpack.errors import ConfigurationError, OptionalToolUnavailable
from ctxpack.models import RepoPath
from ctxpack.orchestrator import PackOrchestrator
from ctxpack.request import FileNotFound, parse_request
from ctxpack.source import SourceAdapter
from tests._fixtures.repo_builder import RepoBuilder

OFFLINE = {"mode": "traversal", "collect_deps": False, "skeleton": False}


class StaticSkeleton:
    """Test double standing in for the tree-sitter builder."""

    def __init__(self, body: str | None) -> None:
        self.body = body
        self.calls: list[list[str]] = []

    def build(self, files: Sequence[RepoPath]) -> str:
        self.calls.append([item.path for item in files])
        if self.body is None:
            raise OptionalToolUnavailable("tree-sitter", "not installed")
        return self.body


def _seed_sample_repo(repo_builder: RepoBuilder) -> Path:
    repo_builder.write(
        {
            "Cargo.toml": """
                [package]
                name = "demo"
                version = "0.1.0"

                [dependencies]
                serde = "1"
            """,
            "src/lib.rs": """
                pub fn open() {}
                fn close() {}
            """,
            "web/package.json": """
                {
                  "name": "web",
                  "dependencies": {"react": "^18.2.0"}
                }
            """,
            "web/src/App.tsx": "export default function App() {}\n",
            "web/node_modules/react/index.js": "module.exports = {};\n",
            "lib/deep/node_modules/pkg/index.js": "module.exports = {};\n",
            "tools/build.py": "def main():\n    pass\n",
            "docs/notes.md": "dependencies version requires packages\n",
            ".env": "SECRET=1\n",
            "assets/logo.png": "not really a png\n",
        }
    )
    return repo_builder.path().resolve()


def _run(root: Path, orchestrator: PackOrchestrator | None = None, **overrides: object):  # type: ignore[no-untyped-def]
    orchestrator = orchestrator or PackOrchestrator()
    config = orchestrator.load(root, overrides={**OFFLINE, **overrides})
    return orchestrator.run(config)


def test_run_writes_pack_with_sections_in_order(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)

    summary = _run(root)

    pack_text = (root / "ai-pack" / "PACK.txt").read_text(encoding="utf-8")
    positions = [pack_text.index(f"======={name}=======") for name, _ in SECTION_ORDER]
    assert positions == sorted(positions)
    for name, _ in SECTION_ORDER:
        assert f"=======END-OF-{name}=======" in pack_text
    assert summary.artifacts == [
        str(root / "ai-pack" / "PACK.txt"),
        str(root / "ai-pack" / "PACK.json"),
    ]
    assert "SECRET" not in pack_text
    assert ".env" not in pack_text.split("FILE INDEX", 1)[1]
    assert "node_modules" not in pack_text
    assert "src/lib.rs:1:pub fn open() {}" in pack_text
    assert "web/src/App.tsx:1:export default function App() {}" in pack_text
    assert "(absent: disabled)" in pack_text
    assert "REQUEST_FILE" in pack_text


def test_summary_counts_are_consistent(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)

    summary = _run(root)

    assert summary.tracked is False
    assert summary.excluded["secret"] == 1
    assert summary.excluded["binary"] == 1
    assert summary.filtered_count + sum(summary.excluded.values()) == summary.raw_count
    assert summary.manifest_count == 2
    assert summary.project_roots["rust"] == ["src"]
    assert summary.project_roots["typescript"] == ["web"]

    payload = json.loads((root / "ai-pack" / "PACK.json").read_text(encoding="utf-8"))
    assert [item["path"] for item in payload["manifests"]] == ["Cargo.toml", "web/package.json"]
    assert payload["stats"]["filtered_count"] == summary.filtered_count
    assert "generated_at" not in payload["project"]
    assert payload["deps"] == {"absent_reason": "disabled", "body": None, "present": False}


def test_rerun_is_byte_identical_and_ignores_previous_output(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)

    first = _run(root)
    first_text = (root / "ai-pack" / "PACK.txt").read_bytes()
    first_json = (root / "ai-pack" / "PACK.json").read_bytes()
    second = _run(root)

    assert (root / "ai-pack" / "PACK.txt").read_bytes() == first_text
    assert (root / "ai-pack" / "PACK.json").read_bytes() == first_json
    assert second.raw_count == first.raw_count
    assert b"\r\n" not in first_text


def test_generated_at_is_rendered_only_when_given(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)
    orchestrator = PackOrchestrator()
    config = orchestrator.load(root, overrides=OFFLINE)

    orchestrator.run(config, generated_at="2024-01-01T00:00:00+00:00")

    pack_text = (root / "ai-pack" / "PACK.txt").read_text(encoding="utf-8")
    assert "Generated: 2024-01-01T00:00:00+00:00" in pack_text


def test_dry_run_writes_nothing(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)
    orchestrator = PackOrchestrator()
    config = orchestrator.load(root, overrides=OFFLINE)

    summary = orchestrator.run(config, dry_run=True)

    assert summary.dry_run is True
    assert summary.output_dir is None
    assert summary.artifacts == []
    assert summary.filtered_count > 0
    assert not (root / "ai-pack").exists()


def test_include_pattern_and_custom_output_dir(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)

    summary = _run(root, include=[r"^src/"], output_dir="out/ctx")

    assert summary.filtered_count == 1
    payload = json.loads((root / "out" / "ctx" / "PACK.json").read_text(encoding="utf-8"))
    assert payload["structure"]["files"] == ["src/lib.rs"]


def test_invalid_config_fails_before_writing(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)
    (root / ".ctxpack.yml").write_text("manifests:\n  entropy_threshold: 12\n", encoding="utf-8")

    with pytest.raises(ConfigurationError):
        PackOrchestrator().load(root)
    assert not (root / "ai-pack").exists()


def test_missing_explicit_config_is_an_error(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)

    with pytest.raises(ConfigurationError):
        PackOrchestrator().load(root, config_path=root / "absent.yml")


def test_skeleton_written_when_builder_succeeds(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)
    skeleton = StaticSkeleton('<?xml version="1.0" encoding="UTF-8"?>\n<files>\n</files>\n')
    orchestrator = PackOrchestrator(skeleton_factory=lambda config: skeleton)

    summary = _run(root, orchestrator, skeleton=True)

    skeleton_path = root / "ai-pack" / "PACK_STAGE2_COMPRESSED.xml"
    assert skeleton_path.read_text(encoding="utf-8").startswith("<?xml")
    assert str(skeleton_path) in summary.artifacts
    assert "src/lib.rs" in skeleton.calls[0]


def test_unavailable_skeleton_removes_stale_file(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)
    stale = root / "ai-pack" / "PACK_STAGE2_COMPRESSED.xml"
    stale.parent.mkdir(parents=True)
    stale.write_text("<files/>\n", encoding="utf-8")
    orchestrator = PackOrchestrator(skeleton_factory=lambda config: StaticSkeleton(None))

    _run(root, orchestrator, skeleton=True)

    assert not stale.exists()
    payload = json.loads((root / "ai-pack" / "PACK.json").read_text(encoding="utf-8"))
    assert payload["skeleton"]["present"] is False
    assert payload["skeleton"]["absent_reason"] == "not installed"


def test_deps_section_uses_injected_runner(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)

    def runner(args, *, cwd, capture_output=False, timeout=None):  # type: ignore[no-untyped-def]
        if args[0] == "cargo":
            return "demo v0.1.0\n└── serde v1.0.200\n"
        raise FileNotFoundError(args[0])

    orchestrator = PackOrchestrator(deps_runner=runner)

    _run(root, orchestrator, collect_deps=True)

    pack_text = (root / "ai-pack" / "PACK.txt").read_text(encoding="utf-8")
    assert "serde v1.0.200" in pack_text
    assert "[web] (optional tool unavailable: npm|pnpm|yarn (not installed))" in pack_text


def test_resolve_request_never_returns_filtered_files(repo_builder: RepoBuilder) -> None:
    root = _seed_sample_repo(repo_builder)
    orchestrator = PackOrchestrator()
    config = orchestrator.load(root, overrides=OFFLINE)

    resolved = orchestrator.resolve_request(config, parse_request("pattern: 'src/*.rs'\nreason: inspect"))
    assert [item.path for item in resolved.files] == ["src/lib.rs"]

    with pytest.raises(FileNotFound):
        orchestrator.resolve_request(config, parse_request("path: .env\nreason: steal"))


def test_non_utf8_file_name_is_skipped_with_a_warning(repo_builder: RepoBuilder) -> None:
    repo_builder.write({"main.py": "def run():\n    pass\n"})
    repo_builder.write_latin1_name()
    root = repo_builder.path().resolve()

    summary = _run(root)

    pack_text = (root / "ai-pack" / "PACK.txt").read_text(encoding="utf-8")
    assert summary.raw_count == 1
    assert "- enumeration: caf\\udce9.txt: name is not valid UTF-8" in pack_text
    assert json.loads((root / "ai-pack" / "PACK.json").read_text(encoding="utf-8"))["structure"]["files"] == [
        "main.py"
    ]


def test_unencodable_artifact_leaves_previous_pack_intact(tmp_path: Path) -> None:
    output_dir = tmp_path / "ai-pack"
    output_dir.mkdir()
    (output_dir / "PACK.txt").write_text("previous\n", encoding="utf-8")
    artifacts = PackArtifacts(pack_text="ok\n", pack_json='{"path": "caf\udce9"}\n')

    with pytest.raises(UnicodeEncodeError):
        ArtifactComposer().write(artifacts, output_dir)

    assert (output_dir / "PACK.txt").read_text(encoding="utf-8") == "previous\n"
    assert sorted(item.name for item in output_dir.iterdir()) == ["PACK.txt"]


class VanishingSource(SourceAdapter):
    """Reports a path that is gone by the time it is read."""

    def enumerate(self, root, mode, prune_set):  # type: ignore[no-untyped-def]
        result = super().enumerate(root, mode, prune_set)
        return replace(result, paths=sorted([*result.paths, "ghost.py"]))


def test_unreadable_files_are_not_counted_as_kept(repo_builder: RepoBuilder) -> None:
    repo_builder.write({"main.py": "def run():\n    pass\n"})
    root = repo_builder.path().resolve()

    summary = _run(root, PackOrchestrator(source=VanishingSource()))

    assert summary.raw_count == 2
    assert summary.filtered_count == 1
    assert summary.excluded["unreadable"] == 1
    assert [warning.path for warning in summary.warnings] == ["ghost.py"]
    pack_text = (root / "ai-pack" / "PACK.txt").read_text(encoding="utf-8")
    assert "- files.kept: 1" in pack_text
    assert "- files.excluded.unreadable: 1" in pack_text


def test_marker_directories_are_labelled_without_manifest_acceptance(repo_builder: RepoBuilder) -> None:
    repo_builder.write({"web/package.json": '{"name": "web"}\n', "web/index.js": "export function App() {}\n"})
    root = repo_builder.path().resolve()

    summary = _run(root)

    assert summary.manifest_count == 0
    pack_text = (root / "ai-pack" / "PACK.txt").read_text(encoding="utf-8")
    assert "web  <-- [Node Project]" in pack_text
