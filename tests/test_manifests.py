"""Tests for the manifest classification funnel."""

from __future__ import annotations

from pathlib import Path

import pytest

from ctxpack.config import FunnelConfig, build_config
from ctxpack.manifests import ManifestFunnel, StructureParseError, parse_document
from ctxpack.manifests.lexical import keyword_hits, lexical_density, shannon_entropy
from ctxpack.manifests.structure import detect_format
from tests._fixtures.repo_builder import RepoBuilder

REQUIREMENTS = """
requests>=2.31
flask==3.0.0
pytest~=8.0
"""

CMAKE = """
cmake_minimum_required(VERSION 3.20)
project(demo CXX)
# find_package(Ignored) stays commented out
find_package(Boost REQUIRED COMPONENTS filesystem)
find_package(fmt CONFIG REQUIRED)
add_executable(demo src/main.cpp)
target_link_libraries(demo PRIVATE Boost::filesystem fmt::fmt)
"""

PACKAGE_JSON = """
{
  "name": "web",
  "dependencies": {"react": "^18.2.0"},
  "devDependencies": {"vite": "^5.0.0"}
}
"""

# Dependency vocabulary everywhere, but no declaration structure at all.
PROSE = """
dependencies version requires packages plugins
npm yarn pip cargo poetry setuptools
"""


def _funnel_config(tmp_path: Path) -> FunnelConfig:
    return build_config({}, root=tmp_path).funnel


def test_shannon_entropy_bounds() -> None:
    assert shannon_entropy(b"") == 0.0
    assert shannon_entropy(b"aaaa") == 0.0
    assert shannon_entropy(b"abab") == pytest.approx(1.0)
    assert shannon_entropy(bytes(range(256))) == pytest.approx(8.0)


def test_keyword_hits_are_distinct_and_case_insensitive() -> None:
    hits = keyword_hits("Dependencies\nDEPENDENCIES\nversion", ["dependencies", "version", "npm"])

    assert hits == {"dependencies", "version"}
    assert lexical_density("Dependencies\nversion", ["dependencies", "version"]) == pytest.approx(2 / 3)


def test_detect_format_by_name_and_content() -> None:
    assert detect_format("package.json", "{}") == "json"
    assert detect_format("Pipfile", "") == "toml"
    assert detect_format("ci.yml", "") == "yaml"
    assert detect_format("pom.xml", "") == "xml"
    assert detect_format("manifest", '  {"a": 1}') == "json"
    assert detect_format("CMakeLists.txt", CMAKE) == "generic"


def test_parse_requirements_yields_pinned_bindings() -> None:
    document = parse_document("requirements.txt", REQUIREMENTS)

    assert [(binding.key, binding.op) for binding in document.bindings] == [
        ("requests", ">="),
        ("flask", "=="),
        ("pytest", "~="),
    ]


def test_parse_cmake_yields_invocations_without_comments() -> None:
    document = parse_document("CMakeLists.txt", CMAKE)

    packages = [invocation.args[0] for invocation in document.invocations if invocation.name == "find_package"]
    assert packages == ["Boost", "fmt"]


def test_parse_keeps_urls_intact() -> None:
    document = parse_document("settings.gradle", 'url = "https://repo.example.com/maven2"  # mirror\n')

    assert document.bindings[0].value == "https://repo.example.com/maven2"


def test_parse_json_flattens_nested_keys() -> None:
    document = parse_document("package.json", PACKAGE_JSON)

    keys = {binding.key for binding in document.bindings}
    assert {"name", "dependencies", "devdependencies", "react", "vite"} <= keys


@pytest.mark.parametrize(
    "path, text",
    [
        ("notes.txt", "dependencies (see below\nrequires = foo\n"),
        ("broken.json", '{"dependencies": '),
        ("broken.toml", "[project\nname ="),
    ],
)
def test_malformed_content_raises_parse_error(path: str, text: str) -> None:
    with pytest.raises(StructureParseError):
        parse_document(path, text)


def test_funnel_ranks_root_manifest_above_docs_copy(repo_builder: RepoBuilder, tmp_path: Path) -> None:
    repo_builder.write(
        {
            "requirements.txt": REQUIREMENTS,
            "docs/requirements.txt": REQUIREMENTS,
        }
    )
    funnel = ManifestFunnel(_funnel_config(tmp_path), repo_builder.path())

    result = funnel.classify(repo_builder.describe())

    assert [candidate.path for candidate in result.candidates] == ["requirements.txt", "docs/requirements.txt"]
    root, docs = result.candidates
    assert root.density == pytest.approx(docs.density)
    assert root.multiplier == 1.5
    assert docs.multiplier == 0.5
    assert root.confidence > docs.confidence
    assert root.matched_query == "binding:pin"
    assert root.validated is True


def test_funnel_rejects_keyword_dense_prose_structurally(repo_builder: RepoBuilder, tmp_path: Path) -> None:
    repo_builder.write({"NOTES.md": PROSE, "CMakeLists.txt": CMAKE, "web/package.json": PACKAGE_JSON})
    funnel = ManifestFunnel(_funnel_config(tmp_path), repo_builder.path(), workers=4)
    files = repo_builder.describe()

    result = funnel.classify(files)

    assert lexical_density(PROSE.lstrip("\n"), funnel._config.keywords) >= 1.0
    assert "NOTES.md" not in [candidate.path for candidate in result.candidates]
    assert result.rejected["structure"] == 1
    assert "NOTES.md" in funnel.rejection_cache
    assert sorted(candidate.path for candidate in result.candidates) == ["CMakeLists.txt", "web/package.json"]
    invocations = result.invocations["CMakeLists.txt"]
    assert ("find_package", ("fmt", "CONFIG", "REQUIRED")) in invocations

    again = funnel.classify(files)
    assert again.rejected["structure"] == 1
    assert [candidate.path for candidate in again.candidates] == [
        candidate.path for candidate in result.candidates
    ]


def test_funnel_counts_lexical_rejections(repo_builder: RepoBuilder, tmp_path: Path) -> None:
    noisy = "".join(chr(code) for code in range(33, 127)) * 20
    repo_builder.write({"noise.txt": noisy, "src/app.rs": "fn main() {\n    println!(\"hi\");\n}\n"})
    repo_builder.write_bytes("blob.bin", b"\x00" * 32)
    funnel = ManifestFunnel(_funnel_config(tmp_path), repo_builder.path())

    result = funnel.classify(repo_builder.describe())

    assert result.candidates == []
    assert result.rejected["entropy"] == 1
    assert result.rejected["density"] == 1
    assert result.rejected["non-text"] == 1


def test_oversized_files_become_warnings(repo_builder: RepoBuilder, tmp_path: Path) -> None:
    repo_builder.write({"requirements.txt": REQUIREMENTS})
    config = build_config({"manifests": {"max_structural_bytes": 8}}, root=tmp_path).funnel
    funnel = ManifestFunnel(config, repo_builder.path())

    result = funnel.classify(repo_builder.describe())

    assert result.candidates == []
    assert result.rejected["oversized"] == 1
    assert [warning.path for warning in result.warnings] == ["requirements.txt"]


@pytest.mark.parametrize(
    "path, text",
    [
        ("package.json", '{"dependencies": ' + "[" * 5000 + "]" * 5000 + "}"),
        ("Cargo.toml", "dependencies = " + "[" * 5000 + "]" * 5000 + "\n"),
    ],
)
def test_deeply_nested_manifest_is_a_structural_rejection(
    repo_builder: RepoBuilder, tmp_path: Path, path: str, text: str
) -> None:
    repo_builder.write({path: text, "requirements.txt": REQUIREMENTS})
    funnel = ManifestFunnel(_funnel_config(tmp_path), repo_builder.path())

    with pytest.raises(StructureParseError):
        parse_document(path, text)
    result = funnel.classify(repo_builder.describe())

    assert [candidate.path for candidate in result.candidates] == ["requirements.txt"]
    assert result.rejected["structure"] == 1
    assert path in funnel.rejection_cache


def test_unexpected_parser_failure_is_a_warning(
    repo_builder: RepoBuilder, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    repo_builder.write({"requirements.txt": REQUIREMENTS})

    def broken_parser(path: str, text: str):  # type: ignore[no-untyped-def]
        raise MemoryError("parser blew up")

    monkeypatch.setattr("ctxpack.manifests.funnel.parse_document", broken_parser)
    funnel = ManifestFunnel(_funnel_config(tmp_path), repo_builder.path())

    result = funnel.classify(repo_builder.describe())

    assert result.candidates == []
    assert result.rejected["structure"] == 1
    assert [(warning.path, warning.stage) for warning in result.warnings] == [("requirements.txt", "manifests")]
