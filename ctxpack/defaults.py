"""Default heuristics, patterns and vocabularies for context pack runs.

Every tunable value used by the pipeline lives here so `.ctxpack.yml` can
override it without code changes. Nothing in this module is mutated at
runtime; `ctxpack.config` copies these values into frozen dataclasses.
"""

from __future__ import annotations

from typing import Dict, List, Tuple

DEFAULT_CONFIG_FILENAME = ".ctxpack.yml"
DEFAULT_OUTPUT_DIR = "ai-pack"
PACK_FILENAME = "PACK.txt"
PACK_JSON_FILENAME = "PACK.json"
SKELETON_FILENAME = "PACK_STAGE2_COMPRESSED.xml"

DEFAULT_MAX_DEPTH = 3
MIN_MAX_DEPTH = 1
MAX_MAX_DEPTH = 10
DEFAULT_WORKERS = 8

# Directories never descended into during traversal, and dropped from
# tracked listings as well.
PRUNE_DIRS: Tuple[str, ...] = (
    ".git",
    ".hg",
    ".svn",
    "node_modules",
    "bower_components",
    "dist",
    "build",
    "target",
    "gen",
    "schemas",
    "tests",
    "test",
    "__tests__",
    ".venv",
    "venv",
    ".tox",
    ".cache",
    "__pycache__",
    ".pytest_cache",
    ".mypy_cache",
    "coverage",
    "vendor",
    "third_party",
)

# ---------------------------------------------------------------------------
# Security & noise filter

SECRET_PATTERN = (
    r"(?i)("
    r"(^|/)\.env(\.[^/]*)?$"
    r"|(^|/)[^/]+\.env$"
    r"|(^|/)id_(rsa|dsa|ecdsa|ed25519)(\.pub)?$"
    r"|\.(pem|key|p12|pfx|jks|keystore|crt|cer|der|asc|gpg)$"
    r"|(^|/)\.(netrc|pgpass|npmrc|pypirc)$"
    r"|(^|/)credentials(\.json)?$"
    r")"
)

BINARY_EXT_PATTERN = (
    r"(?i)\.(png|jpe?g|gif|bmp|tiff?|svg|ico|icns|webp|heic|psd"
    r"|woff2?|ttf|otf|eot|pdf"
    r"|mp4|mov|mkv|avi|webm|mp3|wav|flac|ogg|m4a"
    r"|zip|gz|tgz|bz2|xz|zst|7z|rar|tar|jar|war|ear|whl|egg"
    r"|csv|tsv|parquet|feather|arrow|h5|hdf5|npy|npz"
    r"|sqlite3?|db|mdb"
    r"|bin|exe|dll|so|dylib|a|o|obj|lib|class|pyc|pyo|wasm"
    r"|pkl|pickle|onnx|pt|pth|torch|ckpt|safetensors)$"
)

CODE_EXT_PATTERN = (
    r"(?i)\.(c|h|cc|hh|cpp|hpp|cxx|hxx|rs|go|py|pyi|js|jsx|mjs|cjs|ts|tsx"
    r"|java|kt|kts|rb|php|scala|cs|swift|m|mm|lua|sh|bash|zsh|fish|ps1"
    r"|sql|html|xhtml|xml|xsd|xslt|yaml|yml|toml|ini|cfg|conf|json|ndjson"
    r"|md|rst|tex|s|asm|cmake|gradle|proto|graphql|gql|nix|dart|scss|less|css)$"
)

CODE_BARE_PATTERN = (
    r"(?i)(^|/)(Makefile|GNUmakefile|Dockerfile|Containerfile|CMakeLists\.txt"
    r"|BUILD|BUILD\.bazel|WORKSPACE|Gemfile|Rakefile|Podfile|Pipfile"
    r"|Procfile|Justfile|Vagrantfile)$"
)

BARE_BUILD_BASENAMES: Tuple[str, ...] = (
    "Makefile",
    "GNUmakefile",
    "Dockerfile",
    "dockerfile",
    "Containerfile",
    "CMakeLists.txt",
    "BUILD",
    "BUILD.bazel",
    "WORKSPACE",
    "Gemfile",
    "Podfile",
    "Pipfile",
)

# ---------------------------------------------------------------------------
# Manifest classification funnel

ENTROPY_THRESHOLD = 6.0
DENSITY_THRESHOLD = 0.05
FINAL_THRESHOLD = 0.05
MAX_STRUCTURAL_BYTES = 4 * 1024 * 1024

MANIFEST_KEYWORDS: Tuple[str, ...] = (
    # generic dependency/build vocabulary
    "dependencies",
    "dependency",
    "devdependencies",
    "peerdependencies",
    "requires",
    "require",
    "requirements",
    "install_requires",
    "version",
    "packages",
    "plugins",
    "repositories",
    "workspace",
    "[project]",
    "[package]",
    "[tool.",
    "build-system",
    "build-backend",
    # build-tool invocation names
    "find_package",
    "add_executable",
    "add_library",
    "add_subdirectory",
    "target_link_libraries",
    "cmake_minimum_required",
    "fetchcontent_declare",
    "pkg_check_modules",
    "implementation",
    "testimplementation",
    "compileonly",
    "runtimeonly",
    "groupid",
    "artifactid",
    "classpath",
    # link-directive names
    "link_directories",
    "link_libraries",
    "target_include_directories",
    # package-manager call names
    "npm",
    "yarn",
    "pnpm",
    "pip",
    "poetry",
    "setuptools",
    "cargo",
    "conan",
    "vcpkg",
    "gem ",
    "pod ",
    "go 1.",
    # version pin operators
    "==",
    ">=",
    "~=",
)

# Each query is plain data: `invocation` matches a call/command/block whose
# name is listed; `binding` matches a key (optionally restricted to values
# or operators) bound somewhere in the parsed document.
STRUCTURAL_QUERIES: Tuple[Dict[str, object], ...] = (
    {
        "kind": "invocation",
        "names": [
            "find_package",
            "find_dependency",
            "add_executable",
            "add_library",
            "add_subdirectory",
            "target_link_libraries",
            "cmake_minimum_required",
            "project",
            "pkg_check_modules",
            "fetchcontent_declare",
            "link_directories",
            "link_libraries",
            "dependencies",
            "plugins",
            "repositories",
            "implementation",
            "api",
            "compileonly",
            "runtimeonly",
            "testimplementation",
            "classpath",
            "setup",
            "require",
            "gem",
            "pod",
        ],
    },
    {
        "kind": "binding",
        "keys": [
            "dependencies",
            "devdependencies",
            "peerdependencies",
            "optionaldependencies",
            "dev-dependencies",
            "build-dependencies",
            "install_requires",
            "setup_requires",
            "requires",
            "require",
            "require-dev",
            "build-system",
            "build-backend",
            "requires-python",
            "dependency",
            "dependencymanagement",
            "groupid",
            "artifactid",
            "packages",
            "dev-packages",
            "workspace",
        ],
    },
    {
        "kind": "binding",
        "operators": ["==", ">=", "<=", "~=", "!=", "==="],
        "min_matches": 2,
    },
)

PATH_RULES: Tuple[Tuple[str, float], ...] = (
    (r"^[^/]+$", 1.5),
    (r"(^|/)(cmake|gradle|buildSrc|\.cargo|\.mvn|build-support|ci)/", 1.3),
    (
        r"(?i)(^|/)(docs?|documentation|examples?|samples?|assets|static|public"
        r"|fixtures?|testdata|spec)/",
        0.5,
    ),
)

# ---------------------------------------------------------------------------
# API surface extraction

FALLBACK_SOURCE_DIRS: Tuple[str, ...] = ("app", "frontend", "web", "client", "ui", "src")

# One record per language; see `ctxpack.api.rules` for the strategy table.
LANGUAGE_RULES: Tuple[Dict[str, object], ...] = (
    {
        "language": "rust",
        "title": "RUST",
        "strategy": "explicit-visibility",
        "extensions": [".rs"],
        "markers": ["Cargo.toml"],
        "subdir": "src",
        "patterns": [
            r"^\s*(?P<qualifier>pub(?:\s*\([^)]*\))?)\s+"
            r"(?:(?:async|const|unsafe|extern(?:\s+\"[^\"]*\")?)\s+)*"
            r"(?:(?:fn|struct|enum|trait|type|const|static|use|mod|union)\b|macro_rules!)",
        ],
        "empty_roots": "(no Rust crates found)",
        "empty_matches": "(no public Rust items found)",
    },
    {
        "language": "typescript",
        "title": "TYPESCRIPT/JAVASCRIPT",
        "strategy": "convention-export",
        "extensions": [".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs"],
        "excluded_suffixes": [".d.ts"],
        "markers": ["package.json"],
        "fallback_dirs": list(FALLBACK_SOURCE_DIRS),
        "patterns": [
            r"^\s*(?P<export>export\s+(?:default\s+)?)"
            r"(?:declare\s+)?(?:abstract\s+)?(?:async\s+)?"
            r"(?:function\*?|class|interface|type|enum|const|let|var|namespace)\b",
            r"^(?:async\s+)?(?:function\*?|class)\s+(?P<name>[A-Za-z_$][\w$]*)",
        ],
        "empty_roots": "(no frontend dirs found)",
        "empty_matches": "(no TS/JS items found)",
    },
    {
        "language": "python",
        "title": "PYTHON",
        "strategy": "underscore-convention",
        "extensions": [".py", ".pyi"],
        "patterns": [
            r"^(?:async\s+)?(?:def|class)\s+(?P<name>[A-Za-z_]\w*)",
        ],
        "empty_roots": "(no Python source files found)",
        "empty_matches": "(no Python items found)",
    },
    {
        "language": "go",
        "title": "GO",
        "strategy": "capitalization-export",
        "extensions": [".go"],
        "patterns": [
            r"^func\s+(?:\([^)]*\)\s*)?(?P<name>\w+)\s*[\[(]",
        ],
        "empty_roots": "(no Go source files found)",
        "empty_matches": "(no Go items found)",
    },
    {
        "language": "java",
        "title": "JAVA",
        "strategy": "explicit-visibility",
        "extensions": [".java"],
        "patterns": [
            r"^\s*(?P<qualifier>public)\s+"
            r"(?:(?:static|final|abstract|sealed|synchronized|default|native)\s+)*"
            r"(?:class|interface|enum|record|@interface|[\w<>\[\],.? ]+\s+\w+\s*\()",
        ],
        "empty_roots": "(no Java source files found)",
        "empty_matches": "(no public Java items found)",
    },
)

# ---------------------------------------------------------------------------
# Size heatmap

HEATMAP_TOP_N = 50
BYTES_PER_TOKEN = 3.5

# ---------------------------------------------------------------------------
# Project roots shown in the structure overview

PROJECT_MARKERS: Dict[str, str] = {
    "Cargo.toml": "Rust",
    "package.json": "Node",
    "go.mod": "Go",
    "requirements.txt": "Python",
    "pyproject.toml": "Python",
    "Pipfile": "Python",
    "setup.py": "Python",
    "CMakeLists.txt": "CMake",
    "conanfile.txt": "Conan",
    "conanfile.py": "Conan",
    "pom.xml": "Maven",
    "build.gradle": "Gradle",
    "build.gradle.kts": "Gradle",
}

SECTION_DELIMITER = "========================================"


def default_prune_dirs() -> List[str]:
    return list(PRUNE_DIRS)


__all__ = [
    "BARE_BUILD_BASENAMES",
    "BINARY_EXT_PATTERN",
    "BYTES_PER_TOKEN",
    "CODE_BARE_PATTERN",
    "CODE_EXT_PATTERN",
    "DEFAULT_CONFIG_FILENAME",
    "DEFAULT_MAX_DEPTH",
    "DEFAULT_OUTPUT_DIR",
    "DEFAULT_WORKERS",
    "DENSITY_THRESHOLD",
    "ENTROPY_THRESHOLD",
    "FALLBACK_SOURCE_DIRS",
    "FINAL_THRESHOLD",
    "HEATMAP_TOP_N",
    "LANGUAGE_RULES",
    "MANIFEST_KEYWORDS",
    "MAX_MAX_DEPTH",
    "MAX_STRUCTURAL_BYTES",
    "MIN_MAX_DEPTH",
    "PACK_FILENAME",
    "PACK_JSON_FILENAME",
    "PATH_RULES",
    "PROJECT_MARKERS",
    "PRUNE_DIRS",
    "SECRET_PATTERN",
    "SECTION_DELIMITER",
    "SKELETON_FILENAME",
    "STRUCTURAL_QUERIES",
    "default_prune_dirs",
]
