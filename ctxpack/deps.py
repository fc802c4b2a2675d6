"""Optional dependency listings gathered from ecosystem tools."""

from __future__ import annotations

import re
import subprocess
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .errors import OptionalToolUnavailable
from .logging import get_logger
from .models import FunnelResult, OptionalSection, path_sort_key

MAX_LINES = 300
MAX_BYTES = 128 * 1024
TOOL_TIMEOUT_SECONDS = 60

_EMAIL_RE = re.compile(r"[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}")

Runner = Callable[..., str]


@dataclass(frozen=True)
class EcosystemTools:
    """Lister commands for one ecosystem; the first available command wins."""

    title: str
    markers: Tuple[str, ...]
    commands: Tuple[Tuple[str, ...], ...]


ECOSYSTEMS: Tuple[EcosystemTools, ...] = (
    EcosystemTools(
        title="RUST (cargo)",
        markers=("Cargo.toml",),
        commands=(("cargo", "tree", "-e", "normal,build", "--depth", "2"),),
    ),
    EcosystemTools(
        title="NODE (npm/pnpm/yarn)",
        markers=("package.json",),
        commands=(
            ("npm", "ls", "--depth", "2"),
            ("pnpm", "list", "--depth", "2"),
            ("yarn", "list", "--depth=2"),
        ),
    ),
    EcosystemTools(
        title="PYTHON (pipdeptree)",
        markers=("pyproject.toml", "requirements.txt", "Pipfile", "setup.py"),
        commands=(("pipdeptree", "--json-tree", "-w", "silence"),),
    ),
    EcosystemTools(
        title="GO (modules)",
        markers=("go.mod",),
        commands=(("go", "mod", "graph"),),
    ),
)


def clamp_and_scrub(text: str, *, max_lines: int = MAX_LINES, max_bytes: int = MAX_BYTES) -> str:
    """Bound tool output and mask e-mail addresses."""
    lines = text.splitlines()
    truncated = len(lines) > max_lines
    clamped = "\n".join(lines[:max_lines])
    encoded = clamped.encode("utf-8")
    if len(encoded) > max_bytes:
        clamped = encoded[:max_bytes].decode("utf-8", errors="ignore")
        truncated = True
    clamped = _EMAIL_RE.sub("<email>", clamped)
    if truncated:
        clamped += "\n... (truncated)"
    return clamped


class DependencyCollector:
    """Builds the DEPS section from ecosystem tools and parsed CMake files."""

    def __init__(
        self,
        root: Path,
        runner: Optional[Runner] = None,
        *,
        ecosystems: Sequence[EcosystemTools] = ECOSYSTEMS,
        timeout: int = TOOL_TIMEOUT_SECONDS,
    ) -> None:
        self._root = Path(root)
        self._runner = runner or self._default_runner
        self._ecosystems = tuple(ecosystems)
        self._timeout = timeout
        self._logger = get_logger("deps")

    def collect(self, paths: Sequence[str], funnel: Optional[FunnelResult] = None) -> OptionalSection:
        manifest_paths = [candidate.path for candidate in funnel.candidates] if funnel else list(paths)
        blocks: List[str] = []
        produced = False
        for ecosystem in self._ecosystems:
            directories = _marker_directories(manifest_paths, ecosystem.markers)
            if not directories:
                continue
            block, ok = self._ecosystem_block(ecosystem, directories)
            blocks.append(block)
            produced = produced or ok

        cmake_block = self._cmake_block(funnel.invocations if funnel else {})
        if cmake_block is not None:
            blocks.append(cmake_block)
            produced = True

        if not blocks:
            return OptionalSection(name="DEPS", body=None, absent_reason="no dependency ecosystems detected")
        if not produced:
            return OptionalSection(name="DEPS", body=None, absent_reason="no dependency tools available")
        return OptionalSection(name="DEPS", body="\n\n".join(blocks))

    # ------------------------------------------------------------------
    # Internals

    def _ecosystem_block(self, ecosystem: EcosystemTools, directories: Sequence[str]) -> Tuple[str, bool]:
        parts = [ecosystem.title]
        produced = False
        for directory in directories:
            label = directory or "."
            try:
                command, output = self._first_available(ecosystem.commands, self._root / directory)
            except OptionalToolUnavailable as exc:
                self._logger.info("Skipping %s listing in %s: %s", ecosystem.title, label, exc)
                parts.append(f"[{label}] ({exc})")
                continue
            parts.append(f"[{label}] $ {' '.join(command)}\n{clamp_and_scrub(output)}")
            produced = True
        return "\n".join(parts), produced

    def _first_available(
        self, commands: Iterable[Tuple[str, ...]], cwd: Path
    ) -> Tuple[Tuple[str, ...], str]:
        missing: List[str] = []
        for command in commands:
            try:
                return command, self._run(command, cwd)
            except OptionalToolUnavailable:
                missing.append(command[0])
        raise OptionalToolUnavailable("|".join(missing), "not installed")

    def _run(self, command: Sequence[str], cwd: Path) -> str:
        try:
            return self._runner(list(command), cwd=cwd, capture_output=True, timeout=self._timeout)
        except FileNotFoundError as exc:
            raise OptionalToolUnavailable(command[0], "not installed") from exc
        except subprocess.TimeoutExpired as exc:
            raise OptionalToolUnavailable(command[0], f"timed out after {self._timeout}s") from exc

    def _cmake_block(self, invocations: Mapping[str, List[Tuple[str, Tuple[str, ...]]]]) -> Optional[str]:
        sections: List[str] = []
        for path in sorted(invocations, key=path_sort_key):
            name = PurePosixPath(path).name
            if name != "CMakeLists.txt" and not name.endswith(".cmake"):
                continue
            packages = sorted(
                {args[0] for command, args in invocations[path] if command == "find_package" and args},
                key=str.lower,
            )
            if packages:
                listing = "\n".join(f"- {package}" for package in packages)
                sections.append(f"Dependencies from: {path}\n{listing}")
        if not sections:
            return None
        return "C++ (CMake)\n" + "\n".join(sections)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
        timeout: Optional[int] = None,
    ) -> str:
        # Listers exit non-zero on unmet peer deps and similar; keep their output.
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=False,
            text=True,
            capture_output=capture_output,
            timeout=timeout,
        )
        return completed.stdout if capture_output else ""


def _marker_directories(paths: Sequence[str], markers: Sequence[str]) -> List[str]:
    found: Dict[str, None] = {}
    for path in sorted(paths, key=path_sort_key):
        pure = PurePosixPath(path)
        if pure.name in markers:
            parent = pure.parent.as_posix()
            found.setdefault("" if parent == "." else parent, None)
    return list(found)


__all__ = ["DependencyCollector", "ECOSYSTEMS", "EcosystemTools", "clamp_and_scrub"]
