"""Repository enumeration: tracked-file listing or pruning traversal."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import AbstractSet, Callable, Iterable, List, Optional, Tuple

from .errors import EnumerationError
from .logging import get_logger, warn_per_file
from .models import EnumerationResult, PerFileWarning, RepoPath, path_sort_key

_TEXT_SNIFF_BYTES = 8192
UNDECODABLE_NAME = "name is not valid UTF-8"

Runner = Callable[..., str]


class SourceAdapter:
    """Produces the deduplicated candidate path list for one repository."""

    def __init__(self, runner: Optional[Runner] = None) -> None:
        self._runner = runner or self._default_runner
        self._logger = get_logger("source")

    def enumerate(self, root: Path, mode: str, prune_set: AbstractSet[str]) -> EnumerationResult:
        """Return sorted relative POSIX paths under ``root``.

        ``mode`` is ``auto``, ``tracked`` or ``traversal``. Tracked mode lists
        files known to git (tracked plus untracked-but-not-ignored); traversal
        mode walks the tree and never descends into a pruned directory.
        Symlinks are skipped in both modes.
        """
        root = Path(root)
        if not root.is_dir():
            raise EnumerationError(f"Repository path is not a directory: {root}")

        use_tracked = False
        if mode == "tracked":
            if not self.is_repository(root):
                raise EnumerationError(f"Tracked enumeration requested but {root} is not inside a git work tree")
            use_tracked = True
        elif mode == "auto":
            use_tracked = self.is_repository(root)
        elif mode != "traversal":
            raise EnumerationError(f"Unknown enumeration mode: {mode}")

        if use_tracked:
            try:
                paths, warnings = self._tracked(root, prune_set)
            except (OSError, subprocess.CalledProcessError) as exc:
                if mode == "tracked":
                    raise EnumerationError(f"git ls-files failed in {root}: {exc}") from exc
                self._logger.info("git ls-files failed (%s); falling back to traversal", exc)
                use_tracked = False
        if not use_tracked:
            paths, warnings = self._traverse(root, prune_set)

        unique = sorted(set(paths), key=path_sort_key)
        self._logger.debug(
            "Enumerated %d paths under %s (%s mode)", len(unique), root, "tracked" if use_tracked else "traversal"
        )
        return EnumerationResult(paths=unique, tracked=use_tracked, warnings=warnings)

    def is_repository(self, root: Path) -> bool:
        try:
            output = self._runner(
                ["git", "rev-parse", "--is-inside-work-tree"],
                cwd=root,
                capture_output=True,
            )
        except (OSError, subprocess.CalledProcessError):
            return False
        return output.strip() == "true"

    def describe(self, root: Path, paths: Iterable[str]) -> Tuple[List[RepoPath], List[PerFileWarning]]:
        """Stat and sniff each path; unreadable files become warnings."""
        described: List[RepoPath] = []
        warnings: List[PerFileWarning] = []
        for rel_path in paths:
            full_path = root / rel_path
            try:
                size = full_path.stat().st_size
                with full_path.open("rb") as handle:
                    head = handle.read(_TEXT_SNIFF_BYTES)
            except OSError as exc:
                warnings.append(self._warn(rel_path, f"unreadable: {exc.strerror or exc}"))
                continue
            described.append(RepoPath(path=rel_path, size=size, is_text=b"\0" not in head))
        return described, warnings

    # ------------------------------------------------------------------
    # Internals

    def _tracked(self, root: Path, prune_set: AbstractSet[str]) -> Tuple[List[str], List[PerFileWarning]]:
        output = self._runner(
            ["git", "ls-files", "-z", "--cached", "--others", "--exclude-standard"],
            cwd=root,
            capture_output=True,
        )
        paths: List[str] = []
        warnings: List[PerFileWarning] = []
        for entry in output.split("\0"):
            rel_path = entry.strip("\n")
            if not rel_path or _is_pruned(rel_path, prune_set):
                continue
            if not _is_utf8(rel_path):
                warnings.append(self._warn(_printable(rel_path), UNDECODABLE_NAME))
                continue
            full_path = root / rel_path
            # Deleted-but-tracked files and symlinks are not candidates.
            if full_path.is_symlink() or not full_path.is_file():
                continue
            paths.append(rel_path)
        return paths, warnings

    def _traverse(self, root: Path, prune_set: AbstractSet[str]) -> Tuple[List[str], List[PerFileWarning]]:
        paths: List[str] = []
        warnings: List[PerFileWarning] = []
        stack: List[Tuple[Path, str]] = [(root, "")]
        while stack:
            directory, rel_dir = stack.pop()
            try:
                with os.scandir(directory) as entries:
                    listing = list(entries)
            except OSError as exc:
                warnings.append(self._warn(rel_dir or ".", f"unreadable directory: {exc.strerror or exc}"))
                continue
            for entry in listing:
                rel_path = f"{rel_dir}/{entry.name}" if rel_dir else entry.name
                try:
                    if entry.is_symlink():
                        continue
                    if not _is_utf8(entry.name):
                        warnings.append(self._warn(_printable(rel_path), UNDECODABLE_NAME))
                        continue
                    if entry.is_dir(follow_symlinks=False):
                        if entry.name in prune_set:
                            continue
                        stack.append((Path(entry.path), rel_path))
                    elif entry.is_file(follow_symlinks=False):
                        paths.append(rel_path)
                except OSError as exc:
                    warnings.append(self._warn(rel_path, f"unreadable entry: {exc.strerror or exc}"))
        return paths, warnings

    def _warn(self, path: str, reason: str) -> PerFileWarning:
        return warn_per_file(self._logger, path, "enumeration", reason)

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        capture_output: bool = False,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            check=True,
            encoding="utf-8",
            errors="surrogateescape",
            capture_output=capture_output,
        )
        return completed.stdout if capture_output else ""


def _is_pruned(rel_path: str, prune_set: AbstractSet[str]) -> bool:
    parts = rel_path.split("/")[:-1]
    return any(part in prune_set for part in parts)


def _is_utf8(name: str) -> bool:
    # Undecodable bytes arrive as lone surrogates (surrogateescape).
    try:
        name.encode("utf-8")
    except UnicodeEncodeError:
        return False
    return True


def _printable(name: str) -> str:
    return name.encode("utf-8", errors="backslashreplace").decode("utf-8")


__all__ = ["Runner", "SourceAdapter"]
