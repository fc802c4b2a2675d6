"""Project-root discovery for scoped API extraction."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import List, Sequence

from ..config import ExtractionRule


def discover_project_roots(rule: ExtractionRule, paths: Sequence[str]) -> List[str]:
    """Return the directories a scoped rule extracts from.

    Directories holding one of the rule's package-boundary markers come
    first, in path order, optionally joined with the rule's ``subdir``. When
    no marker exists, the first fallback directory containing any path
    wins. ``""`` stands for the repository root. Results are deduplicated
    preserving discovery order.
    """
    roots: List[str] = []
    if rule.markers:
        markers = set(rule.markers)
        for path in paths:
            pure = PurePosixPath(path)
            if pure.name not in markers:
                continue
            parent = pure.parent.as_posix()
            root = "" if parent == "." else parent
            if rule.subdir:
                root = f"{root}/{rule.subdir}" if root else rule.subdir
            roots.append(root)

    if not roots:
        for candidate in rule.fallback_dirs:
            prefix = candidate.rstrip("/") + "/"
            if any(path.startswith(prefix) for path in paths):
                roots.append(candidate.rstrip("/"))
                break

    return list(dict.fromkeys(roots))


def under_root(path: str, root: str) -> bool:
    return not root or path.startswith(root + "/")


__all__ = ["discover_project_roots", "under_root"]
