"""Structure overview: directory tree, file index and extension snapshot."""

from __future__ import annotations

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, List, Mapping, Sequence, Set, Tuple

from . import defaults
from .models import path_sort_key


@dataclass
class StructureOverview:
    """Repository layout summary rendered into the STRUCTURE section."""

    max_depth: int
    directories: List[Tuple[str, List[str]]] = field(default_factory=list)
    files: List[str] = field(default_factory=list)
    extensions: List[Tuple[str, int]] = field(default_factory=list)

    @property
    def project_roots(self) -> Dict[str, List[str]]:
        return {directory: labels for directory, labels in self.directories if labels}


def build_overview(
    paths: Sequence[str],
    max_depth: int,
    *,
    markers: Mapping[str, str] = defaults.PROJECT_MARKERS,
) -> StructureOverview:
    """Summarise ``paths`` (filtered, relative) for the STRUCTURE section.

    Directories are listed up to ``max_depth`` components deep, always
    including ``.``. A directory holding a package-boundary marker is
    labelled with its ecosystem.
    """
    files = sorted(set(paths), key=path_sort_key)
    return StructureOverview(
        max_depth=max_depth,
        directories=_directory_tree(files, max_depth, _root_labels(files, markers)),
        files=files,
        extensions=extension_snapshot(files),
    )


def extension_snapshot(paths: Sequence[str]) -> List[Tuple[str, int]]:
    """Count files per extension, most common first then by name."""
    bare = set(defaults.BARE_BUILD_BASENAMES)
    counts: Counter[str] = Counter()
    for path in paths:
        pure = PurePosixPath(path)
        if pure.name in bare:
            counts[pure.name] += 1
        elif pure.suffix:
            counts[pure.suffix[1:]] += 1
        else:
            counts["(noext)"] += 1
    return sorted(counts.items(), key=lambda item: (-item[1], item[0].lower(), item[0]))


# ---------------------------------------------------------------------------
# Internal helpers


def _root_labels(files: Sequence[str], markers: Mapping[str, str]) -> Dict[str, List[str]]:
    labels: Dict[str, Set[str]] = defaultdict(set)
    for path in files:
        pure = PurePosixPath(path)
        ecosystem = markers.get(pure.name)
        if ecosystem is None:
            continue
        parent = pure.parent.as_posix()
        labels[parent].add(ecosystem)
    return {directory: sorted(names) for directory, names in labels.items()}


def _directory_tree(
    files: Sequence[str],
    max_depth: int,
    labels: Mapping[str, List[str]],
) -> List[Tuple[str, List[str]]]:
    directories: Set[str] = {"."}
    for path in files:
        parts = PurePosixPath(path).parent.parts
        for depth in range(1, min(len(parts), max_depth) + 1):
            directories.add("/".join(parts[:depth]))
    return [(directory, list(labels.get(directory, []))) for directory in sorted(directories, key=path_sort_key)]


__all__ = ["StructureOverview", "build_overview", "extension_snapshot"]
