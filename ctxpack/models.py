"""Core data models shared across ctxpack components."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class RepoPath:
    """A filtered repository file with its size and text classification."""

    path: str
    size: int
    is_text: bool

    @property
    def name(self) -> str:
        return PurePosixPath(self.path).name

    @property
    def suffix(self) -> str:
        return PurePosixPath(self.path).suffix.lower()

    @property
    def parent(self) -> str:
        parent = PurePosixPath(self.path).parent.as_posix()
        return "" if parent == "." else parent


@dataclass(frozen=True)
class PerFileWarning:
    """A non-fatal problem with one file; the file is treated as excluded."""

    path: str
    stage: str
    reason: str


@dataclass
class EnumerationResult:
    """Candidate paths produced by the source adapter."""

    paths: List[str]
    tracked: bool
    warnings: List[PerFileWarning] = field(default_factory=list)


@dataclass
class FilterResult:
    """Output of the security & noise filter."""

    paths: List[str]
    raw_count: int
    excluded: Dict[str, int] = field(default_factory=dict)

    @property
    def filtered_count(self) -> int:
        return len(self.paths)


@dataclass(frozen=True)
class ManifestCandidate:
    """A file that survived all three funnel layers."""

    path: str
    density: float
    validated: bool
    matched_query: str
    multiplier: float
    confidence: float


@dataclass
class FunnelResult:
    """Ranked manifest candidates plus per-layer rejection counts."""

    candidates: List[ManifestCandidate]
    rejected: Dict[str, int] = field(default_factory=dict)
    warnings: List[PerFileWarning] = field(default_factory=list)
    invocations: Dict[str, List[Tuple[str, Tuple[str, ...]]]] = field(default_factory=dict)


@dataclass(frozen=True)
class ApiSymbol:
    """One public declaration line found by the API surface extractor."""

    language: str
    path: str
    line: int
    text: str
    visibility: str

    @property
    def key(self) -> Tuple[str, int, str]:
        return (self.path, self.line, self.text)


@dataclass
class ApiSection:
    """Extraction output for a single language."""

    language: str
    title: str
    symbols: List[ApiSymbol]
    empty_marker: Optional[str] = None
    roots: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class SizeRecord:
    """Byte size and approximate token count for one path."""

    path: str
    bytes: int
    tokens: int


@dataclass
class SizeReport:
    """Bounded size heatmap plus totals over the whole filtered set."""

    records: List[SizeRecord]
    total_bytes: int
    total_tokens: int
    top_n: int


@dataclass
class OptionalSection:
    """Artifact section fed by an optional collaborator."""

    name: str
    body: Optional[str]
    absent_reason: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.body is not None


@dataclass
class PackSummary:
    """Run summary reported to the surrounding CLI or service layer."""

    root: str
    output_dir: Optional[str]
    raw_count: int
    filtered_count: int
    excluded: Dict[str, int]
    manifest_rejections: Dict[str, int]
    manifest_count: int
    warnings: List[PerFileWarning]
    tracked: bool
    total_bytes: int
    total_tokens: int
    dry_run: bool = False
    project_roots: Dict[str, List[str]] = field(default_factory=dict)
    artifacts: List[str] = field(default_factory=list)


def path_sort_key(path: str) -> Tuple[str, str]:
    """Case-insensitive ordering with a case-sensitive tie-break."""
    return (path.lower(), path)


__all__ = [
    "ApiSection",
    "ApiSymbol",
    "EnumerationResult",
    "FilterResult",
    "FunnelResult",
    "ManifestCandidate",
    "OptionalSection",
    "PackSummary",
    "PerFileWarning",
    "RepoPath",
    "SizeRecord",
    "SizeReport",
    "path_sort_key",
]
