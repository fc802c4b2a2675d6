"""Three-layer manifest classification funnel."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set, Tuple

from ..config import FunnelConfig
from ..logging import get_logger, warn_per_file
from ..models import FunnelResult, ManifestCandidate, PerFileWarning, RepoPath
from .context import context_multiplier
from .lexical import lexical_density, shannon_entropy
from .structure import StructureParseError, first_matching_query, matching_invocations, parse_document

REJECT_NON_TEXT = "non-text"
REJECT_OVERSIZED = "oversized"
REJECT_UNREADABLE = "unreadable"
REJECT_ENTROPY = "entropy"
REJECT_DENSITY = "density"
REJECT_STRUCTURE = "structure"
REJECT_CONFIDENCE = "confidence"

REJECTION_LAYERS: Tuple[str, ...] = (
    REJECT_NON_TEXT,
    REJECT_OVERSIZED,
    REJECT_UNREADABLE,
    REJECT_ENTROPY,
    REJECT_DENSITY,
    REJECT_STRUCTURE,
    REJECT_CONFIDENCE,
)


class RejectionCache:
    """Paths that failed structural validation during one funnel run."""

    def __init__(self) -> None:
        self._paths: Set[str] = set()
        self._lock = threading.Lock()

    def add(self, path: str) -> None:
        with self._lock:
            self._paths.add(path)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._paths

    def __len__(self) -> int:
        with self._lock:
            return len(self._paths)

    def snapshot(self) -> List[str]:
        with self._lock:
            return sorted(self._paths)


@dataclass
class _Outcome:
    path: str
    candidate: Optional[ManifestCandidate] = None
    rejected: Optional[str] = None
    warning: Optional[PerFileWarning] = None
    invocations: List[Tuple[str, Tuple[str, ...]]] = field(default_factory=list)


class ManifestFunnel:
    """Identifies dependency/build-declaration files by content alone.

    One instance belongs to one pipeline run; its `RejectionCache` lives and
    dies with it.
    """

    def __init__(self, config: FunnelConfig, root: Path, *, workers: int = 1) -> None:
        self._config = config
        self._root = Path(root)
        self._workers = max(1, workers)
        self._logger = get_logger("manifests")
        self.rejection_cache = RejectionCache()

    def classify(self, files: Sequence[RepoPath]) -> FunnelResult:
        if self._workers > 1 and len(files) > 1:
            with ThreadPoolExecutor(max_workers=self._workers) as pool:
                outcomes = list(pool.map(self._evaluate, files))
        else:
            outcomes = [self._evaluate(item) for item in files]

        candidates: List[ManifestCandidate] = []
        rejected: Dict[str, int] = {layer: 0 for layer in REJECTION_LAYERS}
        warnings: List[PerFileWarning] = []
        invocations: Dict[str, List[Tuple[str, Tuple[str, ...]]]] = {}
        for outcome in outcomes:
            if outcome.warning is not None:
                warnings.append(outcome.warning)
            if outcome.candidate is not None:
                candidates.append(outcome.candidate)
                if outcome.invocations:
                    invocations[outcome.path] = outcome.invocations
            elif outcome.rejected is not None:
                rejected[outcome.rejected] += 1

        candidates.sort(key=lambda item: (-item.confidence, item.path.lower(), item.path))
        warnings.sort(key=lambda item: (item.path.lower(), item.path))
        self._logger.info(
            "Manifest funnel kept %d of %d files (%d structurally rejected)",
            len(candidates),
            len(files),
            rejected[REJECT_STRUCTURE],
        )
        return FunnelResult(candidates=candidates, rejected=rejected, warnings=warnings, invocations=invocations)

    # ------------------------------------------------------------------
    # Per-file evaluation

    def _evaluate(self, item: RepoPath) -> _Outcome:
        path = item.path
        if path in self.rejection_cache:
            return _Outcome(path=path, rejected=REJECT_STRUCTURE)
        if not item.is_text:
            return _Outcome(path=path, rejected=REJECT_NON_TEXT)
        if item.size > self._config.max_structural_bytes:
            return _Outcome(
                path=path,
                rejected=REJECT_OVERSIZED,
                warning=self._warn(path, f"larger than {self._config.max_structural_bytes} bytes"),
            )

        try:
            data = (self._root / path).read_bytes()
        except OSError as exc:
            return _Outcome(
                path=path,
                rejected=REJECT_UNREADABLE,
                warning=self._warn(path, f"unreadable: {exc.strerror or exc}"),
            )

        # Layer 1: lexical filtering.
        if shannon_entropy(data) > self._config.entropy_threshold:
            return _Outcome(path=path, rejected=REJECT_ENTROPY)
        text = data.decode("utf-8", errors="replace")
        density = lexical_density(text, self._config.keywords)
        if density < self._config.density_threshold:
            return _Outcome(path=path, rejected=REJECT_DENSITY)

        # Layer 2: structural validation.
        try:
            document = parse_document(path, text)
        except StructureParseError as exc:
            self._logger.debug("Structural parse failed for %s: %s", path, exc)
            self.rejection_cache.add(path)
            return _Outcome(path=path, rejected=REJECT_STRUCTURE)
        except Exception as exc:  # any other parser failure
            self.rejection_cache.add(path)
            return _Outcome(
                path=path,
                rejected=REJECT_STRUCTURE,
                warning=self._warn(path, f"structural parse error: {exc}"),
            )
        query = first_matching_query(document, self._config.queries)
        if query is None:
            self.rejection_cache.add(path)
            return _Outcome(path=path, rejected=REJECT_STRUCTURE)

        # Layer 3: contextual scoring.
        multiplier = context_multiplier(path, self._config.path_rules)
        confidence = density * multiplier
        if confidence < self._config.final_threshold:
            return _Outcome(path=path, rejected=REJECT_CONFIDENCE)

        candidate = ManifestCandidate(
            path=path,
            density=density,
            validated=True,
            matched_query=query.label,
            multiplier=multiplier,
            confidence=confidence,
        )
        return _Outcome(
            path=path,
            candidate=candidate,
            invocations=matching_invocations(document, self._config.queries),
        )

    def _warn(self, path: str, reason: str) -> PerFileWarning:
        return warn_per_file(self._logger, path, "manifests", reason)


__all__ = ["REJECTION_LAYERS", "ManifestFunnel", "RejectionCache"]
