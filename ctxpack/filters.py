"""Security & noise filter applied to enumerated paths."""

from __future__ import annotations

from typing import Callable, Dict, List, Sequence, Tuple

from .config import FilterConfig
from .logging import get_logger
from .models import FilterResult

# Exclusion reasons, in evaluation order. Secrets come first so a credential
# file is always counted as a secret even when it also looks binary.
REASON_SECRET = "secret"
REASON_BINARY = "binary"
REASON_EXCLUDE = "exclude-pattern"
REASON_INCLUDE = "include-pattern"
REASON_CODE_ONLY = "code-only"
# Counted by the orchestrator for kept paths that cannot be stat-ed or read.
REASON_UNREADABLE = "unreadable"

EXCLUSION_REASONS: Tuple[str, ...] = (
    REASON_SECRET,
    REASON_BINARY,
    REASON_EXCLUDE,
    REASON_INCLUDE,
    REASON_CODE_ONLY,
)


class SecurityFilter:
    """Removes secret-bearing, binary and user-excluded paths.

    Every predicate is independent; a path is kept only when all of them
    accept it, so the result never depends on predicate order. The filter
    looks at path strings only and never opens a file.
    """

    def __init__(self, config: FilterConfig) -> None:
        self._config = config
        self._logger = get_logger("filters")
        self._predicates: Sequence[Tuple[str, Callable[[str], bool]]] = (
            (REASON_SECRET, self._is_secret),
            (REASON_BINARY, self._is_binary),
            (REASON_EXCLUDE, self._is_excluded),
            (REASON_INCLUDE, self._misses_include),
            (REASON_CODE_ONLY, self._is_not_code),
        )

    def apply(self, paths: Sequence[str]) -> FilterResult:
        kept: List[str] = []
        excluded: Dict[str, int] = {reason: 0 for reason in EXCLUSION_REASONS}
        for path in paths:
            reason = self.rejection_reason(path)
            if reason is None:
                kept.append(path)
            else:
                excluded[reason] += 1
        self._logger.debug("Filter kept %d of %d paths", len(kept), len(paths))
        return FilterResult(paths=kept, raw_count=len(paths), excluded=excluded)

    def accepts(self, path: str) -> bool:
        return self.rejection_reason(path) is None

    def rejection_reason(self, path: str) -> str | None:
        """Return the first failing predicate's reason, or None when kept."""
        for reason, rejects in self._predicates:
            if rejects(path):
                return reason
        return None

    # ------------------------------------------------------------------
    # Predicates

    def _is_secret(self, path: str) -> bool:
        return bool(self._config.secret_pattern.search(path))

    def _is_binary(self, path: str) -> bool:
        return bool(self._config.binary_pattern.search(path))

    def _is_excluded(self, path: str) -> bool:
        return any(pattern.search(path) for pattern in self._config.exclude)

    def _misses_include(self, path: str) -> bool:
        if not self._config.include:
            return False
        return not any(pattern.search(path) for pattern in self._config.include)

    def _is_not_code(self, path: str) -> bool:
        if not self._config.code_only:
            return False
        if self._config.code_ext_pattern.search(path):
            return False
        return not self._config.code_bare_pattern.search(path)


__all__ = ["EXCLUSION_REASONS", "REASON_UNREADABLE", "SecurityFilter"]
