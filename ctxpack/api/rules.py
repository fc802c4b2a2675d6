"""Visibility strategy table used by the API surface extractor.

A language is a data record (`ctxpack.config.ExtractionRule`): a strategy
tag plus declaration patterns. The patterns expose named groups the
strategies read:

``qualifier``
    explicit visibility keyword, e.g. ``pub(crate)`` or ``public``
``export``
    an export / default-export marker
``name``
    the declared identifier
"""

from __future__ import annotations

import re
from typing import Callable, Dict, Optional

from ..config import ExtractionRule, VisibilityStrategy

VISIBILITY_PUBLIC = "public"
VISIBILITY_RESTRICTED = "restricted"
VISIBILITY_EXPORTED = "exported"

StrategyPredicate = Callable[[re.Match[str], str], Optional[str]]


def _explicit_visibility(match: re.Match[str], line: str) -> Optional[str]:
    qualifier = match.groupdict().get("qualifier") or ""
    return VISIBILITY_RESTRICTED if "(" in qualifier else VISIBILITY_PUBLIC


def _convention_export(match: re.Match[str], line: str) -> Optional[str]:
    if match.groupdict().get("export"):
        return VISIBILITY_EXPORTED
    name = match.groupdict().get("name") or ""
    if name[:1].isupper() and _is_top_level(line):
        return VISIBILITY_PUBLIC
    return None


def _underscore_convention(match: re.Match[str], line: str) -> Optional[str]:
    name = match.groupdict().get("name") or ""
    if not name or name.startswith("_") or not _is_top_level(line):
        return None
    return VISIBILITY_PUBLIC


def _capitalization_export(match: re.Match[str], line: str) -> Optional[str]:
    name = match.groupdict().get("name") or ""
    return VISIBILITY_EXPORTED if name[:1].isupper() else None


STRATEGIES: Dict[VisibilityStrategy, StrategyPredicate] = {
    VisibilityStrategy.EXPLICIT_VISIBILITY: _explicit_visibility,
    VisibilityStrategy.CONVENTION_EXPORT: _convention_export,
    VisibilityStrategy.UNDERSCORE_CONVENTION: _underscore_convention,
    VisibilityStrategy.CAPITALIZATION_EXPORT: _capitalization_export,
}


def classify_line(rule: ExtractionRule, line: str) -> Optional[str]:
    """Return the visibility of ``line`` under ``rule``, or None when it is not public surface."""
    predicate = STRATEGIES[rule.strategy]
    for pattern in rule.patterns:
        match = pattern.search(line)
        if match is None:
            continue
        visibility = predicate(match, line)
        if visibility is not None:
            return visibility
    return None


def applies_to(rule: ExtractionRule, path: str) -> bool:
    lowered = path.lower()
    if any(lowered.endswith(suffix) for suffix in rule.excluded_suffixes):
        return False
    return any(lowered.endswith(ext) for ext in rule.extensions)


def _is_top_level(line: str) -> bool:
    return bool(line) and not line[0].isspace()


__all__ = [
    "STRATEGIES",
    "VISIBILITY_EXPORTED",
    "VISIBILITY_PUBLIC",
    "VISIBILITY_RESTRICTED",
    "applies_to",
    "classify_line",
]
