"""Layer 3: path-based confidence multipliers."""

from __future__ import annotations

from typing import Sequence

from ..config import PathRule


def context_multiplier(path: str, rules: Sequence[PathRule]) -> float:
    """Return the multiplier of the first rule matching ``path`` (1.0 when none match)."""
    for rule in rules:
        if rule.pattern.search(path):
            return rule.multiplier
    return 1.0


__all__ = ["context_multiplier"]
