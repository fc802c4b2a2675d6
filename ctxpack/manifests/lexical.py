"""Layer 1 signals: byte entropy and keyword density."""

from __future__ import annotations

import math
from collections import Counter
from typing import Iterable, Set


def shannon_entropy(data: bytes) -> float:
    """Return the Shannon entropy of ``data`` in bits per byte (0.0 to 8.0)."""
    if not data:
        return 0.0
    total = len(data)
    entropy = 0.0
    for count in Counter(data).values():
        probability = count / total
        entropy -= probability * math.log2(probability)
    return entropy


def keyword_hits(text: str, keywords: Iterable[str]) -> Set[str]:
    """Return the distinct keywords occurring anywhere in ``text`` (case-insensitive)."""
    lowered = text.lower()
    return {keyword for keyword in keywords if keyword in lowered}


def lexical_density(text: str, keywords: Iterable[str]) -> float:
    """Distinct keyword hits divided by ``line count + 1``."""
    hits = keyword_hits(text, keywords)
    return len(hits) / (len(text.splitlines()) + 1)


__all__ = ["keyword_hits", "lexical_density", "shannon_entropy"]
