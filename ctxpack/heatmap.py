"""Byte-based size ranking with an approximate token estimate."""

from __future__ import annotations

from typing import Sequence

from .config import HeatmapConfig
from .models import RepoPath, SizeRecord, SizeReport


class SizeEstimator:
    """Ranks filtered files by size.

    Tokens are estimated as ``int(bytes / bytes_per_token)`` (3.5 by default);
    this is a budget hint, not a tokenizer.
    """

    def __init__(self, config: HeatmapConfig) -> None:
        self._config = config

    def estimate_tokens(self, size: int) -> int:
        return int(size / self._config.bytes_per_token)

    def rank(self, files: Sequence[RepoPath]) -> SizeReport:
        records = [SizeRecord(path=item.path, bytes=item.size, tokens=self.estimate_tokens(item.size)) for item in files]
        records.sort(key=lambda record: (-record.bytes, record.path.lower(), record.path))
        total_bytes = sum(record.bytes for record in records)
        return SizeReport(
            records=records[: self._config.top_n],
            total_bytes=total_bytes,
            total_tokens=self.estimate_tokens(total_bytes),
            top_n=self._config.top_n,
        )


__all__ = ["SizeEstimator"]
