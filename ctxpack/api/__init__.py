"""API surface extraction driven by per-language visibility strategies."""

from .extractor import ApiSurfaceExtractor
from .roots import discover_project_roots
from .rules import STRATEGIES, classify_line

__all__ = ["ApiSurfaceExtractor", "STRATEGIES", "classify_line", "discover_project_roots"]
