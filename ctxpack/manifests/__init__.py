"""Manifest classification funnel: lexical, structural and contextual layers."""

from .funnel import REJECTION_LAYERS, ManifestFunnel, RejectionCache
from .structure import StructuredDocument, StructureParseError, parse_document

__all__ = [
    "REJECTION_LAYERS",
    "ManifestFunnel",
    "RejectionCache",
    "StructureParseError",
    "StructuredDocument",
    "parse_document",
]
