"""Error taxonomy for context pack runs."""

from __future__ import annotations


class CtxPackError(RuntimeError):
    """Base class for ctxpack failures."""


class ConfigurationError(CtxPackError):
    """Raised when configuration is invalid; fatal before any file is touched."""


class EnumerationError(ConfigurationError):
    """Raised when tracked enumeration is requested outside a repository."""


class OptionalToolUnavailable(CtxPackError):
    """Raised by optional collaborators when their tool or library is absent."""

    def __init__(self, tool: str, reason: str | None = None) -> None:
        self.tool = tool
        self.reason = reason
        message = f"optional tool unavailable: {tool}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


__all__ = [
    "ConfigurationError",
    "CtxPackError",
    "EnumerationError",
    "OptionalToolUnavailable",
]
