"""Logging helpers shared by the pack pipeline and its entrypoints."""

from __future__ import annotations

import logging
from pathlib import Path

from .models import PerFileWarning

_LOGGER_NAME = "ctxpack"
_CONSOLE_FORMAT = "[ctxpack] %(levelname)s %(message)s"
_FILE_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def get_logger(name: str | None = None) -> logging.Logger:
    """Return ``ctxpack.<name>``, or the package logger itself."""
    return logging.getLogger(f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME)


def configure_logging(
    *,
    verbose: bool = False,
    quiet: bool = False,
    log_file: Path | None = None,
) -> logging.Logger:
    """Install console (stderr) and optional file handlers on the package logger.

    ``verbose`` enables DEBUG progress; ``quiet`` keeps only warnings and
    errors, which is what ``ctxpack request`` wants since its Markdown goes to
    stdout. Calling this again replaces the previous handlers.
    """
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler()
    console.setFormatter(logging.Formatter(_CONSOLE_FORMAT))
    logger.addHandler(console)

    if log_file is not None:
        sink = logging.FileHandler(log_file, encoding="utf-8")
        # The file sink always records per-file detail.
        sink.setLevel(logging.DEBUG)
        sink.setFormatter(logging.Formatter(_FILE_FORMAT))
        logger.addHandler(sink)
        logger.setLevel(logging.DEBUG)
        console.setLevel(level)

    return logger


def warn_per_file(logger: logging.Logger, path: str, stage: str, reason: str) -> PerFileWarning:
    """Log a non-fatal per-file problem and return the record for the run summary."""
    logger.warning("%s: skipping %s (%s)", stage, path, reason)
    return PerFileWarning(path=path, stage=stage, reason=reason)


__all__ = ["configure_logging", "get_logger", "warn_per_file"]
