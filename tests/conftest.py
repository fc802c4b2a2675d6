from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from tests._fixtures.repo_builder import RepoBuilder


@pytest.fixture
def repo_builder(tmp_path: Path) -> RepoBuilder:
    """Repository rooted at ``tmp_path / "repo"``; ``tmp_path`` stays free for side files."""
    return RepoBuilder(tmp_path)


@pytest.fixture(autouse=True)
def _reset_ctxpack_logging() -> Iterator[None]:
    # CLI tests install handlers bound to captured streams.
    yield
    logger = logging.getLogger("ctxpack")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
