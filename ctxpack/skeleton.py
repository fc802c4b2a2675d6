"""Tree-sitter structural skeleton (declarations without bodies) as XML."""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape, quoteattr

from .errors import OptionalToolUnavailable
from .logging import get_logger
from .models import RepoPath, path_sort_key

try:  # pragma: no cover - optional dependency
    from tree_sitter import Parser
    from tree_sitter_languages import get_language

    TREE_SITTER_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    Parser = None  # type: ignore[assignment]
    get_language = None  # type: ignore[assignment]
    TREE_SITTER_AVAILABLE = False

MAX_SKELETON_BYTES = 5 * 1024 * 1024

_LANGUAGE_BY_SUFFIX = {
    ".py": "python",
    ".pyi": "python",
    ".rs": "rust",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

# Wrappers whose inner declaration carries the body.
_WRAPPER_FIELDS = ("definition", "declaration")
_CONTAINER_HINTS = ("class", "impl", "trait", "interface", "module", "namespace")
_MAX_LINE = 200


class SkeletonBuilder:
    """Renders top-level declarations of supported files into one XML document."""

    def __init__(
        self,
        root: Path,
        *,
        max_bytes: int = MAX_SKELETON_BYTES,
        workers: int = 1,
        enabled: Optional[bool] = None,
    ) -> None:
        self._root = Path(root)
        self._max_bytes = max_bytes
        self._workers = max(1, workers)
        self._enabled = TREE_SITTER_AVAILABLE if enabled is None else enabled
        self._parsers: Dict[Tuple[int, str], Parser] = {}
        self._logger = get_logger("skeleton")

    def build(self, files: Sequence[RepoPath]) -> str:
        """Return the skeleton XML, or raise `OptionalToolUnavailable`."""
        if not self._enabled:
            raise OptionalToolUnavailable("tree-sitter", "install the 'skeleton' extra")
        selected = [
            item
            for item in files
            if item.is_text and item.size <= self._max_bytes and item.suffix in _LANGUAGE_BY_SUFFIX
        ]
        if not selected:
            raise OptionalToolUnavailable("tree-sitter", "no supported source files")

        if self._workers > 1 and len(selected) > 1:
            with ThreadPoolExecutor(max_workers=self._workers) as pool:
                results = list(pool.map(self._skeletonize, selected))
        else:
            results = [self._skeletonize(item) for item in selected]

        parsed = sorted((result for result in results if result is not None), key=lambda item: path_sort_key(item[0]))
        self._logger.info("Skeletonized %d of %d source files", len(parsed), len(selected))

        lines = ['<?xml version="1.0" encoding="UTF-8"?>', "<files>"]
        for path, skeleton in parsed:
            lines.append(f"  <file path={quoteattr(path)}>")
            lines.extend(f"    {escape(line)}" for line in skeleton)
            lines.append("  </file>")
        lines.append("</files>")
        return "\n".join(lines) + "\n"

    # ------------------------------------------------------------------
    # Internals

    def _skeletonize(self, item: RepoPath) -> Optional[Tuple[str, List[str]]]:
        language_key = _LANGUAGE_BY_SUFFIX[item.suffix]
        try:
            source = (self._root / item.path).read_bytes()
        except OSError as exc:
            self._logger.warning("Skipping skeleton for %s: %s", item.path, exc)
            return None
        parser = self._get_parser(language_key)
        tree = parser.parse(source)
        lines: List[str] = []
        self._collect(tree.root_node, source, lines, depth=0)
        if not lines:
            return None
        return item.path, lines

    def _get_parser(self, language_key: str) -> Parser:
        # Parsers are not thread-safe; keep one per worker thread.
        key = (threading.get_ident(), language_key)
        parser = self._parsers.get(key)
        if parser is None:
            parser = Parser()
            parser.set_language(get_language(language_key))
            self._parsers[key] = parser
        return parser

    def _collect(self, node, source: bytes, lines: List[str], depth: int) -> None:  # type: ignore[no-untyped-def]
        indent = "  " * depth
        for child in node.named_children:
            if "comment" in child.type:
                continue
            inner = child
            for field_name in _WRAPPER_FIELDS:
                wrapped = inner.child_by_field_name(field_name)
                if wrapped is not None:
                    inner = wrapped
                    break
            body = inner.child_by_field_name("body")
            if body is None:
                if depth == 0:
                    lines.append(indent + _first_line(_node_text(child, source)))
                continue
            header = source[child.start_byte : body.start_byte].decode("utf-8", errors="replace")
            lines.append(indent + _first_line(" ".join(header.split())) + " ...")
            if depth < 2 and any(hint in inner.type for hint in _CONTAINER_HINTS):
                self._collect(body, source, lines, depth + 1)


def _node_text(node, source: bytes) -> str:  # type: ignore[no-untyped-def]
    return source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")


def _first_line(text: str) -> str:
    line = text.strip().splitlines()[0] if text.strip() else ""
    return line if len(line) <= _MAX_LINE else line[: _MAX_LINE - 3] + "..."


__all__ = ["MAX_SKELETON_BYTES", "SkeletonBuilder", "TREE_SITTER_AVAILABLE"]
