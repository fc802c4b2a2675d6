"""REQUEST_FILE protocol: resolve follow-up file requests against the pack.

A consumer that has read ``PACK.txt`` asks for more content with a YAML
block such as::

    REQUEST_FILE:
      path: src/main.rs          # or  pattern: "src/**/*.rs"
      reason: Check the entry point
      range: lines 80-140        # or  range: "symbol: get_user"

Only files that survived enumeration and filtering can be resolved, so a
secret or binary file is never handed out.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any, List, Mapping, Optional, Sequence, Tuple

import yaml

from .errors import CtxPackError
from .models import path_sort_key

SYMBOL_CONTEXT_LINES = 5

_RANGE_RE = re.compile(r"^\s*(?:(lines?)\s*[:=]?\s*(.+)|(symbol)\s*[:=]\s*(.+))\s*$", re.IGNORECASE)


class RequestError(CtxPackError):
    """Base class for REQUEST_FILE failures."""


class InvalidRequest(RequestError):
    pass


class FileNotFound(RequestError):
    pass


class NoMatches(RequestError):
    pass


class InvalidPattern(RequestError):
    pass


class InvalidLineRange(RequestError):
    pass


class SymbolNotFound(RequestError):
    pass


@dataclass(frozen=True)
class RequestRange:
    kind: str
    value: str


@dataclass(frozen=True)
class FileRequest:
    """A parsed REQUEST_FILE block."""

    reason: str
    path: Optional[str] = None
    pattern: Optional[str] = None
    range: Optional[RequestRange] = None


@dataclass
class FileContent:
    path: str
    content: str
    total_lines: int
    range_info: Optional[str] = None


@dataclass
class ResolvedRequest:
    reason: str
    files: List[FileContent] = field(default_factory=list)

    def to_markdown(self) -> str:
        parts = [
            "# REQUEST_FILE Results",
            "",
            f"**Reason:** {self.reason}",
            "",
            f"**Files matched:** {len(self.files)}",
            "",
        ]
        for item in self.files:
            parts.extend(["---", "", f"## {item.path}", ""])
            if item.range_info:
                parts.append(f"*Showing: {item.range_info}*")
            else:
                parts.append(f"*Full file ({item.total_lines} lines)*")
            parts.extend(["", "```", item.content, "```", ""])
        return "\n".join(parts) + "\n"


def parse_request(text: str) -> FileRequest:
    """Parse a YAML REQUEST_FILE block (the top-level key is optional)."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise InvalidRequest(f"Request is not valid YAML: {exc}") from exc
    if isinstance(data, Mapping) and "REQUEST_FILE" in data:
        data = data["REQUEST_FILE"]
    if not isinstance(data, Mapping):
        raise InvalidRequest("Request must be a mapping with path/pattern, reason and optional range")
    return request_from_mapping(data)


def request_from_mapping(data: Mapping[str, Any]) -> FileRequest:
    path = data.get("path")
    pattern = data.get("pattern")
    if (path is None) == (pattern is None):
        raise InvalidRequest("Request needs exactly one of 'path' or 'pattern'")
    reason = data.get("reason")
    if not isinstance(reason, str) or not reason.strip():
        raise InvalidRequest("Request needs a non-empty 'reason'")
    return FileRequest(
        reason=reason.strip(),
        path=str(path).strip() if path is not None else None,
        pattern=str(pattern).strip() if pattern is not None else None,
        range=_parse_range(data.get("range")),
    )


class RequestResolver:
    """Resolves requests against the filtered path list of one repository."""

    def __init__(self, root: Path, available: Sequence[str]) -> None:
        self._root = Path(root)
        self._available = sorted(set(available), key=path_sort_key)
        self._available_set = set(self._available)

    def resolve(self, request: FileRequest) -> ResolvedRequest:
        resolved = ResolvedRequest(reason=request.reason)
        for path in self._matching(request):
            try:
                text = (self._root / path).read_text(encoding="utf-8", errors="replace")
            except OSError as exc:
                raise FileNotFound(f"File not found: {path} ({exc.strerror or exc})") from exc
            resolved.files.append(_slice(path, text, request.range))
        return resolved

    def _matching(self, request: FileRequest) -> List[str]:
        if request.path is not None:
            normalized = request.path.replace("\\", "/")
            while normalized.startswith("./"):
                normalized = normalized[2:]
            if normalized not in self._available_set:
                raise FileNotFound(f"File not found: {request.path}")
            return [normalized]
        pattern = request.pattern or ""
        _validate_pattern(pattern)
        matches = [path for path in self._available if glob_matches(path, pattern)]
        if not matches:
            raise NoMatches(f"No files match pattern: {pattern}")
        return matches


def glob_matches(path: str, pattern: str) -> bool:
    """Glob match where ``*`` may cross directories and ``**/`` may match nothing."""
    variants = {pattern}
    if pattern.startswith("**/"):
        variants.add(pattern[3:])
    for variant in list(variants):
        if "/**/" in variant:
            variants.add(variant.replace("/**/", "/"))
    return any(fnmatchcase(path, variant) for variant in variants)


# ---------------------------------------------------------------------------
# Internal helpers


def _validate_pattern(pattern: str) -> None:
    if not pattern:
        raise InvalidPattern("Invalid glob pattern: empty")
    if "***" in pattern:
        raise InvalidPattern(f"Invalid glob pattern: {pattern} (wildcards may not exceed '**')")
    depth = 0
    for char in pattern:
        if char == "[":
            depth += 1
        elif char == "]" and depth:
            depth -= 1
    if depth:
        raise InvalidPattern(f"Invalid glob pattern: {pattern} (unclosed '[')")


def _parse_range(raw: Any) -> Optional[RequestRange]:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        if "lines" in raw:
            return RequestRange(kind="lines", value=str(raw["lines"]).strip())
        if "symbol" in raw:
            return RequestRange(kind="symbol", value=str(raw["symbol"]).strip())
        raise InvalidRequest("range must contain 'lines' or 'symbol'")
    if isinstance(raw, int) and not isinstance(raw, bool):
        return RequestRange(kind="lines", value=str(raw))
    if isinstance(raw, str):
        if raw.strip()[:1].isdigit():
            return RequestRange(kind="lines", value=raw.strip())
        match = _RANGE_RE.match(raw)
        if match is None:
            raise InvalidLineRange(f"Invalid line range: {raw}")
        if match.group(1):
            return RequestRange(kind="lines", value=match.group(2).strip())
        return RequestRange(kind="symbol", value=match.group(4).strip())
    raise InvalidRequest(f"Unsupported range value: {raw!r}")


def _slice(path: str, text: str, request_range: Optional[RequestRange]) -> FileContent:
    lines = text.splitlines()
    total = len(lines)
    if request_range is None:
        return FileContent(path=path, content="\n".join(lines), total_lines=total)
    if request_range.kind == "lines":
        start, end = _line_bounds(request_range.value, total)
        return FileContent(
            path=path,
            content="\n".join(lines[start - 1 : end]),
            total_lines=total,
            range_info=f"lines {start}-{end} of {total}",
        )
    symbol = request_range.value
    for index, line in enumerate(lines):
        if symbol in line:
            start = max(0, index - SYMBOL_CONTEXT_LINES)
            end = min(total, index + SYMBOL_CONTEXT_LINES + 1)
            return FileContent(
                path=path,
                content="\n".join(lines[start:end]),
                total_lines=total,
                range_info=f"symbol '{symbol}' at line {index + 1} (±{SYMBOL_CONTEXT_LINES} lines context)",
            )
    raise SymbolNotFound(f"Symbol not found: {symbol} in {path}")


def _line_bounds(spec: str, total: int) -> Tuple[int, int]:
    try:
        if "-" in spec:
            start_text, end_text = spec.split("-", 1)
            start = int(start_text.strip())
            end = int(end_text.strip()) if end_text.strip() else total
        else:
            start = end = int(spec.strip())
    except ValueError as exc:
        raise InvalidLineRange(f"Invalid line range: {spec}") from exc
    if start < 1 or start > total or end < start or end > total:
        raise InvalidLineRange(f"Invalid line range: {spec} (file has {total} lines)")
    return start, end


__all__ = [
    "FileContent",
    "FileNotFound",
    "FileRequest",
    "InvalidLineRange",
    "InvalidPattern",
    "InvalidRequest",
    "NoMatches",
    "RequestError",
    "RequestRange",
    "RequestResolver",
    "ResolvedRequest",
    "SymbolNotFound",
    "glob_matches",
    "parse_request",
    "request_from_mapping",
]
