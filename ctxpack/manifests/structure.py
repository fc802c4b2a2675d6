"""Layer 2: parse file content into a language-agnostic document and query it.

Files in a recognised data format (JSON, TOML, YAML, XML) are parsed with the
matching library and flattened into key bindings. Everything else goes
through a line-oriented scanner that understands the shapes build files
share: ``name(args)`` calls, ``name { ... }`` blocks, ``name "arg"`` commands,
``key <op> value`` bindings and ``[section]`` headers. The scanner also
checks bracket balance, so text that merely mentions dependency vocabulary
without a coherent structure fails to parse.
"""

from __future__ import annotations

import json
import re
import tomllib
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import yaml

from ..config import StructuralQuery

FORMAT_JSON = "json"
FORMAT_TOML = "toml"
FORMAT_YAML = "yaml"
FORMAT_XML = "xml"
FORMAT_GENERIC = "generic"

_XML_SUFFIXES = {".xml", ".pom", ".csproj", ".fsproj", ".vbproj", ".vcxproj", ".props", ".targets", ".nuspec"}
_TOML_BASENAMES = {"pipfile"}

_CLOSERS = {")": "(", "]": "[", "}": "{"}

_CALL_RE = re.compile(r"(?m)^[ \t]*([A-Za-z_][\w.:-]*)[ \t]*\(")
_BLOCK_RE = re.compile(r"(?m)^[ \t]*([A-Za-z_][\w.-]*)[ \t]*\{")
_COMMAND_RE = re.compile(
    r"(?m)^[ \t]*([A-Za-z_][\w-]*)[ \t]+(?:[\"']([^\"'\n]+)[\"']|([\w.-]+/[\w./@-]+))"
)
_SECTION_RE = re.compile(r"(?m)^[ \t]*\[\[?([^\[\]\n]+)\]\]?[ \t]*$")
_BINDING_RE = re.compile(
    r"(?m)^[ \t]*([A-Za-z_][\w.-]*)(?:\[[^\]\n]*\])?[ \t]*"
    r"(===|==|>=|<=|~=|!=|:=|\?=|\+=|=|:)(?![=:])[ \t]*(.*)$"
)
_ARG_SPLIT_RE = re.compile(r"[\s,]+")


class StructureParseError(ValueError):
    """Raised when file content cannot be parsed into a structured document."""


@dataclass(frozen=True)
class Invocation:
    """A call, block or command such as ``find_package(Boost)``."""

    name: str
    args: Tuple[str, ...]
    line: int


@dataclass(frozen=True)
class Binding:
    """A key bound to a value, e.g. ``requests>=2.0`` or ``"dependencies": {...}``."""

    key: str
    op: str
    value: str
    line: int


@dataclass
class StructuredDocument:
    format: str
    invocations: List[Invocation] = field(default_factory=list)
    bindings: List[Binding] = field(default_factory=list)


def detect_format(path: str, text: str) -> str:
    pure = PurePosixPath(path)
    suffix = pure.suffix.lower()
    if suffix == ".json":
        return FORMAT_JSON
    if suffix == ".toml" or pure.name.lower() in _TOML_BASENAMES:
        return FORMAT_TOML
    if suffix in {".yaml", ".yml"}:
        return FORMAT_YAML
    if suffix in _XML_SUFFIXES:
        return FORMAT_XML
    head = text.lstrip()[:64]
    if head.startswith("{"):
        return FORMAT_JSON
    if head.startswith("<?xml") or head.startswith("<project"):
        return FORMAT_XML
    return FORMAT_GENERIC


def parse_document(path: str, text: str) -> StructuredDocument:
    """Parse ``text`` into a `StructuredDocument` or raise `StructureParseError`."""
    fmt = detect_format(path, text)
    if fmt == FORMAT_JSON:
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as exc:
            raise StructureParseError(f"invalid JSON: {exc}") from exc
        return StructuredDocument(format=fmt, bindings=list(_flatten(data)))
    if fmt == FORMAT_TOML:
        try:
            data = tomllib.loads(text)
        except (tomllib.TOMLDecodeError, RecursionError) as exc:
            raise StructureParseError(f"invalid TOML: {exc}") from exc
        return StructuredDocument(format=fmt, bindings=list(_flatten(data)))
    if fmt == FORMAT_YAML:
        try:
            documents = list(yaml.safe_load_all(text))
        except (yaml.YAMLError, RecursionError) as exc:
            raise StructureParseError(f"invalid YAML: {exc}") from exc
        bindings: List[Binding] = []
        for document in documents:
            bindings.extend(_flatten(document))
        return StructuredDocument(format=fmt, bindings=bindings)
    if fmt == FORMAT_XML:
        try:
            root = ET.fromstring(text)
        except (ET.ParseError, RecursionError) as exc:
            raise StructureParseError(f"invalid XML: {exc}") from exc
        return StructuredDocument(format=fmt, bindings=list(_xml_bindings(root)))
    return _scan_generic(text)


def query_matches(document: StructuredDocument, query: StructuralQuery) -> bool:
    if query.kind == "invocation":
        return any(invocation.name.lower() in query.names for invocation in document.invocations)
    hits = 0
    for binding in document.bindings:
        if query.keys and binding.key not in query.keys:
            continue
        if query.values and binding.value.lower() not in query.values:
            continue
        if query.operators and binding.op not in query.operators:
            continue
        hits += 1
        if hits >= query.min_matches:
            return True
    return False


def first_matching_query(
    document: StructuredDocument, queries: Sequence[StructuralQuery]
) -> Optional[StructuralQuery]:
    for query in queries:
        if query_matches(document, query):
            return query
    return None


def matching_invocations(
    document: StructuredDocument, queries: Iterable[StructuralQuery]
) -> List[Tuple[str, Tuple[str, ...]]]:
    """Return ``(name, args)`` for every invocation named by an invocation query."""
    names = set()
    for query in queries:
        if query.kind == "invocation":
            names.update(query.names)
    return [
        (invocation.name.lower(), invocation.args)
        for invocation in document.invocations
        if invocation.name.lower() in names
    ]


# ---------------------------------------------------------------------------
# Structured formats


def _flatten(data: Any, depth: int = 0) -> Iterable[Binding]:
    if depth > 32:
        return
    if isinstance(data, dict):
        for key, value in data.items():
            scalar = "" if isinstance(value, (dict, list)) else _scalar(value)
            yield Binding(key=str(key).lower(), op="=", value=scalar, line=0)
            yield from _flatten(value, depth + 1)
    elif isinstance(data, list):
        for item in data:
            yield from _flatten(item, depth + 1)


def _scalar(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _xml_bindings(root: ET.Element) -> Iterable[Binding]:
    for element in root.iter():
        if not isinstance(element.tag, str):
            continue
        tag = element.tag.rsplit("}", 1)[-1].lower()
        yield Binding(key=tag, op="=", value=(element.text or "").strip(), line=0)
        for name, value in element.attrib.items():
            yield Binding(key=name.rsplit("}", 1)[-1].lower(), op="=", value=value, line=0)


# ---------------------------------------------------------------------------
# Generic scanner


def _scan_generic(text: str) -> StructuredDocument:
    code = _strip_comments(text)
    document = StructuredDocument(format=FORMAT_GENERIC)

    for match in _CALL_RE.finditer(code):
        args_text = _balanced_args(code, match.end())
        document.invocations.append(
            Invocation(
                name=match.group(1),
                args=_split_args(args_text),
                line=_line_of(code, match.start(1)),
            )
        )
    for match in _BLOCK_RE.finditer(code):
        document.invocations.append(Invocation(name=match.group(1), args=(), line=_line_of(code, match.start(1))))
    for match in _COMMAND_RE.finditer(code):
        argument = match.group(2) or match.group(3)
        document.invocations.append(
            Invocation(name=match.group(1), args=(argument,), line=_line_of(code, match.start(1)))
        )
    for match in _SECTION_RE.finditer(code):
        section = match.group(1).strip().lower()
        document.bindings.append(Binding(key=section, op="[]", value="", line=_line_of(code, match.start(1))))
    for match in _BINDING_RE.finditer(code):
        document.bindings.append(
            Binding(
                key=match.group(1).lower(),
                op=match.group(2),
                value=match.group(3).strip().strip("\"'"),
                line=_line_of(code, match.start(1)),
            )
        )

    document.invocations.sort(key=lambda item: (item.line, item.name))
    document.bindings.sort(key=lambda item: (item.line, item.key))
    return document


def _strip_comments(text: str) -> str:
    """Drop ``#`` and ``//`` comments and verify bracket balance.

    A comment marker counts only at the start of a line or after whitespace,
    so URLs such as ``https://host/x`` survive.

    String literals are kept intact; a single- or double-quoted string ends
    at the end of its line, triple-quoted strings may span lines.
    """
    out: List[str] = []
    stack: List[str] = []
    index = 0
    length = len(text)
    quote: Optional[str] = None
    while index < length:
        char = text[index]
        if quote is not None:
            if char == "\\" and index + 1 < length:
                out.append(text[index : index + 2])
                index += 2
                continue
            if len(quote) == 3 and text.startswith(quote, index):
                out.append(quote)
                index += 3
                quote = None
                continue
            if len(quote) == 1 and (char == quote or char == "\n"):
                quote = None
            out.append(char)
            index += 1
            continue

        if (char == "#" or text.startswith("//", index)) and (index == 0 or text[index - 1] in " \t\n"):
            end = text.find("\n", index)
            index = length if end == -1 else end
            continue
        if char in "\"'":
            quote = char * 3 if text.startswith(char * 3, index) else char
            out.append(quote)
            index += len(quote)
            continue
        if char in "([{":
            stack.append(char)
        elif char in _CLOSERS:
            if not stack or stack[-1] != _CLOSERS[char]:
                raise StructureParseError(f"unbalanced {char!r} at line {text.count(chr(10), 0, index) + 1}")
            stack.pop()
        out.append(char)
        index += 1

    if quote is not None and len(quote) == 3:
        raise StructureParseError("unterminated triple-quoted string")
    if stack:
        raise StructureParseError(f"{len(stack)} unclosed bracket(s)")
    return "".join(out)


def _balanced_args(code: str, start: int) -> str:
    depth = 1
    index = start
    while index < len(code) and depth:
        char = code[index]
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
        index += 1
    return code[start : index - 1] if depth == 0 else code[start:index]


def _split_args(args_text: str) -> Tuple[str, ...]:
    tokens = (token.strip("\"'") for token in _ARG_SPLIT_RE.split(args_text))
    return tuple(token for token in tokens if token)


def _line_of(code: str, offset: int) -> int:
    return code.count("\n", 0, offset) + 1


__all__ = [
    "Binding",
    "FORMAT_GENERIC",
    "FORMAT_JSON",
    "FORMAT_TOML",
    "FORMAT_XML",
    "FORMAT_YAML",
    "Invocation",
    "StructureParseError",
    "StructuredDocument",
    "detect_format",
    "first_matching_query",
    "matching_invocations",
    "parse_document",
    "query_matches",
]
