"""Per-language public API surface extraction."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Sequence, Tuple

from ..config import ExtractionRule
from ..logging import get_logger, warn_per_file
from ..models import ApiSection, ApiSymbol, PerFileWarning, RepoPath
from .roots import discover_project_roots, under_root
from .rules import applies_to, classify_line


class ApiSurfaceExtractor:
    """Runs every extraction rule over the text-classified filtered files."""

    def __init__(self, rules: Sequence[ExtractionRule], root: Path, *, workers: int = 1) -> None:
        self._rules = tuple(rules)
        self._root = Path(root)
        self._workers = max(1, workers)
        self._logger = get_logger("api")

    def extract(self, files: Sequence[RepoPath]) -> Tuple[List[ApiSection], List[PerFileWarning]]:
        text_files = [item for item in files if item.is_text]
        all_paths = [item.path for item in files]
        sections: List[ApiSection] = []
        warnings: List[PerFileWarning] = []
        for rule in self._rules:
            section, rule_warnings = self._extract_rule(rule, text_files, all_paths)
            sections.append(section)
            warnings.extend(rule_warnings)
        warnings.sort(key=lambda item: (item.path.lower(), item.path))
        return sections, warnings

    def project_roots(self, paths: Sequence[str]) -> Dict[str, List[str]]:
        """Return discovered roots for every scoped rule, keyed by language."""
        return {
            rule.language: discover_project_roots(rule, paths)
            for rule in self._rules
            if rule.scoped
        }

    # ------------------------------------------------------------------
    # Internals

    def _extract_rule(
        self,
        rule: ExtractionRule,
        text_files: Sequence[RepoPath],
        all_paths: Sequence[str],
    ) -> Tuple[ApiSection, List[PerFileWarning]]:
        candidates = [item.path for item in text_files if applies_to(rule, item.path)]
        roots: List[str] = []
        if rule.scoped:
            roots = discover_project_roots(rule, all_paths)
            if not roots:
                return ApiSection(rule.language, rule.title, [], empty_marker=rule.empty_roots), []
            scoped: List[str] = []
            # Overlapping roots (e.g. "" and "web") yield the same file twice.
            for root in roots:
                scoped.extend(path for path in candidates if under_root(path, root))
            candidates = scoped
        elif not candidates:
            return ApiSection(rule.language, rule.title, [], empty_marker=rule.empty_roots), []

        if self._workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=self._workers) as pool:
                results = list(pool.map(lambda path: self._scan_file(rule, path), candidates))
        else:
            results = [self._scan_file(rule, path) for path in candidates]

        unique: Dict[Tuple[str, int, str], ApiSymbol] = {}
        warnings: List[PerFileWarning] = []
        for symbols, warning in results:
            if warning is not None and warning not in warnings:
                warnings.append(warning)
            for symbol in symbols:
                unique.setdefault(symbol.key, symbol)

        ordered = sorted(unique.values(), key=lambda item: (item.path.lower(), item.path, item.line, item.text))
        empty_marker = None if ordered else rule.empty_matches
        self._logger.debug("Extracted %d %s symbols", len(ordered), rule.language)
        return ApiSection(rule.language, rule.title, ordered, empty_marker=empty_marker, roots=roots), warnings

    def _scan_file(self, rule: ExtractionRule, path: str) -> Tuple[List[ApiSymbol], PerFileWarning | None]:
        try:
            text = (self._root / path).read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            return [], warn_per_file(self._logger, path, "api", f"unreadable: {exc.strerror or exc}")

        symbols: List[ApiSymbol] = []
        for number, line in enumerate(text.splitlines(), start=1):
            visibility = classify_line(rule, line)
            if visibility is None:
                continue
            symbols.append(
                ApiSymbol(
                    language=rule.language,
                    path=path,
                    line=number,
                    text=line.rstrip(),
                    visibility=visibility,
                )
            )
        return symbols, None


__all__ = ["ApiSurfaceExtractor"]
