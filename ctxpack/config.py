"""Configuration loading for ctxpack (.ctxpack.yml).

The whole run is driven by one immutable `PackConfig`. It is built from the
defaults in `ctxpack.defaults`, overlaid with an optional `.ctxpack.yml` and
finally with command-line overrides. Every regex is compiled and every
threshold range-checked here, so a malformed value fails with
`ConfigurationError` before any repository file is read.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Sequence, Tuple

import yaml

from . import defaults
from .errors import ConfigurationError

ENUMERATION_MODES = ("auto", "tracked", "traversal")


class VisibilityStrategy(str, enum.Enum):
    """How a language marks declarations as public."""

    EXPLICIT_VISIBILITY = "explicit-visibility"
    CONVENTION_EXPORT = "convention-export"
    UNDERSCORE_CONVENTION = "underscore-convention"
    CAPITALIZATION_EXPORT = "capitalization-export"


@dataclass(frozen=True)
class EnumerationConfig:
    """Source adapter settings."""

    mode: str = "auto"
    max_depth: int = defaults.DEFAULT_MAX_DEPTH
    prune_dirs: FrozenSet[str] = frozenset(defaults.PRUNE_DIRS)


@dataclass(frozen=True)
class FilterConfig:
    """Security & noise filter predicates."""

    include: Tuple[re.Pattern[str], ...] = ()
    exclude: Tuple[re.Pattern[str], ...] = ()
    code_only: bool = False
    secret_pattern: re.Pattern[str] = re.compile(defaults.SECRET_PATTERN)
    binary_pattern: re.Pattern[str] = re.compile(defaults.BINARY_EXT_PATTERN)
    code_ext_pattern: re.Pattern[str] = re.compile(defaults.CODE_EXT_PATTERN)
    code_bare_pattern: re.Pattern[str] = re.compile(defaults.CODE_BARE_PATTERN)


@dataclass(frozen=True)
class StructuralQuery:
    """A language-agnostic query over a parsed manifest document."""

    kind: str
    names: FrozenSet[str] = frozenset()
    keys: FrozenSet[str] = frozenset()
    values: FrozenSet[str] = frozenset()
    operators: FrozenSet[str] = frozenset()
    min_matches: int = 1

    @property
    def label(self) -> str:
        if self.kind == "invocation":
            return "invocation"
        if self.keys:
            return "binding:key"
        if self.operators:
            return "binding:pin"
        return "binding"


@dataclass(frozen=True)
class PathRule:
    """Contextual multiplier applied when a candidate path matches."""

    pattern: re.Pattern[str]
    multiplier: float


@dataclass(frozen=True)
class FunnelConfig:
    """Thresholds, vocabulary, queries and path rules for manifest detection."""

    entropy_threshold: float = defaults.ENTROPY_THRESHOLD
    density_threshold: float = defaults.DENSITY_THRESHOLD
    final_threshold: float = defaults.FINAL_THRESHOLD
    max_structural_bytes: int = defaults.MAX_STRUCTURAL_BYTES
    keywords: Tuple[str, ...] = tuple(defaults.MANIFEST_KEYWORDS)
    queries: Tuple[StructuralQuery, ...] = ()
    path_rules: Tuple[PathRule, ...] = ()


@dataclass(frozen=True)
class ExtractionRule:
    """Per-language visibility strategy over a set of declaration patterns."""

    language: str
    title: str
    strategy: VisibilityStrategy
    extensions: Tuple[str, ...]
    patterns: Tuple[re.Pattern[str], ...]
    excluded_suffixes: Tuple[str, ...] = ()
    markers: Tuple[str, ...] = ()
    subdir: Optional[str] = None
    fallback_dirs: Tuple[str, ...] = ()
    empty_roots: str = "(no source files found)"
    empty_matches: str = "(no items found)"

    @property
    def scoped(self) -> bool:
        """Return True when extraction is limited to discovered project roots."""
        return bool(self.markers or self.fallback_dirs)


@dataclass(frozen=True)
class ApiConfig:
    """API surface extraction rules, in output order."""

    rules: Tuple[ExtractionRule, ...] = ()


@dataclass(frozen=True)
class HeatmapConfig:
    """Size estimator settings."""

    top_n: int = defaults.HEATMAP_TOP_N
    bytes_per_token: float = defaults.BYTES_PER_TOKEN


@dataclass(frozen=True)
class PackConfig:
    """Represents the effective settings for one context pack run."""

    root: Path
    output_dir: str = defaults.DEFAULT_OUTPUT_DIR
    enumeration: EnumerationConfig = field(default_factory=EnumerationConfig)
    filters: FilterConfig = field(default_factory=FilterConfig)
    funnel: FunnelConfig = field(default_factory=FunnelConfig)
    apis: ApiConfig = field(default_factory=ApiConfig)
    heatmap: HeatmapConfig = field(default_factory=HeatmapConfig)
    workers: int = defaults.DEFAULT_WORKERS
    collect_deps: bool = True
    skeleton: bool = True

    @property
    def output_path(self) -> Path:
        path = Path(self.output_dir).expanduser()
        return path if path.is_absolute() else self.root / path

    def with_overrides(
        self,
        *,
        mode: Optional[str] = None,
        max_depth: Optional[int] = None,
        include: Optional[Sequence[str]] = None,
        exclude: Optional[Sequence[str]] = None,
        code_only: Optional[bool] = None,
        output_dir: Optional[str] = None,
        collect_deps: Optional[bool] = None,
        skeleton: Optional[bool] = None,
    ) -> "PackConfig":
        """Return a copy with command-line style overrides applied and validated."""
        enumeration = self.enumeration
        if mode is not None:
            enumeration = replace(enumeration, mode=_as_mode(mode))
        if max_depth is not None:
            enumeration = replace(enumeration, max_depth=_as_depth(max_depth))

        filters = self.filters
        if include is not None:
            filters = replace(filters, include=compile_patterns(include, "filters.include"))
        if exclude is not None:
            filters = replace(filters, exclude=compile_patterns(exclude, "filters.exclude"))
        if code_only is not None:
            filters = replace(filters, code_only=bool(code_only))

        return replace(
            self,
            enumeration=enumeration,
            filters=filters,
            output_dir=self.output_dir if output_dir is None else _as_str(output_dir, "output.dir"),
            collect_deps=self.collect_deps if collect_deps is None else bool(collect_deps),
            skeleton=self.skeleton if skeleton is None else bool(skeleton),
        )


def default_config(root: Path) -> PackConfig:
    """Return the built-in configuration for a repository root."""
    return build_config({}, root=root)


def load_config(config_path: Path) -> PackConfig:
    """Load configuration from disk, falling back to defaults when absent."""
    config_file = _resolve_config_path(config_path)
    root = config_file.parent.resolve()
    if not config_file.exists():
        return default_config(root)
    data = _read_config(config_file)
    return build_config(data, root=root)


def build_config(data: Mapping[str, Any], *, root: Path) -> PackConfig:
    """Validate a raw configuration mapping into an immutable `PackConfig`."""
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{defaults.DEFAULT_CONFIG_FILENAME} must contain a mapping at the root")

    enum_data = _as_section(data, "enumeration")
    prune = set(_as_str_list(enum_data.get("prune_dirs"), "enumeration.prune_dirs", default=defaults.PRUNE_DIRS))
    prune.update(_as_str_list(enum_data.get("extra_prune_dirs"), "enumeration.extra_prune_dirs", default=()))
    enumeration = EnumerationConfig(
        mode=_as_mode(enum_data.get("mode", "auto")),
        max_depth=_as_depth(enum_data.get("max_depth", defaults.DEFAULT_MAX_DEPTH)),
        prune_dirs=frozenset(prune),
    )

    filter_data = _as_section(data, "filters")
    filters = FilterConfig(
        include=compile_patterns(_as_str_list(filter_data.get("include"), "filters.include"), "filters.include"),
        exclude=compile_patterns(_as_str_list(filter_data.get("exclude"), "filters.exclude"), "filters.exclude"),
        code_only=_as_bool(filter_data.get("code_only", False), "filters.code_only"),
    )

    funnel = _build_funnel(_as_section(data, "manifests"))
    apis = ApiConfig(rules=_build_rules(_as_section(data, "apis")))

    heatmap_data = _as_section(data, "heatmap")
    heatmap = HeatmapConfig(
        top_n=_as_int(heatmap_data.get("top_n", defaults.HEATMAP_TOP_N), "heatmap.top_n", minimum=1),
        bytes_per_token=_as_float(
            heatmap_data.get("bytes_per_token", defaults.BYTES_PER_TOKEN),
            "heatmap.bytes_per_token",
            minimum=0.0,
            exclusive=True,
        ),
    )

    output_data = _as_section(data, "output")
    return PackConfig(
        root=root,
        output_dir=_as_str(output_data.get("dir", defaults.DEFAULT_OUTPUT_DIR), "output.dir"),
        enumeration=enumeration,
        filters=filters,
        funnel=funnel,
        apis=apis,
        heatmap=heatmap,
        workers=_as_int(data.get("workers", defaults.DEFAULT_WORKERS), "workers", minimum=1),
        collect_deps=_as_bool(output_data.get("deps", True), "output.deps"),
        skeleton=_as_bool(output_data.get("skeleton", True), "output.skeleton"),
    )


def parse_patterns(value: str) -> List[str]:
    """Split a comma-separated CLI pattern list, dropping empty entries."""
    return [part.strip() for part in value.split(",") if part.strip()]


def compile_patterns(patterns: Iterable[str], field_name: str) -> Tuple[re.Pattern[str], ...]:
    compiled: List[re.Pattern[str]] = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise ConfigurationError(f"{field_name}: invalid regex {pattern!r} ({exc})") from exc
    return tuple(compiled)


# ---------------------------------------------------------------------------
# Section builders


def _build_funnel(section: Mapping[str, Any]) -> FunnelConfig:
    keywords = _as_str_list(section.get("keywords"), "manifests.keywords", default=defaults.MANIFEST_KEYWORDS)
    keywords.extend(_as_str_list(section.get("extra_keywords"), "manifests.extra_keywords", default=()))
    normalised = tuple(dict.fromkeys(keyword.lower() for keyword in keywords if keyword))
    if not normalised:
        raise ConfigurationError("manifests.keywords must not be empty")

    raw_queries = section.get("structural_queries", defaults.STRUCTURAL_QUERIES)
    if not isinstance(raw_queries, Sequence) or isinstance(raw_queries, (str, bytes)) or not raw_queries:
        raise ConfigurationError("manifests.structural_queries must be a non-empty list")
    queries = tuple(_build_query(raw, index) for index, raw in enumerate(raw_queries))

    raw_rules = section.get("path_rules", defaults.PATH_RULES)
    if not isinstance(raw_rules, Sequence) or isinstance(raw_rules, (str, bytes)):
        raise ConfigurationError("manifests.path_rules must be a list")
    path_rules = tuple(_build_path_rule(raw, index) for index, raw in enumerate(raw_rules))

    return FunnelConfig(
        entropy_threshold=_as_float(
            section.get("entropy_threshold", defaults.ENTROPY_THRESHOLD),
            "manifests.entropy_threshold",
            minimum=0.0,
            maximum=8.0,
            exclusive=True,
        ),
        density_threshold=_as_float(
            section.get("density_threshold", defaults.DENSITY_THRESHOLD),
            "manifests.density_threshold",
            minimum=0.0,
        ),
        final_threshold=_as_float(
            section.get("final_threshold", defaults.FINAL_THRESHOLD),
            "manifests.final_threshold",
            minimum=0.0,
        ),
        max_structural_bytes=_as_int(
            section.get("max_structural_bytes", defaults.MAX_STRUCTURAL_BYTES),
            "manifests.max_structural_bytes",
            minimum=1,
        ),
        keywords=normalised,
        queries=queries,
        path_rules=path_rules,
    )


def _build_query(raw: Any, index: int) -> StructuralQuery:
    field_name = f"manifests.structural_queries[{index}]"
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{field_name} must be a mapping")
    kind = raw.get("kind")
    if kind not in {"invocation", "binding"}:
        raise ConfigurationError(f"{field_name}.kind must be 'invocation' or 'binding', got {kind!r}")

    def _lowered(key: str) -> FrozenSet[str]:
        return frozenset(item.lower() for item in _as_str_list(raw.get(key), f"{field_name}.{key}"))

    query = StructuralQuery(
        kind=kind,
        names=_lowered("names"),
        keys=_lowered("keys"),
        values=_lowered("values"),
        operators=frozenset(_as_str_list(raw.get("operators"), f"{field_name}.operators")),
        min_matches=_as_int(raw.get("min_matches", 1), f"{field_name}.min_matches", minimum=1),
    )
    if kind == "invocation" and not query.names:
        raise ConfigurationError(f"{field_name}: invocation queries need at least one name")
    if kind == "binding" and not (query.keys or query.values or query.operators):
        raise ConfigurationError(f"{field_name}: binding queries need keys, values or operators")
    return query


def _build_path_rule(raw: Any, index: int) -> PathRule:
    field_name = f"manifests.path_rules[{index}]"
    if isinstance(raw, Mapping):
        pattern, multiplier = raw.get("pattern"), raw.get("multiplier")
    elif isinstance(raw, Sequence) and not isinstance(raw, (str, bytes)) and len(raw) == 2:
        pattern, multiplier = raw
    else:
        raise ConfigurationError(f"{field_name} must be a (pattern, multiplier) pair")
    compiled = compile_patterns([_as_str(pattern, f"{field_name}.pattern")], f"{field_name}.pattern")[0]
    return PathRule(
        pattern=compiled,
        multiplier=_as_float(multiplier, f"{field_name}.multiplier", minimum=0.0, exclusive=True),
    )


def _build_rules(section: Mapping[str, Any]) -> Tuple[ExtractionRule, ...]:
    fallback_dirs = _as_str_list(
        section.get("fallback_dirs"), "apis.fallback_dirs", default=defaults.FALLBACK_SOURCE_DIRS
    )
    raw_rules: List[Any] = list(defaults.LANGUAGE_RULES)
    extra = section.get("languages")
    if extra is not None:
        if not isinstance(extra, Sequence) or isinstance(extra, (str, bytes)):
            raise ConfigurationError("apis.languages must be a list")
        raw_rules.extend(extra)
    disabled = {name.lower() for name in _as_str_list(section.get("disabled"), "apis.disabled")}

    rules: Dict[str, ExtractionRule] = {}
    for index, raw in enumerate(raw_rules):
        rule = _build_rule(raw, index, fallback_dirs)
        if rule.language in disabled:
            continue
        # Later records replace earlier ones so a config file can redefine a language.
        rules[rule.language] = rule
    return tuple(rules.values())


def _build_rule(raw: Any, index: int, fallback_dirs: Sequence[str]) -> ExtractionRule:
    field_name = f"apis.languages[{index}]"
    if not isinstance(raw, Mapping):
        raise ConfigurationError(f"{field_name} must be a mapping")
    language = _as_str(raw.get("language"), f"{field_name}.language").lower()
    strategy_value = raw.get("strategy")
    try:
        strategy = VisibilityStrategy(strategy_value)
    except ValueError as exc:
        raise ConfigurationError(f"{field_name}.strategy: unknown visibility strategy {strategy_value!r}") from exc

    extensions = tuple(ext.lower() for ext in _as_str_list(raw.get("extensions"), f"{field_name}.extensions"))
    if not extensions:
        raise ConfigurationError(f"{field_name}.extensions must not be empty")
    patterns = compile_patterns(_as_str_list(raw.get("patterns"), f"{field_name}.patterns"), f"{field_name}.patterns")
    if not patterns:
        raise ConfigurationError(f"{field_name}.patterns must not be empty")

    rule_fallbacks = raw.get("fallback_dirs")
    if rule_fallbacks is not None and index < len(defaults.LANGUAGE_RULES):
        # Built-in rules follow the repository-wide fallback list.
        rule_fallbacks = list(fallback_dirs)

    subdir = raw.get("subdir")
    return ExtractionRule(
        language=language,
        title=_as_str(raw.get("title", language.upper()), f"{field_name}.title"),
        strategy=strategy,
        extensions=extensions,
        patterns=patterns,
        excluded_suffixes=tuple(_as_str_list(raw.get("excluded_suffixes"), f"{field_name}.excluded_suffixes")),
        markers=tuple(_as_str_list(raw.get("markers"), f"{field_name}.markers")),
        subdir=_as_str(subdir, f"{field_name}.subdir") if subdir is not None else None,
        fallback_dirs=tuple(_as_str_list(rule_fallbacks, f"{field_name}.fallback_dirs")),
        empty_roots=_as_str(raw.get("empty_roots", f"(no {language} source files found)"), f"{field_name}.empty_roots"),
        empty_matches=_as_str(raw.get("empty_matches", f"(no {language} items found)"), f"{field_name}.empty_matches"),
    )


# ---------------------------------------------------------------------------
# Internal helpers


def _resolve_config_path(config_path: Path) -> Path:
    config_path = config_path.expanduser()
    if config_path.is_dir():
        return (config_path / defaults.DEFAULT_CONFIG_FILENAME).resolve()
    return config_path.resolve()


def _read_config(path: Path) -> Dict[str, Any]:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Failed to read {path}: {exc}") from exc
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigurationError(f"{path.name} must contain a mapping at the root")
    return loaded


def _as_section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key)
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigurationError(f"{key} must be a mapping")
    return value


def _as_mode(value: Any) -> str:
    mode = str(value).strip().lower()
    if mode not in ENUMERATION_MODES:
        raise ConfigurationError(
            f"enumeration.mode must be one of {', '.join(ENUMERATION_MODES)}, got {value!r}"
        )
    return mode


def _as_depth(value: Any) -> int:
    return _as_int(
        value,
        "enumeration.max_depth",
        minimum=defaults.MIN_MAX_DEPTH,
        maximum=defaults.MAX_MAX_DEPTH,
    )


def _as_str(value: Any, field_name: str) -> str:
    if isinstance(value, str) and value.strip():
        return value
    raise ConfigurationError(f"{field_name} must be a non-empty string, got {value!r}")


def _as_bool(value: Any, field_name: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "yes", "1"}:
            return True
        if lowered in {"false", "no", "0"}:
            return False
    raise ConfigurationError(f"{field_name} must be a boolean, got {value!r}")


def _as_float(
    value: Any,
    field_name: str,
    *,
    minimum: Optional[float] = None,
    maximum: Optional[float] = None,
    exclusive: bool = False,
) -> float:
    if isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be a number, got {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{field_name} must be a number, got {value!r}") from exc
    if number != number:  # NaN
        raise ConfigurationError(f"{field_name} must be a number, got {value!r}")
    if minimum is not None and (number <= minimum if exclusive else number < minimum):
        bound = "greater than" if exclusive else "at least"
        raise ConfigurationError(f"{field_name} must be {bound} {minimum}, got {number}")
    if maximum is not None and number > maximum:
        raise ConfigurationError(f"{field_name} must be at most {maximum}, got {number}")
    return number


def _as_int(
    value: Any,
    field_name: str,
    *,
    minimum: Optional[int] = None,
    maximum: Optional[int] = None,
) -> int:
    if isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"{field_name} must be an integer, got {value!r}") from exc
    if isinstance(value, float) and not value.is_integer():
        raise ConfigurationError(f"{field_name} must be an integer, got {value!r}")
    if minimum is not None and number < minimum:
        raise ConfigurationError(f"{field_name} must be at least {minimum}, got {number}")
    if maximum is not None and number > maximum:
        raise ConfigurationError(f"{field_name} must be at most {maximum}, got {number}")
    return number


def _as_str_list(value: Any, field_name: str, *, default: Sequence[str] = ()) -> List[str]:
    if value is None:
        return list(default)
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        result: List[str] = []
        for item in value:
            if not isinstance(item, (str, int, float)) or isinstance(item, bool):
                raise ConfigurationError(f"{field_name} entries must be strings, got {item!r}")
            result.append(str(item))
        return result
    raise ConfigurationError(f"{field_name} must be a list of strings")


__all__ = [
    "ApiConfig",
    "ENUMERATION_MODES",
    "EnumerationConfig",
    "ExtractionRule",
    "FilterConfig",
    "FunnelConfig",
    "HeatmapConfig",
    "PackConfig",
    "PathRule",
    "StructuralQuery",
    "VisibilityStrategy",
    "build_config",
    "compile_patterns",
    "default_config",
    "load_config",
    "parse_patterns",
]
