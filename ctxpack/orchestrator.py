"""Pipeline orchestration for pack and request runs."""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Any, Callable, List, Mapping, Optional, Sequence, Tuple

from .api import ApiSurfaceExtractor
from .composer import ArtifactComposer, PackContent
from .config import PackConfig, load_config
from .deps import DependencyCollector
from .errors import ConfigurationError, OptionalToolUnavailable
from .filters import REASON_UNREADABLE, SecurityFilter
from .heatmap import SizeEstimator
from .logging import get_logger
from .manifests import ManifestFunnel
from .models import FunnelResult, OptionalSection, PackSummary, PerFileWarning, RepoPath, path_sort_key
from .overview import build_overview
from .request import FileRequest, RequestResolver, ResolvedRequest
from .skeleton import SkeletonBuilder
from .source import Runner, SourceAdapter


class PackOrchestrator:
    """Coordinates enumeration, filtering, analysis and artifact composition."""

    def __init__(
        self,
        source: SourceAdapter | None = None,
        composer: ArtifactComposer | None = None,
        deps_runner: Optional[Runner] = None,
        skeleton_factory: Optional[Callable[[PackConfig], SkeletonBuilder]] = None,
    ) -> None:
        self.source = source or SourceAdapter()
        self.composer = composer or ArtifactComposer()
        self._deps_runner = deps_runner
        self._skeleton_factory = skeleton_factory or _default_skeleton
        self.logger = get_logger("orchestrator")

    def load(
        self,
        path: str | Path,
        *,
        config_path: str | Path | None = None,
        overrides: Optional[Mapping[str, Any]] = None,
    ) -> PackConfig:
        """Resolve the repository root, load `.ctxpack.yml` and apply overrides."""
        root = Path(path).expanduser().resolve()
        if not root.is_dir():
            raise ConfigurationError(f"Repository path is not a directory: {path}")
        source = Path(config_path).expanduser() if config_path is not None else root
        if config_path is not None and not source.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")
        config = load_config(source)
        if config.root != root:
            config = replace(config, root=root)
        if overrides:
            config = config.with_overrides(**overrides)
        return config

    def run(
        self,
        config: PackConfig,
        *,
        generated_at: Optional[str] = None,
        dry_run: bool = False,
    ) -> PackSummary:
        """Build the context pack described by ``config``.

        Nothing is written until configuration and enumeration have
        succeeded; a dry run computes the same summary and writes nothing.
        """
        root = config.root
        output_dir = config.output_path
        self.logger.info("Packing %s", root)

        raw_paths, tracked, warnings = self._enumerate(config)
        filter_result = SecurityFilter(config.filters).apply(raw_paths)
        files, describe_warnings = self.source.describe(root, filter_result.paths)
        warnings.extend(describe_warnings)
        self.logger.debug("Filter kept %d of %d paths", filter_result.filtered_count, filter_result.raw_count)

        funnel = ManifestFunnel(config.funnel, root, workers=config.workers)
        extractor = ApiSurfaceExtractor(config.apis.rules, root, workers=config.workers)
        estimator = SizeEstimator(config.heatmap)
        with ThreadPoolExecutor(max_workers=3) as pool:
            funnel_future = pool.submit(funnel.classify, files)
            api_future = pool.submit(extractor.extract, files)
            size_future = pool.submit(estimator.rank, files)
            funnel_result = funnel_future.result()
            api_sections, api_warnings = api_future.result()
            size_report = size_future.result()
        warnings.extend(funnel_result.warnings)
        warnings.extend(api_warnings)
        warnings.sort(key=lambda item: (path_sort_key(item.path), item.stage, item.reason))

        paths = [item.path for item in files]
        excluded = dict(filter_result.excluded)
        # Files that vanished or could not be read after filtering are not kept either.
        excluded[REASON_UNREADABLE] = filter_result.filtered_count - len(files)
        overview = build_overview(paths, config.enumeration.max_depth)
        summary = PackSummary(
            root=str(root),
            output_dir=None if dry_run else str(output_dir),
            raw_count=filter_result.raw_count,
            filtered_count=len(files),
            excluded=excluded,
            manifest_rejections=dict(funnel_result.rejected),
            manifest_count=len(funnel_result.candidates),
            warnings=warnings,
            tracked=tracked,
            total_bytes=size_report.total_bytes,
            total_tokens=size_report.total_tokens,
            dry_run=dry_run,
            project_roots=extractor.project_roots(paths),
        )
        if dry_run:
            self.logger.info(
                "Dry run: %d of %d files would be packed into %s",
                summary.filtered_count,
                summary.raw_count,
                output_dir,
            )
            return summary

        content = PackContent(
            project_name=root.name,
            output_dir=config.output_dir,
            summary=summary,
            filters=filter_result,
            overview=overview,
            funnel=funnel_result,
            api_sections=api_sections,
            size=size_report,
            deps=self._deps_section(config, paths, funnel_result),
            skeleton=self._skeleton_section(config, files),
            code_only=config.filters.code_only,
            bytes_per_token=config.heatmap.bytes_per_token,
            warnings=warnings,
            generated_at=generated_at,
        )
        artifacts = self.composer.compose(content)
        written = self.composer.write(artifacts, output_dir)
        summary.artifacts = [str(path) for path in written]
        return summary

    def list_files(self, config: PackConfig) -> List[str]:
        """Return the filtered path list a REQUEST_FILE block may resolve against."""
        raw_paths, _, _ = self._enumerate(config)
        return SecurityFilter(config.filters).apply(raw_paths).paths

    def resolve_request(self, config: PackConfig, request: FileRequest) -> ResolvedRequest:
        resolver = RequestResolver(config.root, self.list_files(config))
        return resolver.resolve(request)

    # ------------------------------------------------------------------
    # Internals

    def _enumerate(self, config: PackConfig) -> Tuple[List[str], bool, List[PerFileWarning]]:
        result = self.source.enumerate(config.root, config.enumeration.mode, config.enumeration.prune_dirs)
        output_prefix = _relative_prefix(config.output_path, config.root)
        paths = result.paths
        if output_prefix:
            # Previous artifacts are never re-ingested.
            paths = [path for path in paths if not path.startswith(output_prefix)]
        return paths, result.tracked, list(result.warnings)

    def _deps_section(
        self, config: PackConfig, paths: Sequence[str], funnel_result: FunnelResult
    ) -> OptionalSection:
        if not config.collect_deps:
            return OptionalSection(name="DEPS", body=None, absent_reason="disabled")
        collector = DependencyCollector(config.root, self._deps_runner)
        try:
            return collector.collect(paths, funnel_result)
        except OptionalToolUnavailable as exc:
            return OptionalSection(name="DEPS", body=None, absent_reason=str(exc))

    def _skeleton_section(self, config: PackConfig, files: Sequence[RepoPath]) -> OptionalSection:
        if not config.skeleton:
            return OptionalSection(name="SKELETON", body=None, absent_reason="disabled")
        builder = self._skeleton_factory(config)
        try:
            return OptionalSection(name="SKELETON", body=builder.build(files))
        except OptionalToolUnavailable as exc:
            self.logger.info("Skeleton skipped: %s", exc)
            return OptionalSection(name="SKELETON", body=None, absent_reason=exc.reason or str(exc))


def _default_skeleton(config: PackConfig) -> SkeletonBuilder:
    return SkeletonBuilder(config.root, workers=config.workers)


def _relative_prefix(output_path: Path, root: Path) -> Optional[str]:
    try:
        relative = output_path.resolve().relative_to(root.resolve())
    except ValueError:
        return None
    text = relative.as_posix()
    if text in {"", "."}:
        return None
    return text + "/"


__all__ = ["PackOrchestrator"]
