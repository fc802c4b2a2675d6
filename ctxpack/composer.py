"""Artifact composition: PACK.txt, PACK.json and the optional skeleton XML."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import Environment, FileSystemLoader

from . import defaults
from .logging import get_logger
from .models import (
    ApiSection,
    FilterResult,
    FunnelResult,
    OptionalSection,
    PackSummary,
    PerFileWarning,
    SizeReport,
)
from .overview import StructureOverview

SECTION_ORDER: Tuple[Tuple[str, str], ...] = (
    ("PROJECT", "project.txt.j2"),
    ("STRUCTURE", "structure.txt.j2"),
    ("MANIFESTS", "manifests.txt.j2"),
    ("APIS", "apis.txt.j2"),
    ("DEPS", "deps.txt.j2"),
    ("GUIDE", "guide.txt.j2"),
)


@dataclass
class PackContent:
    """Everything the composer needs from one pipeline run."""

    project_name: str
    output_dir: str
    summary: PackSummary
    filters: FilterResult
    overview: StructureOverview
    funnel: FunnelResult
    api_sections: List[ApiSection]
    size: SizeReport
    deps: OptionalSection
    skeleton: OptionalSection
    code_only: bool = False
    bytes_per_token: float = defaults.BYTES_PER_TOKEN
    warnings: List[PerFileWarning] = field(default_factory=list)
    generated_at: Optional[str] = None


@dataclass
class PackArtifacts:
    pack_text: str
    pack_json: str
    skeleton_xml: Optional[str] = None


class ArtifactComposer:
    """Renders pack content with Jinja2 templates and writes the output files."""

    def __init__(self, templates_dir: Path | None = None) -> None:
        directories = []
        if templates_dir is not None:
            directories.append(str(templates_dir))
        directories.append(str(Path(__file__).with_name("templates")))
        self._env = Environment(
            loader=FileSystemLoader(directories),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self._logger = get_logger("composer")

    def compose(self, content: PackContent) -> PackArtifacts:
        context = self._context(content)
        sections = []
        for name, template_name in SECTION_ORDER:
            body = self._env.get_template(template_name).render(**context)
            sections.append((name, body.rstrip("\n")))
        pack_text = self._env.get_template("pack.txt.j2").render(sections=sections)
        pack_json = json.dumps(self._payload(content), indent=2, sort_keys=True, ensure_ascii=False) + "\n"
        return PackArtifacts(pack_text=pack_text, pack_json=pack_json, skeleton_xml=content.skeleton.body)

    def write(self, artifacts: PackArtifacts, output_dir: Path) -> List[Path]:
        """Overwrite the artifacts in ``output_dir``; a stale skeleton is removed.

        Every artifact is encoded before the directory is touched, and each
        file is replaced in one step, so a failure never leaves a truncated pack.
        """
        documents = [
            (defaults.PACK_FILENAME, artifacts.pack_text),
            (defaults.PACK_JSON_FILENAME, artifacts.pack_json),
        ]
        if artifacts.skeleton_xml is not None:
            documents.append((defaults.SKELETON_FILENAME, artifacts.skeleton_xml))
        encoded = [(output_dir / name, text.encode("utf-8")) for name, text in documents]

        output_dir.mkdir(parents=True, exist_ok=True)
        written = [_replace_file(path, data) for path, data in encoded]
        skeleton_path = output_dir / defaults.SKELETON_FILENAME
        if artifacts.skeleton_xml is None and skeleton_path.exists():
            skeleton_path.unlink()
        self._logger.info("Wrote %d artifact(s) to %s", len(written), output_dir)
        return written

    # ------------------------------------------------------------------
    # Internals

    def _context(self, content: PackContent) -> Dict[str, Any]:
        return {
            "delimiter": defaults.SECTION_DELIMITER,
            "project_name": content.project_name,
            "generated_at": content.generated_at,
            "output_dir": content.output_dir,
            "summary": content.summary,
            "excluded": sorted(content.summary.excluded.items()),
            "rejected": sorted(content.funnel.rejected.items()),
            "warnings": content.warnings,
            "code_only": content.code_only,
            "max_depth": content.overview.max_depth,
            "overview": content.overview,
            "extensions": content.overview.extensions,
            "project_roots": sorted(content.overview.project_roots.items()),
            "manifests": content.funnel.candidates,
            "api_sections": content.api_sections,
            "size": content.size,
            "bytes_per_token": _format_number(content.bytes_per_token),
            "deps": content.deps,
            "skeleton": content.skeleton,
            "skeleton_file": defaults.SKELETON_FILENAME,
        }

    def _payload(self, content: PackContent) -> Dict[str, Any]:
        project: Dict[str, Any] = {
            "name": content.project_name,
            "output_dir": content.output_dir,
        }
        if content.generated_at:
            project["generated_at"] = content.generated_at
        return {
            "project": project,
            "stats": {
                "raw_count": content.summary.raw_count,
                "filtered_count": content.summary.filtered_count,
                "excluded": dict(content.summary.excluded),
                "manifest_rejections": dict(content.funnel.rejected),
                "tracked": content.summary.tracked,
                "code_only": content.code_only,
                "total_bytes": content.size.total_bytes,
                "total_tokens": content.size.total_tokens,
            },
            "structure": {
                "max_depth": content.overview.max_depth,
                "directories": [
                    {"path": directory, "project_roots": labels}
                    for directory, labels in content.overview.directories
                ],
                "files": content.overview.files,
                "extensions": [
                    {"extension": extension, "files": count} for extension, count in content.overview.extensions
                ],
            },
            "manifests": [
                {
                    "path": candidate.path,
                    "confidence": round(candidate.confidence, 6),
                    "density": round(candidate.density, 6),
                    "multiplier": candidate.multiplier,
                    "matched_query": candidate.matched_query,
                }
                for candidate in content.funnel.candidates
            ],
            "apis": [
                {
                    "language": section.language,
                    "title": section.title,
                    "roots": section.roots,
                    "empty_marker": section.empty_marker,
                    "symbols": [
                        {
                            "path": symbol.path,
                            "line": symbol.line,
                            "text": symbol.text,
                            "visibility": symbol.visibility,
                        }
                        for symbol in section.symbols
                    ],
                }
                for section in content.api_sections
            ],
            "heatmap": {
                "top_n": content.size.top_n,
                "bytes_per_token": content.bytes_per_token,
                "records": [
                    {"path": record.path, "bytes": record.bytes, "tokens": record.tokens}
                    for record in content.size.records
                ],
            },
            "deps": _optional_payload(content.deps),
            "skeleton": {
                "present": content.skeleton.present,
                "file": defaults.SKELETON_FILENAME if content.skeleton.present else None,
                "absent_reason": content.skeleton.absent_reason,
            },
            "warnings": [
                {"path": warning.path, "stage": warning.stage, "reason": warning.reason}
                for warning in content.warnings
            ],
        }


def _optional_payload(section: OptionalSection) -> Dict[str, Any]:
    return {"present": section.present, "body": section.body, "absent_reason": section.absent_reason}


def _format_number(value: float) -> str:
    return f"{value:g}"


def _replace_file(path: Path, data: bytes) -> Path:
    # Bytes are written as-is, so line endings stay LF on every platform.
    staging = path.with_name(f".{path.name}.tmp")
    staging.write_bytes(data)
    os.replace(staging, path)
    return path


__all__ = ["ArtifactComposer", "PackArtifacts", "PackContent", "SECTION_ORDER"]
