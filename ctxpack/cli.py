"""CLI entrypoints for ctxpack commands."""

from __future__ import annotations

import argparse
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from .config import parse_patterns
from .errors import CtxPackError
from .logging import configure_logging
from .models import PackSummary
from .orchestrator import PackOrchestrator
from .request import RequestError, parse_request


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_repo_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "path",
        nargs="?",
        default=".",
        help="Path to the repository root (defaults to current directory).",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Explicit config file (defaults to .ctxpack.yml in the repository root).",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ctxpack",
        description="Generate a deterministic context pack describing a repository.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write detailed logs (including per-file warnings) to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    pack_parser = subparsers.add_parser(
        "pack",
        help="Scan a repository and write the context pack artifacts.",
    )
    _add_verbose_option(pack_parser, suppress_default=True)
    _add_repo_argument(pack_parser)
    pack_parser.add_argument(
        "-o",
        "--out",
        default=None,
        help="Output directory, relative to the repository root unless absolute.",
    )
    pack_parser.add_argument(
        "--max-depth",
        type=int,
        default=None,
        help="Directory depth shown in the structure overview (1-10).",
    )
    mode_group = pack_parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--git-only",
        dest="mode",
        action="store_const",
        const="tracked",
        help="Only enumerate files known to git; fail outside a repository.",
    )
    mode_group.add_argument(
        "--no-git",
        dest="mode",
        action="store_const",
        const="traversal",
        help="Walk the filesystem even inside a git repository.",
    )
    pack_parser.add_argument(
        "--include",
        default=None,
        help="Comma-separated regex patterns; keep only matching paths.",
    )
    pack_parser.add_argument(
        "--exclude",
        default=None,
        help="Comma-separated regex patterns; drop matching paths.",
    )
    pack_parser.add_argument(
        "--code-only",
        action="store_true",
        default=None,
        help="Keep only source code and build files.",
    )
    pack_parser.add_argument(
        "--no-deps",
        dest="collect_deps",
        action="store_false",
        default=None,
        help="Skip running dependency listing tools.",
    )
    pack_parser.add_argument(
        "--no-skeleton",
        dest="skeleton",
        action="store_false",
        default=None,
        help="Skip the tree-sitter skeleton.",
    )
    pack_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be packed without writing any files.",
    )

    request_parser = subparsers.add_parser(
        "request",
        help="Resolve a REQUEST_FILE block against a repository.",
    )
    _add_verbose_option(request_parser, suppress_default=True)
    request_parser.add_argument(
        "request_file",
        help="YAML file holding the REQUEST_FILE block ('-' reads stdin).",
    )
    _add_repo_argument(request_parser)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run the HTTP service (requires the 'service' extra).",
    )
    _add_verbose_option(serve_parser, suppress_default=True)
    serve_parser.add_argument("--host", default="127.0.0.1", help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=8000, help="Port to listen on.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for ctxpack commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        verbose=bool(args.verbose),
        quiet=args.command == "request",
        log_file=args.log_file,
    )

    orchestrator = PackOrchestrator()

    if args.command == "pack":
        try:
            config = orchestrator.load(
                args.path,
                config_path=args.config,
                overrides=_pack_overrides(args),
            )
            summary = orchestrator.run(
                config,
                generated_at=_timestamp(),
                dry_run=bool(args.dry_run),
            )
        except CtxPackError as exc:
            parser.exit(1, f"ctxpack pack failed: {exc}\n")
        _print_summary(summary)
    elif args.command == "request":
        try:
            request = parse_request(_read_request(args.request_file))
            config = orchestrator.load(args.path, config_path=args.config)
            resolved = orchestrator.resolve_request(config, request)
        except OSError as exc:
            parser.exit(1, f"Cannot read request file: {exc}\n")
        except RequestError as exc:
            parser.exit(1, f"{exc}\n")
        except CtxPackError as exc:
            parser.exit(1, f"ctxpack request failed: {exc}\n")
        sys.stdout.write(resolved.to_markdown())
    elif args.command == "serve":
        from .service import run_service

        try:
            run_service(host=args.host, port=args.port)
        except RuntimeError as exc:
            parser.exit(1, f"{exc}\n")
    else:  # pragma: no cover - argparse enforces choices
        parser.exit(1, "Unknown command\n")


def _pack_overrides(args: argparse.Namespace) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {
        "mode": args.mode,
        "max_depth": args.max_depth,
        "code_only": args.code_only,
        "output_dir": args.out,
        "collect_deps": args.collect_deps,
        "skeleton": args.skeleton,
    }
    if args.include is not None:
        overrides["include"] = parse_patterns(args.include)
    if args.exclude is not None:
        overrides["exclude"] = parse_patterns(args.exclude)
    return {key: value for key, value in overrides.items() if value is not None}


def _read_request(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def _timestamp() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat()


def _print_summary(summary: PackSummary) -> None:
    excluded = sum(summary.excluded.values())
    mode = "git" if summary.tracked else "filesystem"
    print(
        f"Scanned {summary.raw_count} files via {mode}; kept {summary.filtered_count}, "
        f"excluded {excluded}."
    )
    print(f"Manifests: {summary.manifest_count}; ~{summary.total_tokens} tokens in {summary.total_bytes} bytes.")
    for language, roots in sorted(summary.project_roots.items()):
        print(f"{language} roots: {', '.join(root or '.' for root in roots) or '(none)'}")
    if summary.warnings:
        print(f"Warnings: {len(summary.warnings)} (run with --verbose for details)")
    if summary.dry_run:
        print("Dry run: no files written.")
        return
    for artifact in summary.artifacts:
        print(f"Wrote {_relativize(Path(artifact))}")


def _relativize(path: Path) -> str:
    try:
        return str(path.relative_to(Path.cwd()))
    except ValueError:
        return str(path)


if __name__ == "__main__":
    main(sys.argv[1:])
