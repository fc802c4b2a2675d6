"""FastAPI application entrypoint for ctxpack service mode."""

from __future__ import annotations

import asyncio
from dataclasses import asdict
from typing import Any, Callable, Dict, List, Optional, Union

try:  # pragma: no cover - optional dependency
    from fastapi import Depends, FastAPI
    from fastapi.responses import JSONResponse
    from pydantic import BaseModel

    _FASTAPI_AVAILABLE = True
except ModuleNotFoundError:  # pragma: no cover - service mode optional
    FastAPI = None  # type: ignore[assignment]
    Depends = None  # type: ignore[assignment]
    JSONResponse = None  # type: ignore[assignment]
    BaseModel = object  # type: ignore[assignment]
    _FASTAPI_AVAILABLE = False

from ..errors import ConfigurationError, CtxPackError
from ..models import PackSummary
from ..orchestrator import PackOrchestrator
from ..request import FileNotFound, RequestError, request_from_mapping


class PackRequest(BaseModel):
    path: str
    out: Optional[str] = None
    config: Optional[str] = None
    max_depth: Optional[int] = None
    mode: Optional[str] = None
    include: Optional[List[str]] = None
    exclude: Optional[List[str]] = None
    code_only: Optional[bool] = None
    deps: Optional[bool] = None
    skeleton: Optional[bool] = None
    dry_run: bool = False


class WarningModel(BaseModel):
    path: str
    stage: str
    reason: str


class PackResponse(BaseModel):
    root: str
    output_dir: Optional[str] = None
    raw_count: int
    filtered_count: int
    excluded: Dict[str, int]
    manifest_rejections: Dict[str, int]
    manifest_count: int
    tracked: bool
    total_bytes: int
    total_tokens: int
    dry_run: bool
    project_roots: Dict[str, List[str]]
    artifacts: List[str]
    warnings: List[WarningModel]


class FileRequestModel(BaseModel):
    path: str
    reason: str
    file: Optional[str] = None
    pattern: Optional[str] = None
    range: Optional[Union[str, int, Dict[str, Any]]] = None
    config: Optional[str] = None


class FileContentModel(BaseModel):
    path: str
    content: str
    total_lines: int
    range_info: Optional[str] = None


class FileRequestResponse(BaseModel):
    reason: str
    files: List[FileContentModel]
    markdown: str


class HealthResponse(BaseModel):
    status: str


def _default_orchestrator() -> PackOrchestrator:
    return PackOrchestrator()


def create_app(
    orchestrator_factory: Callable[[], PackOrchestrator] = _default_orchestrator,
) -> FastAPI:
    """Create the FastAPI application exposing pack and request operations."""

    if not _FASTAPI_AVAILABLE:  # pragma: no cover - validated via unit tests
        raise RuntimeError(
            "FastAPI is required for service mode. Install it with `pip install 'ctxpack[service]'`."
        )

    app = FastAPI(title="ctxpack Service", version="1.0.0")

    async def get_orchestrator() -> PackOrchestrator:
        return orchestrator_factory()

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.post("/pack", response_model=PackResponse)
    async def pack_repo(
        payload: PackRequest,
        orchestrator: PackOrchestrator = Depends(get_orchestrator),
    ) -> PackResponse:
        def _run_pack() -> PackSummary:
            config = orchestrator.load(
                payload.path,
                config_path=payload.config,
                overrides=_overrides(payload),
            )
            return orchestrator.run(config, dry_run=payload.dry_run)

        summary = await _in_executor(_run_pack)
        return PackResponse(**asdict(summary))

    @app.post("/request", response_model=FileRequestResponse)
    async def request_file(
        payload: FileRequestModel,
        orchestrator: PackOrchestrator = Depends(get_orchestrator),
    ) -> FileRequestResponse:
        def _run_request() -> FileRequestResponse:
            request = request_from_mapping(
                {
                    key: value
                    for key, value in (
                        ("path", payload.file),
                        ("pattern", payload.pattern),
                        ("reason", payload.reason),
                        ("range", payload.range),
                    )
                    if value is not None
                }
            )
            config = orchestrator.load(payload.path, config_path=payload.config)
            resolved = orchestrator.resolve_request(config, request)
            return FileRequestResponse(
                reason=resolved.reason,
                files=[FileContentModel(**asdict(item)) for item in resolved.files],
                markdown=resolved.to_markdown(),
            )

        return await _in_executor(_run_request)

    @app.exception_handler(FileNotFound)
    async def file_not_found_handler(
        _: Any, exc: FileNotFound
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(RequestError)
    async def request_error_handler(_: Any, exc: RequestError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(_: Any, exc: ConfigurationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(CtxPackError)
    async def ctxpack_error_handler(
        _: Any, exc: CtxPackError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=500, content={"detail": str(exc)})

    return app


def run_service(
    host: str = "127.0.0.1", port: int = 8000
) -> None:  # pragma: no cover - integration path
    if not _FASTAPI_AVAILABLE:
        raise RuntimeError(
            "FastAPI is required for service mode. Install it with `pip install 'ctxpack[service]'`."
        )

    try:
        import uvicorn
    except ModuleNotFoundError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError(
            "uvicorn is required to run the service. Install it with `pip install uvicorn`."
        ) from exc

    uvicorn.run(create_app(), host=host, port=port)


async def _in_executor(func: Callable[[], Any]) -> Any:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:  # pragma: no cover - fallback path when not in async context
        return func()
    return await loop.run_in_executor(None, func)


def _overrides(payload: PackRequest) -> Dict[str, Any]:
    overrides = {
        "output_dir": payload.out,
        "max_depth": payload.max_depth,
        "mode": payload.mode,
        "include": payload.include,
        "exclude": payload.exclude,
        "code_only": payload.code_only,
        "collect_deps": payload.deps,
        "skeleton": payload.skeleton,
    }
    return {key: value for key, value in overrides.items() if value is not None}


__all__ = ["create_app", "run_service"]
