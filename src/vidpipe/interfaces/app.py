"""FastAPI application factory (create_app)."""

from __future__ import annotations

import time
import uuid
from collections.abc import Awaitable, Callable

import structlog
from fastapi import FastAPI, Request
from starlette.responses import Response

from vidpipe.infrastructure.config import AppConfig
from vidpipe.interfaces.app_state import AppState
from vidpipe.interfaces.composition import lifespan

log = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def create_app(config: AppConfig) -> FastAPI:
    """Create FastAPI app: configuration only, no resource initialization.

    Resources (HTTP client, process runner, extractor) are created in lifespan().
    """
    app = FastAPI(
        title="vidpipe",
        description="Resolve video pages and stream, convert or remux their media",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state = AppState()
    app.state.config = config

    from vidpipe.interfaces.api.video.router import router as video_router

    app.include_router(video_router, prefix="/api/v1")

    @app.get("/api/v1/healthz")
    async def healthz() -> dict[str, str | bool]:
        """Liveness probe; 200 as long as the process is running."""
        return {
            "status": "ok",
            "stream": config.stream,
            "convert": config.convert,
            "remux": config.remux,
        }

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        # Every event logged while serving this request carries its id.
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:12]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            # Streaming bodies are still running here; this times the headers.
            log.info(
                "http_request",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round((time.perf_counter() - start) * 1000.0, 2),
                client_host=(request.client.host if request.client else None),
            )

    return app
