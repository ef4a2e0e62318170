"""Composition root: dependency injection via FastAPI lifespan."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, cast

import httpx
import structlog
from fastapi import FastAPI

from vidpipe.application.use_cases.download import DownloadService
from vidpipe.infrastructure.extractor import YoutubeDlClient
from vidpipe.infrastructure.http import RetryTransport
from vidpipe.infrastructure.process import ProcessRunner
from vidpipe.infrastructure.streaming import StreamPipeline
from vidpipe.interfaces.app_state import AppState

log = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Lifespan Hook: Initialize and cleanup all resources (DI Composition Root).

    Order matters:
        1. Process runner (extractor and transcoder both spawn through it)
        2. HTTP client (origin pulls for raw streams)
        3. Extractor client
        4. Stream pipeline (runner + HTTP client)
        5. Download service (pipeline + feature toggles)
    """
    state = cast(AppState, app.state)
    config = state.config

    # 1) Subprocesses
    state.process_runner = ProcessRunner(chunk_size=config.chunk_size)

    # 2) HTTP client with 429/503 retry for origin pulls
    transport = RetryTransport(
        httpx.AsyncHTTPTransport(),
        max_retries=config.http_retry_max_attempts,
        backoff_base=config.http_retry_backoff_base,
        max_backoff=config.http_retry_max_backoff,
    )
    state.http_client = httpx.AsyncClient(
        transport=transport,
        timeout=httpx.Timeout(config.http_timeout_seconds),
        headers={"User-Agent": config.http_user_agent},
        follow_redirects=True,
    )
    log.info(
        "http_client_initialized",
        timeout_seconds=config.http_timeout_seconds,
        retry_max_attempts=config.http_retry_max_attempts,
    )

    # 3) Extraction tool
    state.extractor = YoutubeDlClient(
        state.process_runner,
        command=config.youtubedl_command,
        params=config.youtubedl_params,
        phantomjs_dir=config.phantomjs_dir,
    )
    log.info("extractor_initialized", command=config.youtubedl_command)

    # 4) Stream pipeline
    state.pipeline = StreamPipeline(config, state.process_runner, state.http_client)
    log.info("stream_pipeline_initialized", transcoder=config.avconv)

    # 5) Download planning
    state.download_service = DownloadService(config, state.pipeline)
    log.info(
        "download_service_initialized",
        convert=config.convert,
        convert_advanced=config.convert_advanced,
        stream=config.stream,
        remux=config.remux,
    )

    log.info("app_startup_complete")
    try:
        yield
    finally:
        await state.http_client.aclose()
        log.info("http_client_closed")
        log.info("app_shutdown_complete")
