"""Application state container for FastAPI dependency injection."""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
from starlette.datastructures import State

from vidpipe.infrastructure.config import AppConfig

if TYPE_CHECKING:
    from vidpipe.application.use_cases.download import DownloadService
    from vidpipe.domain.ports import ExtractorPort, ProcessRunnerPort
    from vidpipe.infrastructure.streaming import StreamPipeline


class AppState(State):
    """FastAPI application state with all DI resources.

    Lifecycle managed by composition.py::lifespan().
    """

    # Configuration
    config: AppConfig

    # Infrastructure
    http_client: httpx.AsyncClient
    process_runner: ProcessRunnerPort

    # Domain Ports
    extractor: ExtractorPort

    # Application Services
    pipeline: StreamPipeline
    download_service: DownloadService
