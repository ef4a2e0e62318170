"""Shared test fixtures for the vidpipe test suite."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from typing import Any

import pytest

from vidpipe.domain.entities.video import VideoMetadata, VideoRequest
from vidpipe.infrastructure.config import AppConfig

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeExtractor:
    """In-memory ExtractorPort keyed by page URL.

    A value that is an exception instance is raised instead of returned.
    ``calls`` records (method, page_url, format) for every invocation.
    """

    def __init__(
        self,
        *,
        infos: dict[str, Any] | None = None,
        urls: dict[str, Any] | None = None,
        filenames: dict[str, Any] | None = None,
        user_agent: str = "Mozilla/5.0 (test)",
        extractors: list[str] | None = None,
    ) -> None:
        self.infos = infos or {}
        self.urls = urls or {}
        self.filenames = filenames or {}
        self.user_agent = user_agent
        self.extractors = extractors or ["youtube", "vimeo"]
        self.calls: list[tuple[str, str | None, str | None]] = []

    @staticmethod
    def _answer(table: dict[str, Any], request: VideoRequest) -> Any:
        value = table.get(f"{request.page_url}#{request.format}", table.get(request.page_url))
        if isinstance(value, BaseException):
            raise value
        return value

    async def extract_info(self, request: VideoRequest) -> VideoMetadata:
        self.calls.append(("info", request.page_url, request.format))
        return VideoMetadata.from_info(self._answer(self.infos, request) or {})

    async def extract_urls(self, request: VideoRequest) -> tuple[str, ...]:
        self.calls.append(("urls", request.page_url, request.format))
        return tuple(self._answer(self.urls, request) or ())

    async def extract_filename(self, request: VideoRequest) -> str:
        self.calls.append(("filename", request.page_url, request.format))
        return self._answer(self.filenames, request) or "video.mp4"

    async def list_extractors(self) -> list[str]:
        self.calls.append(("extractors", None, None))
        return list(self.extractors)

    async def dump_user_agent(self) -> str:
        self.calls.append(("user_agent", None, None))
        return self.user_agent

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)


class ChunkStream:
    """MediaStreamPort over a fixed list of chunks.

    An exception in *chunks* is raised when iteration reaches it.
    """

    def __init__(
        self,
        chunks: list[Any],
        *,
        extension: str = "mp4",
        media_type: str = "video/mp4",
        status_code: int = 200,
        headers: dict[str, str] | None = None,
    ) -> None:
        self._chunks = chunks
        self.extension = extension
        self.media_type = media_type
        self.status_code = status_code
        self.headers = headers or {}
        self.closed = False
        self.close_count = 0

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            if isinstance(chunk, BaseException):
                raise chunk
            yield chunk

    async def aclose(self) -> None:
        self.close_count += 1
        self.closed = True


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_config() -> Callable[..., AppConfig]:
    """Factory for AppConfig with flat-field overrides."""

    def _make(**overrides: Any) -> AppConfig:
        return AppConfig.model_validate(overrides)

    return _make


@pytest.fixture()
def config(make_config: Callable[..., AppConfig]) -> AppConfig:
    """Default configuration (all features off)."""
    return make_config()


@pytest.fixture()
def video_info() -> dict[str, Any]:
    """Minimal single-video JSON dump."""
    return {
        "title": "Big Buck Bunny",
        "extractor_key": "Youtube",
        "protocol": "https",
        "ext": "mp4",
        "url": "https://media.example.com/bbb.mp4",
        "webpage_url": "https://www.youtube.com/watch?v=aqz-KE-bpKQ",
        "format_id": "18",
        "duration": 596,
    }


@pytest.fixture()
def playlist_info() -> dict[str, Any]:
    """Flat playlist JSON dump with three YouTube ids."""
    return {
        "_type": "playlist",
        "title": "Shorts",
        "extractor_key": "YoutubePlaylist",
        "entries": [
            {"_type": "url", "url": "vid1", "id": "vid1", "ie_key": "Youtube", "title": "One"},
            {"_type": "url", "url": "vid2", "id": "vid2", "ie_key": "Youtube", "title": "Two"},
            {"_type": "url", "url": "vid3", "id": "vid3", "ie_key": "Youtube", "title": "Three"},
        ],
    }


@pytest.fixture()
def make_extractor() -> Callable[..., FakeExtractor]:
    """Factory for FakeExtractor (see class docstring)."""
    return FakeExtractor


@pytest.fixture()
def make_chunk_stream() -> Callable[..., ChunkStream]:
    """Factory for ChunkStream (see class docstring)."""
    return ChunkStream
