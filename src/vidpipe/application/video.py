"""Video resolver: lazily resolves and caches one request's metadata."""

from __future__ import annotations

import asyncio
import html
import posixpath
from dataclasses import dataclass
from typing import Union

import structlog

from vidpipe.domain.entities.errors import PasswordRequired
from vidpipe.domain.entities.video import VideoMetadata, VideoRequest
from vidpipe.domain.ports.extractor import ExtractorPort

log = structlog.get_logger(__name__)


class Video:
    """A page URL + format + password, resolved on demand.

    Metadata, URLs, filename and user agent are each fetched at most once
    per instance.  To resolve again (e.g. with another format) build a new
    instance via ``with_format()``.
    """

    def __init__(self, request: VideoRequest, extractor: ExtractorPort) -> None:
        self._request = request
        self._extractor = extractor
        self._lock = asyncio.Lock()
        self._metadata: VideoMetadata | None = None
        self._urls: tuple[str, ...] | None = None
        self._filename: str | None = None
        self._user_agent: str | None = None

    @property
    def request(self) -> VideoRequest:
        return self._request

    @property
    def page_url(self) -> str:
        return self._request.page_url

    @property
    def format(self) -> str:
        return self._request.format

    @property
    def password(self) -> str | None:
        return self._request.password

    def __repr__(self) -> str:
        return f"Video(page_url={self.page_url!r}, format={self.format!r})"

    async def metadata(self) -> VideoMetadata:
        async with self._lock:
            if self._metadata is None:
                self._metadata = await self._extractor.extract_info(self._request)
        return self._metadata

    async def urls(self) -> tuple[str, ...]:
        """Media URLs; two entries when a combined format was requested."""
        async with self._lock:
            if self._urls is None:
                self._urls = await self._extractor.extract_urls(self._request)
        return self._urls

    async def filename(self) -> str:
        async with self._lock:
            if self._filename is None:
                self._filename = await self._extractor.extract_filename(self._request)
        return self._filename

    async def filename_with_extension(self, extension: str) -> str:
        """Extracted filename with its extension swapped for *extension*.

        The tool may HTML-escape filenames, so entities are decoded.
        """
        stem, _ = posixpath.splitext(posixpath.basename(await self.filename()))
        return html.unescape(f"{stem}.{extension}")

    async def user_agent(self) -> str:
        async with self._lock:
            if self._user_agent is None:
                self._user_agent = await self._extractor.dump_user_agent()
        return self._user_agent

    async def playlist_entries(self) -> list[VideoRequest]:
        """Requests for every playlist item, inheriting format and password."""
        meta = await self.metadata()
        return [
            entry.to_request(self.format, self.password) for entry in meta.entries
        ]

    def with_format(self, format: str) -> Video:
        return Video(self._request.with_format(format), self._extractor)

    def derive(self, request: VideoRequest) -> Video:
        """A fresh Video for *request* using the same extractor."""
        return Video(request, self._extractor)


@dataclass(frozen=True)
class Resolved:
    video: Video
    metadata: VideoMetadata


@dataclass(frozen=True)
class PasswordPrompt:
    """The source needs a password; show a prompt instead of an error."""

    request: VideoRequest
    message: str = ""


ResolveOutcome = Union[Resolved, PasswordPrompt]


async def resolve(
    extractor: ExtractorPort,
    page_url: str,
    format: str = "best",
    password: str | None = None,
) -> ResolveOutcome:
    """Resolve a page URL into a ready ``Video``.

    Password-protected sources come back as ``PasswordPrompt`` so callers
    handle that path explicitly; every other failure (wrong password,
    extraction error) is raised.
    """
    video = Video(VideoRequest(page_url, format, password), extractor)
    try:
        meta = await video.metadata()
    except PasswordRequired as e:
        log.info("password_required", url=page_url)
        return PasswordPrompt(video.request, e.message)
    return Resolved(video, meta)
