"""Port for the external extraction tool (youtube-dl / yt-dlp)."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from vidpipe.domain.entities.video import VideoMetadata, VideoRequest


@runtime_checkable
class ExtractorPort(Protocol):
    """Resolves page URLs into media URLs and metadata.

    Implementations raise ``PasswordRequired``, ``WrongPassword``,
    ``ExtractionFailed`` or ``EmptyResult`` from
    ``vidpipe.domain.entities.errors``.
    """

    async def extract_info(self, request: VideoRequest) -> VideoMetadata: ...

    async def extract_urls(self, request: VideoRequest) -> tuple[str, ...]: ...

    async def extract_filename(self, request: VideoRequest) -> str: ...

    async def list_extractors(self) -> list[str]: ...

    async def dump_user_agent(self) -> str: ...
