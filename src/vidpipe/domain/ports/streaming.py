"""Ports for producing media byte streams."""

from __future__ import annotations

from collections.abc import AsyncIterator, Mapping
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from vidpipe.domain.entities.video import StreamSpec

if TYPE_CHECKING:
    from vidpipe.application.video import Video


@runtime_checkable
class MediaStreamPort(Protocol):
    """Bytes of one media file plus what the response headers need."""

    extension: str
    media_type: str
    status_code: int
    headers: Mapping[str, str]

    def __aiter__(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None:
        """Release the process / origin connection (idempotent)."""
        ...


@runtime_checkable
class StreamOpenerPort(Protocol):
    """Validates a StreamSpec against a video and opens its byte stream."""

    async def open(self, video: Video, spec: StreamSpec) -> MediaStreamPort: ...
