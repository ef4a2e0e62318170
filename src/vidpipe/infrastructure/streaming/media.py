"""MediaStream and origin fetch helpers.

Origin bodies are pulled with ``httpx`` in streaming mode so bytes flow
through without loading the whole file into memory.
"""

from __future__ import annotations

import mimetypes
import re
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Mapping

import httpx
import structlog

from vidpipe.domain.entities.errors import OriginError

log = structlog.get_logger(__name__)

# Origin response headers that stay meaningful after passthrough.
FORWARDED_RESPONSE_HEADERS = (
    "content-length",
    "content-range",
    "accept-ranges",
    "last-modified",
    "etag",
)

_MEDIA_TYPES: dict[str, str] = {
    "mp3": "audio/mpeg",
    "m4a": "audio/mp4",
    "mkv": "video/x-matroska",
    "flv": "video/x-flv",
    "webm": "video/webm",
    "mp4": "video/mp4",
    "wav": "audio/wav",
    "zip": "application/zip",
}

_CONTENT_RANGE_RE = re.compile(r"bytes\s+(\d+)-(\d+)/(\d+|\*)")


def media_type_for(extension: str | None) -> str:
    if not extension:
        return "application/octet-stream"
    ext = extension.lower().lstrip(".")
    if ext in _MEDIA_TYPES:
        return _MEDIA_TYPES[ext]
    guessed, _ = mimetypes.guess_type(f"file.{ext}")
    return guessed or "application/octet-stream"


class MediaStream:
    """Bytes of one media file plus response metadata.

    Iterating yields chunks as the producer delivers them.  ``aclose()``
    runs *on_close* (kill the process / close the origin response) and is
    called automatically when iteration ends, fails or is abandoned.
    """

    def __init__(
        self,
        chunks: AsyncIterable[bytes],
        *,
        extension: str,
        media_type: str | None = None,
        status_code: int = 200,
        headers: Mapping[str, str] | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._chunks = chunks
        self.extension = extension
        self.media_type = media_type or media_type_for(extension)
        self.status_code = status_code
        self.headers: dict[str, str] = dict(headers or {})
        self._on_close = on_close
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._chunks:
                yield chunk
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._on_close is not None:
            await self._on_close()
        # A generator still suspended in another task is finalized by its owner.
        if hasattr(self._chunks, "aclose") and not getattr(
            self._chunks, "ag_running", False
        ):
            await self._chunks.aclose()


def total_from_content_range(value: str | None) -> int | None:
    """``bytes 0-99/1234`` -> 1234 (``None`` when unknown)."""
    if not value:
        return None
    match = _CONTENT_RANGE_RE.match(value.strip())
    if not match or match.group(3) == "*":
        return None
    return int(match.group(3))


async def _send(
    http_client: httpx.AsyncClient, url: str, headers: Mapping[str, str]
) -> httpx.Response:
    return await http_client.send(
        http_client.build_request("GET", url, headers=dict(headers)),
        stream=True,
        follow_redirects=True,
    )


async def open_origin_stream(
    http_client: httpx.AsyncClient,
    url: str,
    headers: Mapping[str, str],
    *,
    chunk_size: int = 65536,
) -> MediaStream:
    """Open *url* as a passthrough stream.

    Raises ``OriginError`` on a non-2xx status before any byte is returned.
    The stream's status code and length/range headers mirror the origin.
    """
    resp = await _send(http_client, url, headers)
    if not resp.is_success:
        await resp.aclose()
        log.warning("origin_error", url=url, status=resp.status_code)
        raise OriginError(resp.status_code, url)

    log.info(
        "origin_stream_opened",
        status=resp.status_code,
        content_length=resp.headers.get("content-length"),
    )

    async def _iter() -> AsyncIterator[bytes]:
        try:
            async for chunk in resp.aiter_bytes(chunk_size=chunk_size):
                yield chunk
        finally:
            await resp.aclose()

    forwarded = {
        name: resp.headers[name]
        for name in FORWARDED_RESPONSE_HEADERS
        if name in resp.headers
    }
    return MediaStream(
        _iter(),
        extension="",
        media_type=resp.headers.get("content-type"),
        status_code=resp.status_code,
        headers=forwarded,
        on_close=resp.aclose,
    )


async def open_ranged_stream(
    http_client: httpx.AsyncClient,
    url: str,
    headers: Mapping[str, str],
    *,
    range_size: int,
    chunk_size: int = 65536,
) -> MediaStream:
    """Pull *url* as consecutive ``Range`` requests of *range_size* bytes.

    Some origins throttle or cut long single requests; they expect clients
    to fetch in slices.  The first slice is requested eagerly so failures
    surface before the response starts.
    """

    async def _fetch(start: int) -> httpx.Response:
        slice_headers = dict(headers)
        slice_headers["Range"] = f"bytes={start}-{start + range_size - 1}"
        return await _send(http_client, url, slice_headers)

    first = await _fetch(0)
    if not first.is_success:
        await first.aclose()
        log.warning("origin_error", url=url, status=first.status_code)
        raise OriginError(first.status_code, url)

    total = total_from_content_range(first.headers.get("content-range"))
    log.info("origin_ranged_stream_opened", range_size=range_size, total=total)

    current: list[httpx.Response] = [first]

    async def _iter() -> AsyncIterator[bytes]:
        offset = 0
        try:
            while True:
                resp = current[0]
                received = 0
                async for chunk in resp.aiter_bytes(chunk_size=chunk_size):
                    received += len(chunk)
                    yield chunk
                await resp.aclose()
                offset += received

                # 200 means the origin ignored Range and sent everything.
                if resp.status_code == 200 or received < range_size:
                    return
                if total is not None and offset >= total:
                    return

                nxt = await _fetch(offset)
                current[0] = nxt
                if nxt.status_code == 416:
                    return
                if not nxt.is_success:
                    log.error("origin_slice_failed", status=nxt.status_code, offset=offset)
                    raise OriginError(nxt.status_code, url)
        finally:
            await current[0].aclose()

    async def _close() -> None:
        await current[0].aclose()

    stream_headers: dict[str, str] = {}
    if total is not None:
        stream_headers["content-length"] = str(total)
    return MediaStream(
        _iter(),
        extension="",
        media_type=first.headers.get("content-type"),
        headers=stream_headers,
        on_close=_close,
    )
