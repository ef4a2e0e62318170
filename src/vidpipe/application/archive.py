"""Stream a playlist as one ZIP archive, built while it is sent.

``zipfile.ZipFile`` writes to a non-seekable sink, so it sets the
data-descriptor flag on every entry and never seeks back to patch sizes.
The sink is drained after every write; at most one media chunk is held in
memory.  Entries are stored: media is already compressed.
"""

from __future__ import annotations

import posixpath
import time
import zipfile
from collections import deque
from collections.abc import AsyncIterator

import httpx
import structlog

from vidpipe.application.stream_selection import AUDIO_FALLBACK_FORMAT, select_spec
from vidpipe.application.video import Video
from vidpipe.domain.entities.errors import (
    ArchiveEntryFailed,
    FeatureDisabled,
    VideoError,
)
from vidpipe.domain.entities.video import ArchiveEntry, StreamKind, VideoRequest
from vidpipe.domain.ports.streaming import MediaStreamPort, StreamOpenerPort

log = structlog.get_logger(__name__)


class _ZipSink:
    """Write-only buffer handed to ZipFile; has no ``seek``/``tell``."""

    def __init__(self) -> None:
        self._parts: list[bytes] = []

    def write(self, data: bytes) -> int:
        self._parts.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._parts)
        self._parts.clear()
        return data


class PlaylistArchiveStream:
    """ZIP of every playlist item, one MediaStream at a time.

    ``open()`` prepares the first item so its failure reaches the caller
    before the response starts.  Later items that cannot be resolved are
    logged and skipped, as are combined video+audio items while remuxing is
    off.  A failure while an item's bytes are being written
    aborts the whole archive.
    """

    extension = "zip"
    media_type = "application/zip"
    status_code = 200

    def __init__(
        self,
        video: Video,
        pipeline: StreamOpenerPort,
        *,
        audio: bool = False,
        audio_bitrate: int | None = None,
        remux: bool = False,
    ) -> None:
        self._video = video
        self._pipeline = pipeline
        self._audio = audio
        self._audio_bitrate = audio_bitrate
        self._remux = remux
        self.headers: dict[str, str] = {}

        self._pending: deque[VideoRequest] = deque()
        self._current: tuple[ArchiveEntry, MediaStreamPort] | None = None
        self._names: set[str] = set()
        self._opened = False
        self._closed = False

    @property
    def entry_names(self) -> list[str]:
        return sorted(self._names)

    async def open(self) -> None:
        if self._opened:
            return
        self._opened = True
        self._pending.extend(await self._video.playlist_entries())
        log.info(
            "archive_opened",
            url=self._video.page_url,
            entries=len(self._pending),
            audio=self._audio,
        )
        if self._pending:
            self._current = await self._prepare(self._pending.popleft())

    async def _prepare(
        self, request: VideoRequest
    ) -> tuple[ArchiveEntry, MediaStreamPort]:
        if self._audio:
            request = request.with_format(AUDIO_FALLBACK_FORMAT)
        video = self._video.derive(request)
        meta = await video.metadata()
        urls = await video.urls()
        spec = select_spec(
            meta, urls, audio=self._audio, audio_bitrate=self._audio_bitrate
        )
        if spec.kind is StreamKind.REMUX and not self._remux:
            raise FeatureDisabled("remux")
        stream = await self._pipeline.open(video, spec)
        try:
            filename = await video.filename_with_extension(stream.extension)
        except BaseException:
            await stream.aclose()
            raise
        return ArchiveEntry(request, self._unique_name(filename)), stream

    async def _next_entry(self) -> tuple[ArchiveEntry, MediaStreamPort] | None:
        while self._pending:
            request = self._pending.popleft()
            try:
                return await self._prepare(request)
            except (VideoError, httpx.HTTPError) as e:
                failure = ArchiveEntryFailed(request.page_url, cause=e)
                log.warning(
                    "archive_entry_skipped",
                    entry=failure.name,
                    error_type=type(e).__name__,
                    error=str(e),
                )
        return None

    def _unique_name(self, filename: str) -> str:
        stem, ext = posixpath.splitext(filename)
        name = filename
        n = 0
        while name in self._names:
            n += 1
            name = f"{stem}-{n}{ext}"
        self._names.add(name)
        return name

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[bytes]:
        await self.open()
        sink = _ZipSink()
        archive = zipfile.ZipFile(
            sink, mode="w", compression=zipfile.ZIP_STORED, allowZip64=True
        )
        try:
            while self._current is not None:
                entry, stream = self._current
                info = zipfile.ZipInfo(entry.name, date_time=time.localtime()[:6])
                info.compress_type = zipfile.ZIP_STORED
                written = 0
                try:
                    with archive.open(info, mode="w", force_zip64=True) as member:
                        async for chunk in stream:
                            member.write(chunk)
                            written += len(chunk)
                            data = sink.drain()
                            if data:
                                yield data
                except Exception as e:
                    log.error(
                        "archive_aborted",
                        entry=entry.name,
                        bytes_written=written,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    raise
                finally:
                    await stream.aclose()
                    self._current = None

                data = sink.drain()
                if data:
                    yield data
                log.debug("archive_entry_written", entry=entry.name, size=written)
                self._current = await self._next_entry()

            archive.close()
            yield sink.drain()
            log.info("archive_completed", entries=len(self._names))
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._current is not None:
            _, stream = self._current
            self._current = None
            await stream.aclose()
