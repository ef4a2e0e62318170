"""StreamPipeline: turn a resolved video plus a StreamSpec into bytes.

RAW pulls the origin through the shared ``httpx.AsyncClient``; every other
kind spawns the transcoder and streams its stdout.  All validation runs
before a process is spawned or a response byte exists.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence

import httpx
import structlog

from vidpipe.application.video import Video
from vidpipe.domain.entities.errors import (
    RemuxRequiresTwoStreams,
    TranscoderUnavailable,
    UnsupportedConversion,
)
from vidpipe.domain.entities.video import (
    DASH_PROTOCOL,
    M3U8_PROTOCOLS,
    StreamKind,
    StreamSpec,
    VideoMetadata,
)
from vidpipe.domain.ports.process_runner import ProcessRunnerPort
from vidpipe.infrastructure.config import AppConfig
from vidpipe.infrastructure.transcoder.ffmpeg import (
    FfmpegCommand,
    describe,
    validate_time,
)

from .media import (
    MediaStream,
    media_type_for,
    open_origin_stream,
    open_ranged_stream,
)

log = structlog.get_logger(__name__)

# Request headers worth passing on to the origin for raw pulls.
_FORWARDED_REQUEST_HEADERS = ("range", "if-range", "if-modified-since", "if-none-match")

# Container extension -> ffmpeg muxer name, where they differ.
_MUXERS = {
    "mkv": "matroska",
    "m4a": "mp4",
    "ts": "mpegts",
}


def muxer_for(extension: str) -> str:
    return _MUXERS.get(extension, extension)


def forwardable_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Client request headers that are safe to replay against the origin."""
    return {
        name: value
        for name, value in headers.items()
        if name.lower() in _FORWARDED_REQUEST_HEADERS
    }


class StreamPipeline:
    """Opens a MediaStream for each StreamKind."""

    def __init__(
        self,
        config: AppConfig,
        runner: ProcessRunnerPort,
        http_client: httpx.AsyncClient,
    ) -> None:
        self._config = config
        self._runner = runner
        self._http = http_client
        self._ffmpeg = FfmpegCommand(config.avconv, config.avconv_verbosity)

    @property
    def ffmpeg(self) -> FfmpegCommand:
        return self._ffmpeg

    async def open(self, video: Video, spec: StreamSpec) -> MediaStream:
        """Validate *spec* against *video* and start producing bytes.

        Raises the pre-commit errors (``InvalidTimeRange``,
        ``UnsupportedConversion``, ``RemuxRequiresTwoStreams``,
        ``TranscoderUnavailable``, ``OriginError``) before any byte exists.
        """
        # Trims first: nothing is resolved or spawned for a malformed value.
        start = validate_time(spec.start)
        end = validate_time(spec.end)

        if spec.kind is StreamKind.RAW:
            return await self._open_raw(video, spec)

        meta = await video.metadata()
        urls = await video.urls()
        self._check_convertible(meta, urls, spec.kind)
        await self._ensure_transcoder()

        if spec.kind is StreamKind.AUDIO_CONVERT:
            filetype = spec.filetype or "mp3"
            args = self._ffmpeg.convert(
                urls[0],
                audio_bitrate=spec.audio_bitrate or self._config.audio_bitrate,
                filetype=filetype,
                audio_only=True,
                start=start,
                end=end,
                rtmp=meta.rtmp_params,
                user_agent=await video.user_agent(),
            )
            extension = filetype
        elif spec.kind is StreamKind.GENERIC_CONVERT:
            filetype = spec.filetype or "mp3"
            args = self._ffmpeg.convert(
                urls[0],
                audio_bitrate=spec.audio_bitrate or self._config.audio_bitrate,
                filetype=filetype,
                audio_only=False,
                rtmp=meta.rtmp_params,
                user_agent=await video.user_agent(),
            )
            extension = filetype
        elif spec.kind is StreamKind.REMUX:
            args = self._ffmpeg.remux(urls[0], urls[1])
            extension = "mkv"
        elif spec.kind is StreamKind.RTMP:
            extension = meta.ext or "flv"
            args = self._ffmpeg.rtmp(urls[0], meta.rtmp_params, muxer_for(extension))
        else:
            extension = meta.ext or "mp4"
            args = self._ffmpeg.m3u8(urls[0], muxer_for(extension))

        return await self._spawn(args, extension, spec.kind)

    def _check_convertible(
        self, meta: VideoMetadata, urls: Sequence[str], kind: StreamKind
    ) -> None:
        if kind in (StreamKind.AUDIO_CONVERT, StreamKind.GENERIC_CONVERT):
            if kind is StreamKind.AUDIO_CONVERT and meta.is_playlist:
                raise UnsupportedConversion("playlist")
            if meta.protocol in M3U8_PROTOCOLS:
                raise UnsupportedConversion("M3U8")
            if kind is StreamKind.AUDIO_CONVERT and meta.protocol == DASH_PROTOCOL:
                raise UnsupportedConversion("DASH")
        elif kind is StreamKind.REMUX and len(urls) < 2:
            raise RemuxRequiresTwoStreams()

    async def _ensure_transcoder(self) -> None:
        if not await self._runner.probe(self._ffmpeg.version()):
            log.error("transcoder_unavailable", binary=self._ffmpeg.binary)
            raise TranscoderUnavailable(self._ffmpeg.binary)

    async def _spawn(
        self, args: list[str], extension: str, kind: StreamKind
    ) -> MediaStream:
        process = self._runner.open(args)
        try:
            await process.start()
        except OSError as e:
            log.error("transcoder_spawn_failed", binary=self._ffmpeg.binary, error=str(e))
            raise TranscoderUnavailable(self._ffmpeg.binary) from e

        log.info(
            "transcoder_spawned",
            kind=kind.value,
            command=describe(args),
            extension=extension,
        )
        return MediaStream(
            process,
            extension=extension,
            media_type=media_type_for(extension),
        )

    async def _open_raw(self, video: Video, spec: StreamSpec) -> MediaStream:
        meta = await video.metadata()
        urls = await video.urls()

        headers = dict(meta.http_headers)
        headers.update(forwardable_headers(spec.request_headers))
        # Passthrough relays origin bytes and lengths verbatim.
        headers["Accept-Encoding"] = "identity"

        wants_range = any(name.lower() == "range" for name in headers)
        if meta.http_chunk_size and not wants_range:
            stream = await open_ranged_stream(
                self._http,
                urls[0],
                headers,
                range_size=meta.http_chunk_size,
                chunk_size=self._config.chunk_size,
            )
        else:
            stream = await open_origin_stream(
                self._http, urls[0], headers, chunk_size=self._config.chunk_size
            )

        stream.extension = meta.ext or "mp4"
        # Origins often answer with a generic octet-stream type.
        if stream.media_type in (None, "", "application/octet-stream"):
            stream.media_type = media_type_for(stream.extension)
        return stream
