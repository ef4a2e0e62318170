"""Download planning use case.

Decides, per request, whether the client is redirected to the media URL
or served a stream (raw passthrough, conversion, remux, or a playlist
archive), and opens that stream before the response starts.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol, Union

import httpx
import structlog

from vidpipe.application.archive import PlaylistArchiveStream
from vidpipe.application.stream_selection import (
    AUDIO_FALLBACK_FORMAT,
    native_kind,
    select_spec,
)
from vidpipe.application.video import Video
from vidpipe.domain.entities.errors import (
    FeatureDisabled,
    PasswordRequired,
    UnsupportedConversion,
    VideoError,
)
from vidpipe.domain.entities.video import StreamKind, StreamSpec
from vidpipe.domain.ports.streaming import MediaStreamPort, StreamOpenerPort

log = structlog.get_logger(__name__)

NATIVE_MP3_STREAM_FORMAT = "mp3"
NATIVE_MP3_REDIRECT_FORMAT = "mp3[protocol=https]/mp3[protocol=http]"


class _DownloadConfig(Protocol):
    """Configuration values consumed by DownloadService."""

    convert: bool
    convert_advanced: bool
    convert_advanced_formats: list[str]
    stream: bool
    remux: bool
    audio_bitrate: int


@dataclass(frozen=True)
class DownloadOptions:
    audio: bool = False
    start: str | None = None
    end: str | None = None
    custom_convert: bool = False
    custom_bitrate: int | None = None
    custom_format: str | None = None
    request_headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def trimmed(self) -> bool:
        return bool(self.start or self.end)


@dataclass(frozen=True)
class Redirect:
    url: str


@dataclass(frozen=True)
class StreamPlan:
    stream: MediaStreamPort
    filename: str


@dataclass(frozen=True)
class ArchivePlan:
    stream: PlaylistArchiveStream
    filename: str


DownloadPlan = Union[Redirect, StreamPlan, ArchivePlan]


class DownloadService:
    """Turns a Video plus DownloadOptions into a DownloadPlan.

    Every returned stream is already open: validation errors, missing
    transcoders and origin failures are raised from ``plan()`` itself.
    The caller owns the stream and must ``aclose()`` it.
    """

    def __init__(self, config: _DownloadConfig, pipeline: StreamOpenerPort) -> None:
        self._config = config
        self._pipeline = pipeline

    async def plan(self, video: Video, options: DownloadOptions) -> DownloadPlan:
        if options.custom_convert:
            return await self._plan_custom(video, options)

        meta = await video.metadata()
        if meta.is_playlist:
            return await self._plan_archive(video, options)
        if options.audio:
            return await self._plan_audio(video, options)

        urls = await video.urls()
        kind = native_kind(meta, urls)
        if kind is StreamKind.REMUX and not self._config.remux:
            raise FeatureDisabled("remux")
        if kind is StreamKind.RAW and not self._config.stream:
            log.debug("download_redirect", url=video.page_url, format=video.format)
            return Redirect(urls[0])

        spec = select_spec(meta, urls, request_headers=options.request_headers)
        return await self._open(video, spec)

    async def _open(self, video: Video, spec: StreamSpec) -> StreamPlan:
        stream = await self._pipeline.open(video, spec)
        try:
            filename = await video.filename_with_extension(stream.extension)
        except BaseException:
            await stream.aclose()
            raise
        log.info(
            "download_stream",
            url=video.page_url,
            kind=spec.kind.value,
            filename=filename,
        )
        return StreamPlan(stream, filename)

    async def _plan_audio(self, video: Video, options: DownloadOptions) -> DownloadPlan:
        if not self._config.convert:
            raise FeatureDisabled("convert")

        if not options.trimmed:
            native = await self._native_mp3(video, options)
            if native is not None:
                return native

        audio = video.with_format(AUDIO_FALLBACK_FORMAT)
        spec = StreamSpec(
            kind=StreamKind.AUDIO_CONVERT,
            audio_bitrate=self._config.audio_bitrate,
            filetype="mp3",
            start=options.start,
            end=options.end,
        )
        return await self._open(audio, spec)

    async def _native_mp3(
        self, video: Video, options: DownloadOptions
    ) -> DownloadPlan | None:
        """Use an mp3 the source already offers, if any."""
        if self._config.stream:
            native = video.with_format(NATIVE_MP3_STREAM_FORMAT)
        else:
            native = video.with_format(NATIVE_MP3_REDIRECT_FORMAT)
        try:
            if not self._config.stream:
                urls = await native.urls()
                return Redirect(urls[0])
            spec = StreamSpec(
                kind=StreamKind.RAW, request_headers=dict(options.request_headers)
            )
            return await self._open(native, spec)
        except PasswordRequired:
            raise
        except (VideoError, httpx.HTTPError) as e:
            log.info(
                "native_mp3_unavailable",
                url=video.page_url,
                error_type=type(e).__name__,
            )
            return None

    async def _plan_custom(self, video: Video, options: DownloadOptions) -> StreamPlan:
        if not self._config.convert_advanced:
            raise FeatureDisabled("advanced conversion")
        filetype = options.custom_format or ""
        if filetype not in self._config.convert_advanced_formats:
            raise UnsupportedConversion("format")

        spec = StreamSpec(
            kind=StreamKind.GENERIC_CONVERT,
            audio_bitrate=options.custom_bitrate or self._config.audio_bitrate,
            filetype=filetype,
        )
        return await self._open(video, spec)

    async def _plan_archive(
        self, video: Video, options: DownloadOptions
    ) -> ArchivePlan:
        if options.audio and not self._config.convert:
            raise FeatureDisabled("convert")
        if not self._config.stream:
            if options.audio:
                raise UnsupportedConversion("playlist")
            raise FeatureDisabled("stream")

        archive = PlaylistArchiveStream(
            video,
            self._pipeline,
            audio=options.audio,
            audio_bitrate=self._config.audio_bitrate,
            remux=self._config.remux,
        )
        await archive.open()
        meta = await video.metadata()
        filename = f"{meta.title or 'playlist'}.zip"
        log.info("download_archive", url=video.page_url, filename=filename)
        return ArchivePlan(archive, filename)
