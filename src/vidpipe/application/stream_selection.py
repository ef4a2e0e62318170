"""Pick the StreamKind a resolved video needs."""

from __future__ import annotations

from collections.abc import Mapping, Sequence

from vidpipe.domain.entities.video import (
    M3U8_PROTOCOLS,
    StreamKind,
    StreamSpec,
    VideoMetadata,
)

AUDIO_FALLBACK_FORMAT = "bestaudio/best"


def native_kind(meta: VideoMetadata, urls: Sequence[str]) -> StreamKind:
    """Kind that delivers the video as-is (no re-encoding).

    Two URLs are a video+audio pair that must be merged; RTMP and HLS
    sources cannot be proxied byte-for-byte and go through the transcoder.
    """
    if len(urls) > 1:
        return StreamKind.REMUX
    if meta.protocol == "rtmp":
        return StreamKind.RTMP
    if meta.protocol in M3U8_PROTOCOLS:
        return StreamKind.M3U8
    return StreamKind.RAW


def select_spec(
    meta: VideoMetadata,
    urls: Sequence[str],
    *,
    audio: bool = False,
    audio_bitrate: int | None = None,
    start: str | None = None,
    end: str | None = None,
    request_headers: Mapping[str, str] | None = None,
) -> StreamSpec:
    if audio:
        return StreamSpec(
            kind=StreamKind.AUDIO_CONVERT,
            audio_bitrate=audio_bitrate,
            filetype="mp3",
            start=start,
            end=end,
        )
    kind = native_kind(meta, urls)
    if kind is StreamKind.RAW:
        return StreamSpec(kind=kind, request_headers=dict(request_headers or {}))
    return StreamSpec(kind=kind)
