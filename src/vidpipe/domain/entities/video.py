"""Domain entities for video resolution and streaming.

Pure value objects without framework dependencies or I/O.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any

_YOUTUBE_WATCH_URL = "https://www.youtube.com/watch?v="

M3U8_PROTOCOLS = frozenset({"m3u8", "m3u8_native"})
DASH_PROTOCOL = "http_dash_segments"


@dataclass(frozen=True)
class VideoRequest:
    """What the caller asked for: page URL, format selector, password."""

    page_url: str
    format: str = "best"
    password: str | None = None

    def with_format(self, format: str) -> VideoRequest:
        return replace(self, format=format)


@dataclass(frozen=True)
class RtmpParams:
    """RTMP connection parameters reported by the extractor."""

    tc_url: str | None = None
    page_url: str | None = None
    player_url: str | None = None
    flash_version: str | None = None
    play_path: str | None = None
    app: str | None = None
    conn: tuple[str, ...] = ()


@dataclass(frozen=True)
class PlaylistEntry:
    """One item of a flat playlist dump."""

    url: str
    id: str | None = None
    title: str | None = None
    ie_key: str | None = None

    @classmethod
    def from_info(cls, data: Mapping[str, Any]) -> PlaylistEntry | None:
        url = data.get("url") or data.get("webpage_url") or data.get("id")
        if not url:
            return None
        return cls(
            url=str(url),
            id=_opt_str(data.get("id")),
            title=_opt_str(data.get("title")),
            ie_key=_opt_str(data.get("ie_key")),
        )

    @property
    def page_url(self) -> str:
        """Absolute page URL; flat YouTube entries only carry the video id."""
        if "://" in self.url:
            return self.url
        if self.ie_key == "Youtube":
            return _YOUTUBE_WATCH_URL + self.url
        return self.url

    def to_request(self, format: str = "best", password: str | None = None) -> VideoRequest:
        return VideoRequest(page_url=self.page_url, format=format, password=password)


@dataclass(frozen=True)
class VideoMetadata:
    """Typed view of the extractor's JSON dump.

    Every field is optional: extractors report wildly different subsets,
    so an absent key reads as ``None`` instead of raising.
    """

    title: str | None = None
    extractor_key: str | None = None
    protocol: str | None = None
    ext: str | None = None
    url: str | None = None
    webpage_url: str | None = None
    format_id: str | None = None
    type: str | None = None  # "_type": "playlist" / "url" / None
    duration: float | None = None
    player_url: str | None = None
    flash_version: str | None = None
    play_path: str | None = None
    app: str | None = None
    rtmp_conn: tuple[str, ...] = ()
    http_chunk_size: int | None = None
    http_headers: Mapping[str, str] = field(default_factory=dict)
    entries: tuple[PlaylistEntry, ...] = ()

    @classmethod
    def from_info(cls, data: Mapping[str, Any]) -> VideoMetadata:
        downloader_options = data.get("downloader_options") or {}
        chunk_size = (
            downloader_options.get("http_chunk_size")
            if isinstance(downloader_options, Mapping)
            else None
        )

        rtmp_conn = data.get("rtmp_conn") or ()
        if isinstance(rtmp_conn, str):
            rtmp_conn = (rtmp_conn,)

        entries: list[PlaylistEntry] = []
        for raw in data.get("entries") or ():
            if isinstance(raw, Mapping):
                entry = PlaylistEntry.from_info(raw)
                if entry is not None:
                    entries.append(entry)

        headers = data.get("http_headers") or {}
        duration = data.get("duration")

        return cls(
            title=_opt_str(data.get("title")),
            extractor_key=_opt_str(data.get("extractor_key")),
            protocol=_opt_str(data.get("protocol")),
            ext=_opt_str(data.get("ext")),
            url=_opt_str(data.get("url")),
            webpage_url=_opt_str(data.get("webpage_url")),
            format_id=_opt_str(data.get("format_id")),
            type=_opt_str(data.get("_type")),
            duration=float(duration) if isinstance(duration, (int, float)) else None,
            player_url=_opt_str(data.get("player_url")),
            flash_version=_opt_str(data.get("flash_version")),
            play_path=_opt_str(data.get("play_path")),
            app=_opt_str(data.get("app")),
            rtmp_conn=tuple(str(c) for c in rtmp_conn),
            http_chunk_size=int(chunk_size) if chunk_size else None,
            http_headers=(
                {str(k): str(v) for k, v in headers.items()}
                if isinstance(headers, Mapping)
                else {}
            ),
            entries=tuple(entries),
        )

    @property
    def is_playlist(self) -> bool:
        return self.type == "playlist" or bool(self.entries)

    @property
    def rtmp_params(self) -> RtmpParams | None:
        if self.protocol != "rtmp":
            return None
        return RtmpParams(
            tc_url=self.url,
            page_url=self.webpage_url,
            player_url=self.player_url,
            flash_version=self.flash_version,
            play_path=self.play_path,
            app=self.app,
            conn=self.rtmp_conn,
        )


class StreamKind(Enum):
    RAW = "raw"
    AUDIO_CONVERT = "audio_convert"
    GENERIC_CONVERT = "generic_convert"
    REMUX = "remux"
    RTMP = "rtmp"
    M3U8 = "m3u8"


@dataclass(frozen=True)
class StreamSpec:
    """How to emit bytes for one video."""

    kind: StreamKind = StreamKind.RAW
    audio_bitrate: int | None = None
    filetype: str | None = None
    start: str | None = None
    end: str | None = None
    request_headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ArchiveEntry:
    """A playlist item paired with its name inside the archive."""

    request: VideoRequest
    name: str


def _opt_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)
