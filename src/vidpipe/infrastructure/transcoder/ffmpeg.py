"""Argument vectors for the transcoder (ffmpeg / avconv).

Every invocation starts with ``<binary> -v <verbosity>`` and writes to
``pipe:1`` so its stdout can be streamed straight into the response.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from vidpipe.domain.entities.errors import InvalidTimeRange
from vidpipe.domain.entities.video import RtmpParams

OUTPUT_PIPE = "pipe:1"

# [[H:]M:]S with optional fractional seconds: "83", "1:23", "00:01:23.5"
_DURATION_RE = re.compile(r"(\d+:)?(\d+:)?\d+(\.\d+)?")


def validate_time(value: str | None) -> str | None:
    """Return *value* unchanged, or raise ``InvalidTimeRange``.

    Empty values mean "no trim" and are returned as ``None``.
    """
    if value is None or value == "":
        return None
    if not _DURATION_RE.fullmatch(value.strip()):
        raise InvalidTimeRange(value)
    return value.strip()


def rtmp_arguments(params: RtmpParams | None) -> list[str]:
    """RTMP connection options, or nothing for non-RTMP sources."""
    if params is None:
        return []

    args: list[str] = []
    for option, value in (
        ("-rtmp_tcurl", params.tc_url),
        ("-rtmp_pageurl", params.page_url),
        ("-rtmp_swfverify", params.player_url),
        ("-rtmp_flashver", params.flash_version),
        ("-rtmp_playpath", params.play_path),
        ("-rtmp_app", params.app),
    ):
        if value is not None:
            args.extend((option, value))
    for conn in params.conn:
        args.extend(("-rtmp_conn", conn))
    return args


class FfmpegCommand:
    """Builds transcoder command lines for each stream kind."""

    def __init__(self, binary: str, verbosity: str = "error") -> None:
        self.binary = binary
        self.verbosity = verbosity

    def _base(self) -> list[str]:
        return [self.binary, "-v", self.verbosity]

    def version(self) -> list[str]:
        return [self.binary, "-version"]

    def convert(
        self,
        url: str,
        *,
        audio_bitrate: int,
        filetype: str = "mp3",
        audio_only: bool = True,
        start: str | None = None,
        end: str | None = None,
        rtmp: RtmpParams | None = None,
        user_agent: str | None = None,
    ) -> list[str]:
        """Re-encode *url*; audio-only drops the video track."""
        args = self._base()
        args += rtmp_arguments(rtmp)
        if user_agent:
            # Input option: some origins (Vimeo) reject ffmpeg's default UA.
            args += ["-user_agent", user_agent]
        args += ["-i", url, "-f", filetype, "-b:a", f"{audio_bitrate}k"]
        if audio_only:
            args.append("-vn")
        start = validate_time(start)
        end = validate_time(end)
        if start:
            args += ["-ss", start]
        if end:
            args += ["-to", end]
        args.append(OUTPUT_PIPE)
        return args

    def remux(self, video_url: str, audio_url: str) -> list[str]:
        """Merge a video-only and an audio-only stream without re-encoding."""
        return self._base() + [
            "-i", video_url,
            "-i", audio_url,
            "-c", "copy",
            "-map", "0:v:0",
            "-map", "1:a:0",
            "-f", "matroska",
            OUTPUT_PIPE,
        ]  # fmt: skip

    def rtmp(self, url: str, params: RtmpParams | None, container: str) -> list[str]:
        return (
            self._base()
            + rtmp_arguments(params)
            + ["-i", url, "-f", container, OUTPUT_PIPE]
        )

    def m3u8(self, url: str, container: str) -> list[str]:
        """Repackage an HLS source into one progressive (fragmented) file."""
        return self._base() + [
            "-i", url,
            "-f", container,
            "-c", "copy",
            "-bsf:a", "aac_adtstoasc",
            "-movflags", "frag_keyframe+empty_moov",
            OUTPUT_PIPE,
        ]  # fmt: skip


def describe(args: Sequence[str]) -> str:
    """Short, log-safe summary of a command (program + option names)."""
    return " ".join(a for a in args if a.startswith("-") or a == args[0])
