"""Error taxonomy for extraction and streaming.

Errors raised before any response byte is committed carry enough context
for the HTTP layer to render them distinctly (password prompt, bad request,
unavailable transcoder).  Mid-stream errors are logged and re-raised so the
transport can abort the body.
"""

from __future__ import annotations


class VideoError(Exception):
    """Base error for extraction/streaming failures."""


class PasswordRequired(VideoError):
    """The source is password protected and no password was given."""

    def __init__(self, message: str = "", exit_code: int | None = None) -> None:
        super().__init__(message or "This video is protected by a password")
        self.message = message
        self.exit_code = exit_code


class WrongPassword(VideoError):
    """The given password was rejected by the source."""

    def __init__(self, message: str = "", exit_code: int | None = None) -> None:
        super().__init__("Wrong password")
        self.message = message
        self.exit_code = exit_code


class ExtractionFailed(VideoError):
    """The extraction tool exited non-zero (or produced unusable output)."""

    def __init__(self, message: str, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


class EmptyResult(VideoError):
    """The extraction tool succeeded but returned no URL."""

    def __init__(self) -> None:
        super().__init__("The extraction tool returned an empty URL")


class UnsupportedConversion(VideoError):
    """The requested conversion cannot be applied to this source."""

    def __init__(self, reason: str) -> None:
        super().__init__(f"Conversion not supported: {reason}")
        self.reason = reason


class InvalidTimeRange(VideoError):
    """A trim value does not match ``[[H:]M:]S``."""

    def __init__(self, value: str) -> None:
        super().__init__(f"Invalid time: {value}")
        self.value = value


class RemuxRequiresTwoStreams(VideoError):
    def __init__(self) -> None:
        super().__init__("This video does not have two URLs")


class TranscoderUnavailable(VideoError):
    """The transcoder binary is missing or not runnable."""

    def __init__(self, binary: str) -> None:
        super().__init__(f"Can't find avconv or ffmpeg at {binary}")
        self.binary = binary


class TranscoderFailed(VideoError):
    """The transcoder exited non-zero after its output was (partly) sent."""

    def __init__(self, returncode: int, stderr: str = "") -> None:
        super().__init__(f"Transcoder exited with code {returncode}: {stderr}")
        self.returncode = returncode
        self.stderr = stderr


class OriginError(VideoError):
    """The media origin answered a raw pull with a non-2xx status."""

    def __init__(self, status_code: int, url: str) -> None:
        super().__init__(f"Origin returned HTTP {status_code}")
        self.status_code = status_code
        self.url = url


class FeatureDisabled(VideoError):
    """The request needs a feature that is switched off in the config."""

    def __init__(self, feature: str) -> None:
        super().__init__(f"You need to enable {feature} mode")
        self.feature = feature


class ArchiveEntryFailed(VideoError):
    """A playlist item could not be resolved; it is skipped, not fatal."""

    def __init__(self, name: str, cause: BaseException | None = None) -> None:
        super().__init__(f"Archive entry failed: {name}")
        self.name = name
        self.cause = cause
