from .errors import (
    ArchiveEntryFailed,
    EmptyResult,
    ExtractionFailed,
    FeatureDisabled,
    InvalidTimeRange,
    OriginError,
    PasswordRequired,
    RemuxRequiresTwoStreams,
    TranscoderFailed,
    TranscoderUnavailable,
    UnsupportedConversion,
    VideoError,
    WrongPassword,
)
from .video import (
    ArchiveEntry,
    PlaylistEntry,
    RtmpParams,
    StreamKind,
    StreamSpec,
    VideoMetadata,
    VideoRequest,
)

__all__ = [
    "ArchiveEntry",
    "ArchiveEntryFailed",
    "EmptyResult",
    "ExtractionFailed",
    "FeatureDisabled",
    "InvalidTimeRange",
    "OriginError",
    "PasswordRequired",
    "PlaylistEntry",
    "RemuxRequiresTwoStreams",
    "RtmpParams",
    "StreamKind",
    "StreamSpec",
    "TranscoderFailed",
    "TranscoderUnavailable",
    "UnsupportedConversion",
    "VideoError",
    "VideoMetadata",
    "VideoRequest",
    "WrongPassword",
]
