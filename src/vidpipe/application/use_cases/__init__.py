from .download import (
    ArchivePlan,
    DownloadOptions,
    DownloadPlan,
    DownloadService,
    Redirect,
    StreamPlan,
)

__all__ = [
    "ArchivePlan",
    "DownloadOptions",
    "DownloadPlan",
    "DownloadService",
    "Redirect",
    "StreamPlan",
]
