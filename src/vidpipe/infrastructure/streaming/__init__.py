from .media import MediaStream, media_type_for, open_origin_stream, open_ranged_stream
from .pipeline import StreamPipeline

__all__ = [
    "MediaStream",
    "StreamPipeline",
    "media_type_for",
    "open_origin_stream",
    "open_ranged_stream",
]
