from .youtube_dl import YoutubeDlClient, classify_failure

__all__ = ["YoutubeDlClient", "classify_failure"]
