"""Hardcoded default configuration values."""

from __future__ import annotations

from typing import Any

DEFAULT_YOUTUBEDL_PARAMS: list[str] = [
    "--no-warnings",
    "--ignore-errors",
    "--flat-playlist",
    "--restrict-filenames",
    "--no-playlist",
]

DEFAULT_GENERIC_FORMATS: dict[str, str] = {
    "best": "Best",
    "bestvideo+bestaudio": "Remux best video with best audio",
    "worst": "Worst",
}

DEFAULT_CONFIG: dict[str, Any] = {
    "app_name": "vidpipe",
    "environment": "dev",
    "youtubedl": {
        "command": ["yt-dlp"],
        "params": list(DEFAULT_YOUTUBEDL_PARAMS),
        "phantomjs_dir": None,
    },
    "transcoder": {
        "binary": "ffmpeg",
        "verbosity": "error",
        "audio_bitrate": 128,
    },
    "features": {
        "convert": False,
        "convert_advanced": False,
        "convert_advanced_formats": ["mp3", "avi", "flv", "wav"],
        "stream": False,
        "remux": False,
    },
    "http": {
        "timeout_seconds": 30.0,
        "user_agent": "vidpipe/0.1.0",
        "chunk_size": 65536,
        "retry_max_attempts": 2,
        "retry_backoff_base": 0.5,
        "retry_max_backoff": 10.0,
    },
    "logging": {
        "level": "INFO",
        "format": None,  # Derived from environment in schema.py
    },
}
