from .ffmpeg import FfmpegCommand, rtmp_arguments, validate_time

__all__ = ["FfmpegCommand", "rtmp_arguments", "validate_time"]
