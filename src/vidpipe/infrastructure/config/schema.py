"""Pydantic configuration models with validation."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import (
    AliasChoices,
    AliasPath,
    BaseModel,
    Field,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .defaults import DEFAULT_GENERIC_FORMATS, DEFAULT_YOUTUBEDL_PARAMS

Environment = Literal["dev", "test", "prod"]
LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]
LogFormat = Literal["json", "console"]
TranscoderVerbosity = Literal[
    "quiet", "panic", "fatal", "error", "warning", "info", "verbose", "debug"
]


def _normalize_path(value: Any) -> Path:
    """
    Normalize a path-like value without causing filesystem side-effects.

    This function MUST NOT create directories or files.
    """
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise TypeError(f"Expected path-like value, got: {type(value)!r}")


def _split_command(value: Any) -> Any:
    # "python3 -m yt_dlp" from ENV/CLI -> ["python3", "-m", "yt_dlp"]
    if isinstance(value, str):
        return value.split()
    return value


class AppConfig(BaseModel):
    """
    Canonical application configuration (validated, final).

    Note:
    - YAML is expected to be sectioned (youtubedl/transcoder/features/http/logging).
    - Environment variables are handled by EnvOverrides(BaseSettings) to allow strict
      precedence control (defaults < YAML < ENV < CLI) in load.py.
    - Built once at startup and passed explicitly; there is no global instance.
    """

    # General
    app_name: str = Field(default="vidpipe", description="Application name.")
    environment: Environment = Field(
        default="dev",
        description="Runtime environment (affects defaults like log format).",
    )

    # Extraction tool (YAML section: youtubedl.*)
    youtubedl_command: list[str] = Field(
        default_factory=lambda: ["yt-dlp"],
        validation_alias=AliasChoices(
            "youtubedl_command",
            AliasPath("youtubedl", "command"),
        ),
        description="Command used to run youtube-dl/yt-dlp (argv prefix).",
    )
    youtubedl_params: list[str] = Field(
        default_factory=lambda: list(DEFAULT_YOUTUBEDL_PARAMS),
        validation_alias=AliasChoices(
            "youtubedl_params",
            AliasPath("youtubedl", "params"),
        ),
        description="Base arguments passed on every extractor call.",
    )
    phantomjs_dir: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices(
            "phantomjs_dir",
            AliasPath("youtubedl", "phantomjs_dir"),
        ),
        description="Directory prepended to PATH for extractors that run PhantomJS.",
    )

    # Transcoder (YAML section: transcoder.*)
    avconv: str = Field(
        default="ffmpeg",
        validation_alias=AliasChoices(
            "avconv",
            AliasPath("transcoder", "binary"),
        ),
        description="avconv or ffmpeg binary path.",
    )
    avconv_verbosity: TranscoderVerbosity = Field(
        default="error",
        validation_alias=AliasChoices(
            "avconv_verbosity",
            AliasPath("transcoder", "verbosity"),
        ),
        description="Transcoder log level (-v).",
    )
    audio_bitrate: int = Field(
        default=128,
        validation_alias=AliasChoices(
            "audio_bitrate",
            AliasPath("transcoder", "audio_bitrate"),
        ),
        description="MP3 bitrate when converting (kbit/s).",
    )

    # Feature toggles (YAML section: features.*)
    convert: bool = Field(
        default=False,
        validation_alias=AliasChoices("convert", AliasPath("features", "convert")),
        description="Enable audio conversion.",
    )
    convert_advanced: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "convert_advanced",
            AliasPath("features", "convert_advanced"),
        ),
        description="Enable advanced conversion mode (custom bitrate/format).",
    )
    convert_advanced_formats: list[str] = Field(
        default_factory=lambda: ["mp3", "avi", "flv", "wav"],
        validation_alias=AliasChoices(
            "convert_advanced_formats",
            AliasPath("features", "convert_advanced_formats"),
        ),
        description="Formats available in advanced conversion mode.",
    )
    stream: bool = Field(
        default=False,
        validation_alias=AliasChoices("stream", AliasPath("features", "stream")),
        description="Stream files through the server instead of redirecting.",
    )
    remux: bool = Field(
        default=False,
        validation_alias=AliasChoices("remux", AliasPath("features", "remux")),
        description="Allow remuxing separate video + audio streams.",
    )

    # HTTP (YAML section: http.*)
    http_timeout_seconds: float = Field(
        default=30.0,
        validation_alias=AliasChoices(
            "http_timeout_seconds",
            AliasPath("http", "timeout_seconds"),
        ),
        description="Connect/read timeout for origin pulls.",
    )
    http_user_agent: str = Field(
        default="vidpipe/0.1.0",
        validation_alias=AliasChoices(
            "http_user_agent",
            AliasPath("http", "user_agent"),
        ),
        description="User-Agent for outgoing HTTP requests.",
    )
    chunk_size: int = Field(
        default=65536,
        validation_alias=AliasChoices(
            "chunk_size",
            AliasPath("http", "chunk_size"),
        ),
        description="Read size for process pipes and origin bodies (bytes).",
    )
    http_retry_max_attempts: int = Field(
        default=2,
        validation_alias=AliasChoices(
            "http_retry_max_attempts",
            AliasPath("http", "retry_max_attempts"),
        ),
        description="Retries for origin requests answered with 429/503 (0 disables).",
    )
    http_retry_backoff_base: float = Field(
        default=0.5,
        validation_alias=AliasChoices(
            "http_retry_backoff_base",
            AliasPath("http", "retry_backoff_base"),
        ),
        description="Base delay for exponential backoff (seconds).",
    )
    http_retry_max_backoff: float = Field(
        default=10.0,
        validation_alias=AliasChoices(
            "http_retry_max_backoff",
            AliasPath("http", "retry_max_backoff"),
        ),
        description="Upper bound for a single retry delay (seconds).",
    )

    # Logging (YAML section: logging.*)
    log_level: LogLevel = Field(
        default="INFO",
        validation_alias=AliasChoices(
            "log_level",
            AliasPath("logging", "level"),
        ),
        description="Log level.",
    )
    log_format: Optional[LogFormat] = Field(
        default=None,
        validation_alias=AliasChoices(
            "log_format",
            AliasPath("logging", "format"),
        ),
        description=(
            "Log renderer format (console/json). If unset, derived from environment."
        ),
    )

    generic_formats: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_GENERIC_FORMATS),
        description="Format presets offered to users (selector -> label).",
    )

    @field_validator("youtubedl_command", "youtubedl_params", mode="before")
    @classmethod
    def _validate_command(cls, v: Any) -> Any:
        return _split_command(v)

    @field_validator("youtubedl_command")
    @classmethod
    def _validate_command_not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("youtubedl_command must not be empty")
        return v

    @field_validator("phantomjs_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Path | None:
        if v is None:
            return None
        return _normalize_path(v)

    @field_validator("http_timeout_seconds")
    @classmethod
    def _validate_http_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("http_timeout_seconds must be > 0")
        return v

    @field_validator("audio_bitrate", "chunk_size")
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be > 0")
        return v

    @field_validator("http_retry_max_attempts")
    @classmethod
    def _validate_retries(cls, v: int) -> int:
        if v < 0:
            raise ValueError("http_retry_max_attempts must be >= 0")
        return v

    @model_validator(mode="after")
    def _derive_defaults(self) -> "AppConfig":
        # Default log format: console in dev/test, json in prod.
        if self.log_format is None:
            self.log_format = "json" if self.environment == "prod" else "console"

        formats: dict[str, str] = {}
        for selector, label in self.generic_formats.items():
            if "+" in selector:
                # Combined formats need remux mode.
                if self.remux:
                    formats[selector] = label
            elif not self.stream and "[protocol=" not in selector:
                # Without streaming we can only redirect to plain HTTP(S) files.
                formats[f"{selector}[protocol=https]/{selector}[protocol=http]"] = label
            else:
                formats[selector] = label
        self.generic_formats = formats
        return self

    @property
    def default_format(self) -> str:
        """Format used when the client does not pick one."""
        if self.stream:
            return "best"
        return "best[protocol=https]/best[protocol=http]"

    def to_sectioned_dict(self) -> dict[str, Any]:
        """
        Dump configuration in the sectioned shape used by config.yaml/docs.
        """
        return {
            "app_name": self.app_name,
            "environment": self.environment,
            "youtubedl": {
                "command": list(self.youtubedl_command),
                "params": list(self.youtubedl_params),
                "phantomjs_dir": (
                    str(self.phantomjs_dir) if self.phantomjs_dir else None
                ),
            },
            "transcoder": {
                "binary": self.avconv,
                "verbosity": self.avconv_verbosity,
                "audio_bitrate": self.audio_bitrate,
            },
            "features": {
                "convert": self.convert,
                "convert_advanced": self.convert_advanced,
                "convert_advanced_formats": list(self.convert_advanced_formats),
                "stream": self.stream,
                "remux": self.remux,
            },
            "http": {
                "timeout_seconds": self.http_timeout_seconds,
                "user_agent": self.http_user_agent,
                "chunk_size": self.chunk_size,
                "retry_max_attempts": self.http_retry_max_attempts,
                "retry_backoff_base": self.http_retry_backoff_base,
                "retry_max_backoff": self.http_retry_max_backoff,
            },
            "logging": {"level": self.log_level, "format": self.log_format},
        }


class EnvOverrides(BaseSettings):
    """
    Environment-variable overrides (all optional).

    Intended usage:
    - load.py creates EnvOverrides() to read VIDPIPE_* variables,
      converts to dict of set values, merges into YAML/defaults,
      then validates AppConfig.

    Supported env var examples (flat, explicit):
    - VIDPIPE_YOUTUBEDL_COMMAND ("python3 -m yt_dlp")
    - VIDPIPE_AVCONV
    - VIDPIPE_CONVERT / VIDPIPE_STREAM / VIDPIPE_REMUX
    - VIDPIPE_AUDIO_BITRATE
    - VIDPIPE_LOG_LEVEL
    """

    model_config = SettingsConfigDict(
        env_prefix="VIDPIPE_",
        extra="ignore",
        case_sensitive=False,
    )

    app_name: Optional[str] = None
    environment: Optional[Environment] = None

    youtubedl_command: Optional[str] = None
    phantomjs_dir: Optional[Path] = None

    avconv: Optional[str] = None
    avconv_verbosity: Optional[TranscoderVerbosity] = None
    audio_bitrate: Optional[int] = None

    convert: Optional[bool] = None
    convert_advanced: Optional[bool] = None
    stream: Optional[bool] = None
    remux: Optional[bool] = None

    http_timeout_seconds: Optional[float] = None
    http_user_agent: Optional[str] = None
    http_retry_max_attempts: Optional[int] = None

    log_level: Optional[LogLevel] = None
    log_format: Optional[LogFormat] = None

    @field_validator("phantomjs_dir", mode="before")
    @classmethod
    def _validate_paths(cls, v: Any) -> Any:
        if v is None:
            return None
        return _normalize_path(v)

    def to_update_dict(self) -> dict[str, Any]:
        """
        Return only values that were actually provided (non-None), for merging.
        """
        return self.model_dump(exclude_none=True)
