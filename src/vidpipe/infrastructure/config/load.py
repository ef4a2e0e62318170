from __future__ import annotations

import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Mapping

import yaml
from dotenv import load_dotenv

from .defaults import DEFAULT_CONFIG
from .schema import AppConfig, EnvOverrides

# YAML file used when no path is passed explicitly.
CONFIG_PATH_ENV = "VIDPIPE_CONFIG"

_SECTION_KEYS: set[str] = {"youtubedl", "transcoder", "features", "http", "logging"}

# Flat key -> (section, key inside section)
_FLAT_MAP: dict[str, tuple[str, str]] = {
    "youtubedl_command": ("youtubedl", "command"),
    "youtubedl_params": ("youtubedl", "params"),
    "phantomjs_dir": ("youtubedl", "phantomjs_dir"),
    "avconv": ("transcoder", "binary"),
    "avconv_verbosity": ("transcoder", "verbosity"),
    "audio_bitrate": ("transcoder", "audio_bitrate"),
    "convert": ("features", "convert"),
    "convert_advanced": ("features", "convert_advanced"),
    "convert_advanced_formats": ("features", "convert_advanced_formats"),
    "stream": ("features", "stream"),
    "remux": ("features", "remux"),
    "http_timeout_seconds": ("http", "timeout_seconds"),
    "http_user_agent": ("http", "user_agent"),
    "chunk_size": ("http", "chunk_size"),
    "http_retry_max_attempts": ("http", "retry_max_attempts"),
    "http_retry_backoff_base": ("http", "retry_backoff_base"),
    "http_retry_max_backoff": ("http", "retry_max_backoff"),
    "log_level": ("logging", "level"),
    "log_format": ("logging", "format"),
}


def _deep_merge(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """
    Recursively merge `override` into `base` and return `base`.

    Rules:
    - dict + dict => deep merge
    - otherwise => override wins
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, Mapping)
        ):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _normalize_layer(data: Mapping[str, Any]) -> dict[str, Any]:
    """
    Normalize a layer (defaults/YAML/ENV/CLI) into the canonical *sectioned* shape.

    Canonical top-level keys:
    - app_name, environment, generic_formats
    - youtubedl.command, youtubedl.params, youtubedl.phantomjs_dir
    - transcoder.binary, transcoder.verbosity, transcoder.audio_bitrate
    - features.convert, features.convert_advanced, features.convert_advanced_formats,
      features.stream, features.remux
    - http.timeout_seconds, http.user_agent, http.chunk_size,
      http.retry_max_attempts, http.retry_backoff_base, http.retry_max_backoff
    - logging.level, logging.format
    """
    out: dict[str, Any] = {}

    # Pass through already sectioned blocks
    for section in _SECTION_KEYS:
        if section in data and isinstance(data[section], Mapping):
            out[section] = dict(data[section])

    for key in ("app_name", "environment", "generic_formats"):
        if key in data:
            out[key] = data[key]

    for flat_key, (section, section_key) in _FLAT_MAP.items():
        if flat_key in data:
            out.setdefault(section, {})
            out[section][section_key] = data[flat_key]

    return out


def _read_yaml_config(config_path: Path) -> dict[str, Any]:
    raw = config_path.read_text(encoding="utf-8")
    parsed = yaml.safe_load(raw)
    if parsed is None:
        return {}
    if not isinstance(parsed, dict):
        raise ValueError(
            f"Config YAML must be a mapping, got: {type(parsed)!r}")
    return parsed


def load_config(
    *,
    config_path: Path | None = None,
    dotenv_path: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> AppConfig:
    """
    Load configuration with strict precedence:
    defaults < YAML file < env vars < cli overrides

    Without *config_path* the YAML file named by ``VIDPIPE_CONFIG`` (which
    may itself come from the .env file) is used, if set.

    This function MUST NOT create files or directories (no filesystem side-effects).
    """
    cli_overrides = cli_overrides or {}

    # Load .env first so it participates as "env vars" layer.
    if dotenv_path is not None:
        if not dotenv_path.exists():
            raise FileNotFoundError(dotenv_path)
        load_dotenv(dotenv_path, override=False)

    if config_path is None and os.environ.get(CONFIG_PATH_ENV):
        config_path = Path(os.environ[CONFIG_PATH_ENV])

    base = _normalize_layer(deepcopy(DEFAULT_CONFIG))

    if config_path is not None:
        if not config_path.exists():
            raise FileNotFoundError(config_path)
        yaml_layer = _normalize_layer(_read_yaml_config(config_path))
        _deep_merge(base, yaml_layer)

    env_layer = _normalize_layer(EnvOverrides().to_update_dict())
    _deep_merge(base, env_layer)

    cli_layer = _normalize_layer(cli_overrides)
    _deep_merge(base, cli_layer)

    # Validate final merged config (single source of truth).
    return AppConfig.model_validate(base)
