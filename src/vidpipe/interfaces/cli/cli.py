from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog
import uvicorn

from vidpipe.infrastructure.config import load_config
from vidpipe.infrastructure.logging.setup import configure_logging
from vidpipe.interfaces.app import create_app

log = structlog.get_logger(__name__)


def _parse_args(argv: Iterable[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="vidpipe")

    # Server options
    parser.add_argument(
        "--host",
        default=None,
        help="Bind host (overrides HOST env).",
    )
    parser.add_argument(
        "--port",
        default=None,
        type=int,
        help="Bind port (overrides PORT env).",
    )

    # Config wiring flags (no business logic)
    parser.add_argument(
        "--config",
        default=None,
        help="Path to YAML config file.",
    )
    parser.add_argument(
        "--dotenv",
        default=None,
        help="Path to .env file.",
    )
    parser.add_argument(
        "--youtubedl",
        default=None,
        help="Extraction tool command (e.g. 'python3 -m yt_dlp').",
    )
    parser.add_argument(
        "--avconv",
        default=None,
        help="Transcoder binary (ffmpeg or avconv).",
    )

    # Feature toggles
    for flag, help_text in (
        ("--stream", "Stream media through the server instead of redirecting."),
        ("--convert", "Enable audio conversion."),
        ("--convert-advanced", "Enable custom bitrate/format conversion."),
        ("--remux", "Allow merging separate video and audio streams."),
    ):
        parser.add_argument(flag, action="store_true", default=None, help=help_text)

    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Override log level.",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Override log format.",
    )

    return parser.parse_args(argv)


def _cli_overrides(args: argparse.Namespace) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    if args.youtubedl:
        overrides["youtubedl_command"] = args.youtubedl
    if args.avconv:
        overrides["avconv"] = args.avconv
    for name in ("stream", "convert", "convert_advanced", "remux"):
        if getattr(args, name):
            overrides[name] = True
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    return overrides


def start(argv: Iterable[str] | None = None) -> None:
    """
    Process entrypoint.

    Loads config exactly once here, then builds the FastAPI app with it.
    """

    if argv is None:
        argv = sys.argv[1:]

    args = _parse_args(argv)

    host = args.host or os.getenv("HOST", "0.0.0.0")
    port = int(args.port or os.getenv("PORT", "7979"))

    config = load_config(
        config_path=Path(args.config) if args.config else None,
        dotenv_path=Path(args.dotenv) if args.dotenv else None,
        cli_overrides=_cli_overrides(args),
    )

    log_config = configure_logging(config)
    log.info(
        "vidpipe_starting",
        host=host,
        port=port,
        environment=config.environment,
        stream=config.stream,
        convert=config.convert,
        remux=config.remux,
    )

    uvicorn.run(
        create_app(config),
        host=host,
        port=port,
        log_config=log_config,
    )


if __name__ == "__main__":
    raise SystemExit(start())
