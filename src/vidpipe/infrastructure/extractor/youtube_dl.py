"""ExtractorClient: runs youtube-dl / yt-dlp and classifies its failures.

The tool is a black box with a CLI contract:

    <command> <base params> --<mode> <page url> [-f FORMAT] [--video-password PW]

Exit code 0 means stdout holds the answer for *mode*; anything else is
classified from stderr into a typed error.
"""

from __future__ import annotations

import json
import os
from collections.abc import Sequence
from pathlib import Path

import structlog

from vidpipe.domain.entities.errors import (
    EmptyResult,
    ExtractionFailed,
    PasswordRequired,
    WrongPassword,
)
from vidpipe.domain.entities.video import VideoMetadata, VideoRequest
from vidpipe.domain.ports.process_runner import ProcessRunnerPort
from vidpipe.infrastructure.process.runner import merged_env

log = structlog.get_logger(__name__)

PASSWORD_REQUIRED_MESSAGE = (
    "This video is protected by a password, use the --video-password option"
)
WRONG_PASSWORD_PREFIX = "Wrong password"
_ERROR_PREFIX = "ERROR: "

MODE_INFO = "--dump-single-json"
MODE_URL = "--get-url"
MODE_FILENAME = "--get-filename"
MODE_EXTRACTORS = "--list-extractors"
MODE_USER_AGENT = "--dump-user-agent"


def classify_failure(
    stderr: str, exit_code: int | None
) -> PasswordRequired | WrongPassword | ExtractionFailed:
    """Map the tool's stderr onto the error taxonomy.

    The tool prefixes its messages with ``ERROR:``; the prefix is ignored
    when comparing against the known sentinels.
    """
    message = stderr.strip()
    body = message[len(_ERROR_PREFIX):] if message.startswith(_ERROR_PREFIX) else message

    if body == PASSWORD_REQUIRED_MESSAGE:
        return PasswordRequired(message, exit_code)
    if body.startswith(WRONG_PASSWORD_PREFIX):
        return WrongPassword(message, exit_code)
    return ExtractionFailed(message, exit_code)


class YoutubeDlClient:
    """Extraction tool client; one process per call, no caching."""

    def __init__(
        self,
        runner: ProcessRunnerPort,
        *,
        command: Sequence[str] = ("yt-dlp",),
        params: Sequence[str] = (),
        phantomjs_dir: Path | None = None,
    ) -> None:
        self._runner = runner
        self._command = list(command)
        self._params = list(params)
        self._phantomjs_dir = phantomjs_dir

    def _env(self) -> dict[str, str]:
        if self._phantomjs_dir is None:
            return merged_env()
        # The PhantomJS-based extractor looks the binary up on PATH.
        path = os.environ.get("PATH", "")
        return merged_env({"PATH": os.pathsep.join([str(self._phantomjs_dir), path])})

    def build_args(self, mode: str, request: VideoRequest | None = None) -> list[str]:
        args = [*self._command, *self._params, mode]
        if request is not None:
            args.append(request.page_url)
            if request.format:
                args += ["-f", request.format]
            if request.password:
                args += ["--video-password", request.password]
        return args

    async def _call(self, mode: str, request: VideoRequest | None = None) -> str:
        args = self.build_args(mode, request)
        log.debug(
            "extractor_call",
            mode=mode,
            url=request.page_url if request else None,
            format=request.format if request else None,
        )

        try:
            result = await self._runner.run(args, env=self._env())
        except OSError as e:
            log.error("extractor_spawn_failed", program=args[0], error=str(e))
            raise ExtractionFailed(f"Can't run {args[0]}: {e}") from e

        if not result.ok:
            error = classify_failure(result.stderr, result.returncode)
            log.warning(
                "extractor_failed",
                mode=mode,
                url=request.page_url if request else None,
                exit_code=result.returncode,
                error_type=type(error).__name__,
            )
            raise error

        return result.stdout.strip()

    async def extract_info(self, request: VideoRequest) -> VideoMetadata:
        output = await self._call(MODE_INFO, request)
        try:
            data = json.loads(output)
        except json.JSONDecodeError as e:
            raise ExtractionFailed(f"Invalid JSON from extractor: {e}") from e
        if not isinstance(data, dict):
            raise ExtractionFailed("Extractor JSON is not an object")
        return VideoMetadata.from_info(data)

    async def extract_urls(self, request: VideoRequest) -> tuple[str, ...]:
        """One URL normally; two for combined formats (``bestvideo+bestaudio``)."""
        output = await self._call(MODE_URL, request)
        urls = tuple(line.strip() for line in output.split("\n"))
        if not urls or not urls[0]:
            raise EmptyResult()
        return tuple(u for u in urls if u)

    async def extract_filename(self, request: VideoRequest) -> str:
        return await self._call(MODE_FILENAME, request)

    async def list_extractors(self) -> list[str]:
        output = await self._call(MODE_EXTRACTORS)
        return [line for line in output.split("\n") if line.strip()]

    async def dump_user_agent(self) -> str:
        return await self._call(MODE_USER_AGENT)
