"""Video endpoints: metadata, download/stream, supported extractors."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import cast

import httpx
import structlog
from fastapi import APIRouter, Query, Request
from fastapi.responses import JSONResponse, RedirectResponse
from starlette.responses import Response, StreamingResponse
from starlette.types import Receive, Scope, Send

from vidpipe.application.use_cases.download import (
    DownloadOptions,
    Redirect,
)
from vidpipe.application.video import PasswordPrompt, Video, resolve
from vidpipe.domain.entities.errors import (
    EmptyResult,
    ExtractionFailed,
    FeatureDisabled,
    InvalidTimeRange,
    OriginError,
    PasswordRequired,
    RemuxRequiresTwoStreams,
    TranscoderUnavailable,
    UnsupportedConversion,
    VideoError,
    WrongPassword,
)
from vidpipe.domain.entities.video import VideoRequest
from vidpipe.domain.ports.streaming import MediaStreamPort
from vidpipe.interfaces.api.video.presenter import content_disposition, render_info
from vidpipe.interfaces.app_state import AppState

log = structlog.get_logger(__name__)

router = APIRouter(tags=["video"])

_BAD_REQUEST = (
    InvalidTimeRange,
    UnsupportedConversion,
    RemuxRequiresTwoStreams,
    FeatureDisabled,
)


class MediaResponse(StreamingResponse):
    """StreamingResponse that always releases its MediaStream.

    The stream is closed even when the client goes away before the first
    body chunk is requested, so no transcoder outlives its request.
    """

    def __init__(
        self, stream: MediaStreamPort, *, filename: str, url: str
    ) -> None:
        headers = dict(stream.headers)
        headers["Content-Disposition"] = content_disposition(filename)
        super().__init__(
            _relay(stream, url),
            status_code=stream.status_code,
            media_type=stream.media_type,
            headers=headers,
        )
        self._stream = stream

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self._stream.aclose()


async def _relay(stream: MediaStreamPort, url: str) -> AsyncIterator[bytes]:
    sent = 0
    try:
        async for chunk in stream:
            sent += len(chunk)
            yield chunk
    except Exception as e:
        # Headers are already out; re-raising lets the server abort the body.
        log.error(
            "stream_failed",
            url=url,
            bytes_sent=sent,
            error_type=type(e).__name__,
            error=str(e),
        )
        raise
    finally:
        await stream.aclose()
    log.info("stream_completed", url=url, bytes_sent=sent)


def _error_response(e: Exception, url: str) -> JSONResponse:
    """Map pre-commit failures onto HTTP statuses."""
    if isinstance(e, PasswordRequired):
        status, code = 401, "password_required"
    elif isinstance(e, WrongPassword):
        status, code = 403, "wrong_password"
    elif isinstance(e, _BAD_REQUEST):
        status, code = 400, "bad_request"
    elif isinstance(e, TranscoderUnavailable):
        status, code = 503, "transcoder_unavailable"
    elif isinstance(e, (OriginError, httpx.HTTPError)):
        status, code = 502, "origin_error"
    elif isinstance(e, (ExtractionFailed, EmptyResult)):
        status, code = 500, "extraction_failed"
    else:
        status, code = 500, "internal_error"

    log.warning(
        "video_request_failed",
        url=url,
        status_code=status,
        error_type=type(e).__name__,
        error=str(e),
    )
    return JSONResponse({"error": code, "detail": str(e)}, status_code=status)


@router.get("/info")
async def video_info(
    request: Request,
    url: str = Query(..., min_length=1),
    format: str | None = Query(None),
    password: str | None = Query(None),
    audio: bool = Query(False),
) -> Response:
    """Describe the video (or playlist) behind a page URL.

    With ``audio`` set and conversion enabled the client is sent straight
    to the download endpoint.

    Raises nothing: password prompts answer 401, a rejected password 403,
    any other extraction failure 500.
    """
    state = cast(AppState, request.app.state)
    config = state.config

    if audio and config.convert:
        target = request.url_for("video_download").include_query_params(
            **dict(request.query_params)
        )
        return RedirectResponse(str(target), status_code=302)

    try:
        outcome = await resolve(
            state.extractor, url, format or config.default_format, password
        )
    except VideoError as e:
        return _error_response(e, url)

    if isinstance(outcome, PasswordPrompt):
        return JSONResponse(
            {"error": "password_required", "detail": outcome.message},
            status_code=401,
        )

    log.info(
        "video_info",
        url=url,
        extractor=outcome.metadata.extractor_key,
        playlist=outcome.metadata.is_playlist,
    )
    return JSONResponse(render_info(outcome.metadata, config.generic_formats))


@router.get("/download", name="video_download")
async def video_download(
    request: Request,
    url: str = Query(..., min_length=1),
    format: str | None = Query(None),
    password: str | None = Query(None),
    audio: bool = Query(False),
    start: str | None = Query(None, alias="from"),
    end: str | None = Query(None, alias="to"),
    custom_convert: bool = Query(False, alias="customConvert"),
    custom_bitrate: int | None = Query(None, alias="customBitrate", gt=0),
    custom_format: str | None = Query(None, alias="customFormat"),
) -> Response:
    """Redirect to the media URL or stream it through the server.

    Validation, password and transcoder problems are answered with a JSON
    error before any media byte; once streaming, failures abort the body.
    """
    state = cast(AppState, request.app.state)
    config = state.config

    video = Video(
        VideoRequest(url, format or config.default_format, password or None),
        state.extractor,
    )
    options = DownloadOptions(
        audio=audio,
        start=start or None,
        end=end or None,
        custom_convert=custom_convert,
        custom_bitrate=custom_bitrate,
        custom_format=custom_format,
        request_headers=dict(request.headers),
    )

    log.info(
        "download_request",
        url=url,
        format=video.format,
        audio=audio,
        custom_convert=custom_convert,
        ranged="range" in request.headers,
    )

    try:
        plan = await state.download_service.plan(video, options)
    except (VideoError, httpx.HTTPError) as e:
        return _error_response(e, url)

    if isinstance(plan, Redirect):
        return RedirectResponse(plan.url, status_code=302)
    return MediaResponse(plan.stream, filename=plan.filename, url=url)


@router.get("/extractors")
async def list_extractors(request: Request) -> Response:
    """Extractors supported by the installed extraction tool."""
    state = cast(AppState, request.app.state)
    try:
        extractors = await state.extractor.list_extractors()
    except VideoError as e:
        return _error_response(e, "")
    return JSONResponse({"extractors": extractors, "count": len(extractors)})

