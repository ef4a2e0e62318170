"""httpx transport that retries origin pulls on 429/503 and dropped connects.

Retries only ever happen before a response is handed out, so a stream that
already sent bytes to the client is never replayed.
"""

from __future__ import annotations

import asyncio
import random

import httpx
import structlog

log = structlog.get_logger(__name__)

_DEFAULT_RETRYABLE = frozenset({429, 503})


def _retry_after_seconds(headers: httpx.Headers) -> float | None:
    """``Retry-After`` in seconds; HTTP-date values are ignored."""
    raw = headers.get("retry-after")
    if raw is None:
        return None
    try:
        return max(float(raw), 0.0)
    except (ValueError, TypeError):
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    """Wraps a transport; retries throttled or unreachable origins.

    Media hosts commonly answer bursts of range requests with 429 or 503.
    Those responses are drained, the request waits (``Retry-After`` or
    exponential backoff with jitter) and is sent again, up to
    *max_retries* times.  ``httpx.ConnectError`` is retried the same way.
    """

    def __init__(
        self,
        wrapped: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 2,
        backoff_base: float = 0.5,
        max_backoff: float = 10.0,
        retryable_status_codes: frozenset[int] = _DEFAULT_RETRYABLE,
    ) -> None:
        self._wrapped = wrapped
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._max_backoff = max_backoff
        self._retryable = retryable_status_codes

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        attempt = 0
        while True:
            try:
                response = await self._wrapped.handle_async_request(request)
            except httpx.ConnectError as e:
                if attempt >= self._max_retries:
                    raise
                delay = self._backoff(attempt)
                log.info(
                    "origin_connect_retry",
                    host=request.url.host,
                    attempt=attempt + 1,
                    delay=round(delay, 2),
                    error=str(e),
                )
            else:
                if (
                    response.status_code not in self._retryable
                    or attempt >= self._max_retries
                ):
                    return response

                await response.aread()
                await response.aclose()
                delay = self._delay_for(response, attempt)
                log.info(
                    "origin_retry",
                    host=request.url.host,
                    status=response.status_code,
                    attempt=attempt + 1,
                    delay=round(delay, 2),
                )

            await asyncio.sleep(delay)
            attempt += 1

    def _backoff(self, attempt: int) -> float:
        delay = self._backoff_base * (2**attempt)
        jitter = random.uniform(0, self._backoff_base)  # noqa: S311
        return min(delay + jitter, self._max_backoff)

    def _delay_for(self, response: httpx.Response, attempt: int) -> float:
        retry_after = _retry_after_seconds(response.headers)
        if retry_after is not None:
            return min(retry_after, self._max_backoff)
        return self._backoff(attempt)

    async def aclose(self) -> None:
        await self._wrapped.aclose()
