"""Tests for MediaStream and the httpx origin pulls."""

from __future__ import annotations

import re
from collections.abc import AsyncIterator

import httpx
import pytest
import respx

from vidpipe.domain.entities.errors import OriginError
from vidpipe.infrastructure.streaming.media import (
    MediaStream,
    media_type_for,
    open_origin_stream,
    open_ranged_stream,
    total_from_content_range,
)

_URL = "https://media.example.com/video.mp4"


class TrackingStream(httpx.AsyncByteStream):
    """Origin body that records whether it was closed."""

    def __init__(self, chunks: list[bytes]) -> None:
        self._chunks = chunks
        self.closed = False
        self.yielded = 0

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self._chunks:
            self.yielded += 1
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


async def _chunks(items: list[bytes]) -> AsyncIterator[bytes]:
    for item in items:
        yield item


class TestMediaTypeFor:
    @pytest.mark.parametrize(
        ("ext", "expected"),
        [
            ("mp3", "audio/mpeg"),
            ("mkv", "video/x-matroska"),
            ("m4a", "audio/mp4"),
            ("flv", "video/x-flv"),
            ("webm", "video/webm"),
            ("MP4", "video/mp4"),
            ("zip", "application/zip"),
        ],
    )
    def test_known_extensions(self, ext: str, expected: str) -> None:
        assert media_type_for(ext) == expected

    def test_unknown_or_missing(self) -> None:
        assert media_type_for("") == "application/octet-stream"
        assert media_type_for(None) == "application/octet-stream"
        assert media_type_for("nosuchext") == "application/octet-stream"


class TestContentRange:
    def test_total(self) -> None:
        assert total_from_content_range("bytes 0-9/25") == 25

    def test_unknown_total(self) -> None:
        assert total_from_content_range("bytes 0-9/*") is None
        assert total_from_content_range(None) is None
        assert total_from_content_range("garbage") is None


class TestMediaStream:
    async def test_iterates_and_closes_once(self) -> None:
        closes: list[int] = []

        async def on_close() -> None:
            closes.append(1)

        stream = MediaStream(_chunks([b"a", b"b"]), extension="mp3", on_close=on_close)
        assert stream.media_type == "audio/mpeg"
        assert [c async for c in stream] == [b"a", b"b"]

        await stream.aclose()
        assert stream.closed is True
        assert closes == [1]

    async def test_aclose_before_iteration(self) -> None:
        closes: list[int] = []

        async def on_close() -> None:
            closes.append(1)

        stream = MediaStream(_chunks([b"a"]), extension="mp4", on_close=on_close)
        await stream.aclose()
        await stream.aclose()
        assert closes == [1]


class TestOpenOriginStream:
    @respx.mock
    async def test_passthrough_with_range(self) -> None:
        route = respx.get(_URL).respond(
            206,
            content=b"0123456789",
            headers={
                "Content-Type": "video/mp4",
                "Content-Range": "bytes 0-9/100",
                "Accept-Ranges": "bytes",
                "Set-Cookie": "secret=1",
            },
        )

        async with httpx.AsyncClient() as client:
            stream = await open_origin_stream(client, _URL, {"Range": "bytes=0-9"})
            body = b"".join([c async for c in stream])

        assert body == b"0123456789"
        assert stream.status_code == 206
        assert stream.headers["content-range"] == "bytes 0-9/100"
        assert stream.headers["accept-ranges"] == "bytes"
        assert "set-cookie" not in stream.headers
        assert stream.media_type == "video/mp4"
        assert route.calls[0].request.headers["range"] == "bytes=0-9"

    @respx.mock
    async def test_non_2xx_raises_before_any_byte(self) -> None:
        respx.get(_URL).respond(404)

        async with httpx.AsyncClient() as client:
            with pytest.raises(OriginError) as exc_info:
                await open_origin_stream(client, _URL, {})

        assert exc_info.value.status_code == 404

    async def test_consumer_stop_closes_origin(self) -> None:
        origin = TrackingStream([b"a" * 10, b"b" * 10, b"c" * 10, b"d" * 10])
        transport = httpx.MockTransport(lambda request: httpx.Response(200, stream=origin))

        async with httpx.AsyncClient(transport=transport) as client:
            stream = await open_origin_stream(client, _URL, {}, chunk_size=10)
            iterator = stream.__aiter__()
            assert await iterator.__anext__() == b"a" * 10
            # Client went away: the HTTP layer closes the stream.
            await iterator.aclose()
            await stream.aclose()

        assert origin.closed is True
        assert origin.yielded < 4


def _ranged_handler(body: bytes, calls: list[str]):
    def handler(request: httpx.Request) -> httpx.Response:
        header = request.headers["range"]
        calls.append(header)
        match = re.fullmatch(r"bytes=(\d+)-(\d+)", header)
        assert match is not None
        start, end = int(match.group(1)), int(match.group(2))
        if start >= len(body):
            return httpx.Response(416)
        piece = body[start : end + 1]
        return httpx.Response(
            206,
            content=piece,
            headers={
                "Content-Range": f"bytes {start}-{start + len(piece) - 1}/{len(body)}",
                "Content-Type": "video/webm",
            },
        )

    return handler


class TestOpenRangedStream:
    @respx.mock
    async def test_pulls_consecutive_slices(self) -> None:
        body = bytes(range(25))
        calls: list[str] = []
        respx.get(_URL).mock(side_effect=_ranged_handler(body, calls))

        async with httpx.AsyncClient() as client:
            stream = await open_ranged_stream(client, _URL, {}, range_size=10)
            received = b"".join([c async for c in stream])

        assert received == body
        assert calls == ["bytes=0-9", "bytes=10-19", "bytes=20-29"]
        assert stream.headers["content-length"] == "25"
        assert stream.media_type == "video/webm"

    @respx.mock
    async def test_exact_multiple_stops_at_total(self) -> None:
        body = bytes(20)
        calls: list[str] = []
        respx.get(_URL).mock(side_effect=_ranged_handler(body, calls))

        async with httpx.AsyncClient() as client:
            stream = await open_ranged_stream(client, _URL, {}, range_size=10)
            received = b"".join([c async for c in stream])

        assert received == body
        assert calls == ["bytes=0-9", "bytes=10-19"]

    @respx.mock
    async def test_origin_ignoring_range_is_single_request(self) -> None:
        route = respx.get(_URL).respond(200, content=b"x" * 30)

        async with httpx.AsyncClient() as client:
            stream = await open_ranged_stream(client, _URL, {}, range_size=10)
            received = b"".join([c async for c in stream])

        assert received == b"x" * 30
        assert route.call_count == 1

    @respx.mock
    async def test_first_slice_failure_raises(self) -> None:
        respx.get(_URL).respond(403)

        async with httpx.AsyncClient() as client:
            with pytest.raises(OriginError):
                await open_ranged_stream(client, _URL, {}, range_size=10)
