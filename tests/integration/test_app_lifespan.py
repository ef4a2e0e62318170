"""App factory + lifespan wiring, exercised through the HTTP API.

The extraction tool is swapped for an in-memory fake after startup; origin
pulls go through the real httpx client (and RetryTransport) into respx.
"""

from __future__ import annotations

import io
import zipfile

import httpx
from fastapi.testclient import TestClient

from vidpipe.application.use_cases.download import DownloadService
from vidpipe.infrastructure.extractor import YoutubeDlClient
from vidpipe.infrastructure.http import RetryTransport
from vidpipe.infrastructure.process import ProcessRunner
from vidpipe.infrastructure.streaming import StreamPipeline
from vidpipe.interfaces.app import create_app

_PAGE = "https://vimeo.com/76979871"
_MEDIA = "https://cdn.example.com/bbb.mp4"
_PLAYLIST = "https://www.youtube.com/playlist?list=PL1"


class TestLifespan:
    def test_resources_wired_and_closed(self, make_config) -> None:
        app = create_app(make_config(stream=True))

        with TestClient(app) as client:
            state = app.state
            assert isinstance(state.process_runner, ProcessRunner)
            assert isinstance(state.extractor, YoutubeDlClient)
            assert isinstance(state.pipeline, StreamPipeline)
            assert isinstance(state.download_service, DownloadService)
            assert isinstance(state.http_client._transport, RetryTransport)

            resp = client.get("/api/v1/healthz")
            assert resp.status_code == 200
            assert resp.json() == {
                "status": "ok",
                "stream": True,
                "convert": False,
                "remux": False,
            }
            assert resp.headers["x-request-id"]

            resp = client.get("/api/v1/healthz", headers={"X-Request-ID": "abc123"})
            assert resp.headers["x-request-id"] == "abc123"

        assert state.http_client.is_closed


class TestStreamingThroughApp:
    def test_raw_passthrough(self, make_config, make_extractor, video_info, respx_mock) -> None:
        route = respx_mock.get(_MEDIA).respond(
            206,
            content=b"0123456789",
            headers={"Content-Type": "video/mp4", "Content-Range": "bytes 0-9/1000"},
        )
        app = create_app(make_config(stream=True))

        with TestClient(app) as client:
            app.state.extractor = make_extractor(
                infos={_PAGE: {**video_info, "url": _MEDIA}},
                urls={_PAGE: [_MEDIA]},
                filenames={_PAGE: "Big_Buck_Bunny-76979871.mp4"},
            )
            resp = client.get(
                "/api/v1/download",
                params={"url": _PAGE},
                headers={"Range": "bytes=0-9"},
            )

        assert resp.status_code == 206
        assert resp.content == b"0123456789"
        assert resp.headers["content-range"] == "bytes 0-9/1000"
        assert 'filename="Big_Buck_Bunny-76979871.mp4"' in resp.headers[
            "content-disposition"
        ]
        assert route.calls[0].request.headers["range"] == "bytes=0-9"

    def test_origin_retry_then_success(
        self, make_config, make_extractor, video_info, respx_mock
    ) -> None:
        respx_mock.get(_MEDIA).mock(
            side_effect=[httpx.Response(503), httpx.Response(200, content=b"media")]
        )
        app = create_app(make_config(stream=True, http_retry_backoff_base=0.0))

        with TestClient(app) as client:
            app.state.extractor = make_extractor(
                infos={_PAGE: video_info}, urls={_PAGE: [_MEDIA]}
            )
            resp = client.get("/api/v1/download", params={"url": _PAGE})

        assert resp.status_code == 200
        assert resp.content == b"media"

    def test_origin_failure_is_502(
        self, make_config, make_extractor, video_info, respx_mock
    ) -> None:
        respx_mock.get(_MEDIA).respond(404)
        app = create_app(make_config(stream=True))

        with TestClient(app) as client:
            app.state.extractor = make_extractor(
                infos={_PAGE: video_info}, urls={_PAGE: [_MEDIA]}
            )
            resp = client.get("/api/v1/download", params={"url": _PAGE})

        assert resp.status_code == 502
        assert resp.json()["error"] == "origin_error"

    def test_redirect_without_stream(
        self, make_config, make_extractor, video_info
    ) -> None:
        app = create_app(make_config())

        with TestClient(app) as client:
            app.state.extractor = make_extractor(
                infos={_PAGE: video_info}, urls={_PAGE: [_MEDIA]}
            )
            resp = client.get(
                "/api/v1/download", params={"url": _PAGE}, follow_redirects=False
            )

        assert resp.status_code == 302
        assert resp.headers["location"] == _MEDIA

    def test_playlist_archive(
        self, make_config, make_extractor, playlist_info, respx_mock
    ) -> None:
        urls = {}
        filenames = {}
        for n, video_id in enumerate(("vid1", "vid2", "vid3"), start=1):
            page = f"https://www.youtube.com/watch?v={video_id}"
            media = f"https://cdn.example.com/{video_id}.mp4"
            urls[page] = [media]
            filenames[page] = f"{video_id}.mp4"
            # Second item is gone at the origin and is left out of the archive.
            status = 404 if video_id == "vid2" else 200
            respx_mock.get(media).respond(status, content=bytes([n]) * 1000)

        app = create_app(make_config(stream=True))

        with TestClient(app) as client:
            app.state.extractor = make_extractor(
                infos={_PLAYLIST: playlist_info}, urls=urls, filenames=filenames
            )
            resp = client.get("/api/v1/download", params={"url": _PLAYLIST})

        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/zip"
        assert 'filename="Shorts.zip"' in resp.headers["content-disposition"]
        with zipfile.ZipFile(io.BytesIO(resp.content)) as zf:
            assert zf.namelist() == ["vid1.mp4", "vid3.mp4"]
            assert zf.read("vid3.mp4") == bytes([3]) * 1000

    def test_invalid_trim_is_400(self, make_config, make_extractor, video_info) -> None:
        app = create_app(make_config(convert=True))

        with TestClient(app) as client:
            app.state.extractor = make_extractor(
                infos={_PAGE: video_info}, urls={_PAGE: [_MEDIA]}
            )
            resp = client.get(
                "/api/v1/download",
                params={"url": _PAGE, "audio": "true", "from": "abc"},
            )

        assert resp.status_code == 400

