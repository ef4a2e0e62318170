"""Tests for the Video resolver and resolve()."""

from __future__ import annotations

import asyncio

import pytest

from vidpipe.application.video import PasswordPrompt, Resolved, Video, resolve
from vidpipe.domain.entities.errors import (
    ExtractionFailed,
    PasswordRequired,
    WrongPassword,
)
from vidpipe.domain.entities.video import VideoRequest

_PAGE = "https://www.youtube.com/watch?v=aqz-KE-bpKQ"


class TestVideoCaching:
    async def test_metadata_fetched_once(self, make_extractor, video_info) -> None:
        extractor = make_extractor(infos={_PAGE: video_info})
        video = Video(VideoRequest(_PAGE), extractor)

        first = await video.metadata()
        second = await video.metadata()

        assert first is second
        assert first.title == "Big Buck Bunny"
        assert extractor.count("info") == 1

    async def test_concurrent_calls_share_one_lookup(
        self, make_extractor, video_info
    ) -> None:
        extractor = make_extractor(
            infos={_PAGE: video_info}, urls={_PAGE: ["https://cdn/v.mp4"]}
        )
        video = Video(VideoRequest(_PAGE), extractor)

        results = await asyncio.gather(*(video.urls() for _ in range(5)))

        assert all(r == ("https://cdn/v.mp4",) for r in results)
        assert extractor.count("urls") == 1

    async def test_each_field_cached_independently(
        self, make_extractor, video_info
    ) -> None:
        extractor = make_extractor(
            infos={_PAGE: video_info},
            urls={_PAGE: ["https://cdn/v.mp4"]},
            filenames={_PAGE: "Big_Buck_Bunny-aqz.mp4"},
        )
        video = Video(VideoRequest(_PAGE), extractor)

        for _ in range(2):
            await video.metadata()
            await video.urls()
            await video.filename()
            await video.user_agent()

        assert [c[0] for c in extractor.calls] == [
            "info",
            "urls",
            "filename",
            "user_agent",
        ]

    async def test_failed_lookup_is_not_cached(self, make_extractor, video_info) -> None:
        extractor = make_extractor(infos={_PAGE: ExtractionFailed("boom")})
        video = Video(VideoRequest(_PAGE), extractor)

        with pytest.raises(ExtractionFailed):
            await video.metadata()
        extractor.infos[_PAGE] = video_info
        meta = await video.metadata()

        assert meta.title == "Big Buck Bunny"
        assert extractor.count("info") == 2


class TestVideoDerivation:
    async def test_with_format_is_a_fresh_video(
        self, make_extractor, video_info
    ) -> None:
        extractor = make_extractor(
            urls={
                f"{_PAGE}#best": ["https://cdn/best.mp4"],
                f"{_PAGE}#bestaudio/best": ["https://cdn/audio.m4a"],
            }
        )
        video = Video(VideoRequest(_PAGE, "best", "hunter2"), extractor)
        audio = video.with_format("bestaudio/best")

        assert await video.urls() == ("https://cdn/best.mp4",)
        assert await audio.urls() == ("https://cdn/audio.m4a",)
        assert audio.password == "hunter2"
        assert video.format == "best"

    async def test_derive_keeps_extractor(self, make_extractor) -> None:
        extractor = make_extractor()
        video = Video(VideoRequest(_PAGE), extractor)
        child = video.derive(VideoRequest("https://vimeo.com/1", "worst"))

        assert child.page_url == "https://vimeo.com/1"
        assert child.format == "worst"
        await child.filename()
        assert extractor.calls == [("filename", "https://vimeo.com/1", "worst")]


class TestFilename:
    async def test_extension_replaced(self, make_extractor) -> None:
        extractor = make_extractor(filenames={_PAGE: "Big_Buck_Bunny-aqz.webm"})
        video = Video(VideoRequest(_PAGE), extractor)
        assert await video.filename_with_extension("mp3") == "Big_Buck_Bunny-aqz.mp3"

    async def test_html_entities_decoded(self, make_extractor) -> None:
        extractor = make_extractor(filenames={_PAGE: "Tom &amp; Jerry.mp4"})
        video = Video(VideoRequest(_PAGE), extractor)
        assert await video.filename_with_extension("mkv") == "Tom & Jerry.mkv"


class TestPlaylistEntries:
    async def test_entries_inherit_format_and_password(
        self, make_extractor, playlist_info
    ) -> None:
        extractor = make_extractor(infos={_PAGE: playlist_info})
        video = Video(VideoRequest(_PAGE, "worst", "pw"), extractor)

        entries = await video.playlist_entries()

        assert [e.page_url for e in entries] == [
            "https://www.youtube.com/watch?v=vid1",
            "https://www.youtube.com/watch?v=vid2",
            "https://www.youtube.com/watch?v=vid3",
        ]
        assert {e.format for e in entries} == {"worst"}
        assert {e.password for e in entries} == {"pw"}

    async def test_single_video_has_no_entries(self, make_extractor, video_info) -> None:
        extractor = make_extractor(infos={_PAGE: video_info})
        video = Video(VideoRequest(_PAGE), extractor)
        assert await video.playlist_entries() == []


class TestResolve:
    async def test_resolved(self, make_extractor, video_info) -> None:
        extractor = make_extractor(infos={_PAGE: video_info})

        outcome = await resolve(extractor, _PAGE, "best")

        assert isinstance(outcome, Resolved)
        assert outcome.metadata.extractor_key == "Youtube"
        # The metadata is cached on the returned video.
        await outcome.video.metadata()
        assert extractor.count("info") == 1

    async def test_password_prompt(self, make_extractor) -> None:
        extractor = make_extractor(
            infos={_PAGE: PasswordRequired("This video is protected by a password")}
        )

        outcome = await resolve(extractor, _PAGE)

        assert isinstance(outcome, PasswordPrompt)
        assert outcome.request.page_url == _PAGE
        assert "password" in outcome.message

    async def test_wrong_password_raises(self, make_extractor) -> None:
        extractor = make_extractor(infos={_PAGE: WrongPassword("Wrong password")})
        with pytest.raises(WrongPassword):
            await resolve(extractor, _PAGE, password="nope")
