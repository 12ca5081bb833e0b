"""Tests for locating an episode, reading its image list and fetching images."""

import base64

import pytest

from tests.fakes import IMAGE_BASE, SERIES_URL, FakeHttp, FakePage, FakeSite
from webtoon_dl.errors import FetchFailure
from webtoon_dl.scraper import (
    EpisodeReference,
    SEARCH_INPUT_SELECTOR,
    build_episode_url,
    decode_data_uri,
    extract_image_urls,
    fetch_images,
    infer_ext,
    locate_episode,
    parse_series_url,
    to_data_uri,
)


class TestSeriesUrl:
    def test_parse_series_url_extracts_all_fields(self) -> None:
        ref = parse_series_url(SERIES_URL, 7)
        assert ref == EpisodeReference(genre="fantasy", slug="example", title_no="1234", episode=7)

    def test_parse_series_url_without_title_no_is_rejected(self) -> None:
        assert parse_series_url("https://www.webtoons.com/en/fantasy/example/list", 1) is None

    def test_parse_series_url_without_slug_is_rejected(self) -> None:
        assert parse_series_url("https://www.webtoons.com/en/fantasy?title_no=1234", 1) is None

    def test_parse_series_url_empty(self) -> None:
        assert parse_series_url("", 1) is None

    def test_build_episode_url(self) -> None:
        ref = EpisodeReference(genre="fantasy", slug="example", title_no="1234", episode=3)
        assert build_episode_url(ref, "https://www.webtoons.com/en/") == (
            "https://www.webtoons.com/en/fantasy/example/episode-3/viewer?title_no=1234&episode_no=3"
        )

    def test_build_episode_url_adds_missing_slash(self) -> None:
        ref = EpisodeReference(genre="drama", slug="x", title_no="9", episode=1)
        assert build_episode_url(ref, "http://127.0.0.1:8080/en").startswith(
            "http://127.0.0.1:8080/en/drama/x/episode-1/viewer"
        )


class TestLocateEpisode:
    @pytest.mark.asyncio
    async def test_locate_types_title_and_parses_first_result(self, settings, site) -> None:
        page = FakePage(site)
        ref = await locate_episode(page, "Example", 2, settings)

        assert ref is not None
        assert ref.title_no == "1234"
        assert ref.episode == 2
        assert page.visited == [settings.base_url]
        assert page.filled == [(SEARCH_INPUT_SELECTOR, "Example")]
        assert page.keyboard.pressed == ["Enter"]

    @pytest.mark.asyncio
    async def test_locate_returns_none_when_results_never_appear(self, settings, site) -> None:
        site.has_results = False
        assert await locate_episode(FakePage(site), "Nothing", 1, settings) is None

    @pytest.mark.asyncio
    async def test_locate_returns_none_without_result_link(self, settings, site) -> None:
        site.series_url = None
        assert await locate_episode(FakePage(site), "Example", 1, settings) is None

    @pytest.mark.asyncio
    async def test_locate_returns_none_for_malformed_link(self, settings, site) -> None:
        site.series_url = "https://www.webtoons.com/en/search?keyword=Example"
        assert await locate_episode(FakePage(site), "Example", 1, settings) is None


class TestExtractImages:
    @pytest.mark.asyncio
    async def test_keeps_marked_urls_in_document_order(self, settings, site) -> None:
        site.image_attrs = [
            f"{IMAGE_BASE}002.jpg",
            None,
            "https://ads.example.com/banner.jpg",
            f"{IMAGE_BASE}001.jpg",
            "",
        ]
        page = FakePage(site)
        urls = await extract_image_urls(page, "https://www.webtoons.com/en/x/y/episode-1/viewer", settings)

        assert urls == [f"{IMAGE_BASE}002.jpg", f"{IMAGE_BASE}001.jpg"]
        assert page.visited == ["https://www.webtoons.com/en/x/y/episode-1/viewer"]

    @pytest.mark.asyncio
    async def test_empty_page_gives_empty_list(self, settings, site) -> None:
        site.image_attrs = []
        assert await extract_image_urls(FakePage(site), "https://e/x", settings) == []


class TestFetchImages:
    @pytest.mark.asyncio
    async def test_payloads_follow_input_order(self, settings, site) -> None:
        http = FakeHttp(site)
        urls = list(reversed(site.image_urls))
        payloads = await fetch_images(http, urls, settings)

        assert [url for url, _ in http.calls] == urls
        assert payloads == [site.images[u] for u in urls]

    @pytest.mark.asyncio
    async def test_requests_carry_user_agent_and_referer(self, settings, site) -> None:
        http = FakeHttp(site)
        await fetch_images(http, site.image_urls[:1], settings)

        headers = http.calls[0][1]
        assert headers["User-Agent"] == settings.user_agent
        assert headers["Referer"] == "https://www.webtoons.com/"

    @pytest.mark.asyncio
    async def test_progress_reaches_fifty(self, settings, site) -> None:
        seen = []
        await fetch_images(FakeHttp(site), site.image_urls, settings, on_progress=seen.append)

        assert len(seen) == 3
        assert seen == sorted(seen)
        assert seen[-1] == 50

    @pytest.mark.asyncio
    async def test_http_error_aborts_without_fetching_the_rest(self, settings, site) -> None:
        urls = site.image_urls
        site.images.pop(urls[1])
        http = FakeHttp(site)

        with pytest.raises(FetchFailure, match="HTTP 404"):
            await fetch_images(http, urls, settings)
        assert len(http.calls) == 2

    @pytest.mark.asyncio
    async def test_network_error_becomes_fetch_failure(self, settings, site) -> None:
        site.broken_urls.add(site.image_urls[0])
        with pytest.raises(FetchFailure):
            await fetch_images(FakeHttp(site), site.image_urls, settings)

    @pytest.mark.asyncio
    async def test_encode_returns_data_uris(self, settings, site) -> None:
        payloads = await fetch_images(FakeHttp(site), site.image_urls, settings, encode=True)

        assert len(payloads) == 3
        first = payloads[0]
        assert first.startswith("data:image/png;base64,")
        assert base64.b64decode(first.split(",", 1)[1]) == site.images[site.image_urls[0]]


class TestDataUris:
    def test_mime_falls_back_to_url_extension(self) -> None:
        uri = to_data_uri(b"\xff\xd8", content_type="application/octet-stream", url="https://x/1.jpg?type=q90")
        assert uri.startswith("data:image/jpeg;base64,")

    def test_decode_data_uri(self) -> None:
        data, ext = decode_data_uri("data:image/jpeg;base64," + base64.b64encode(b"abc").decode())
        assert data == b"abc"
        assert ext == "jpg"

    def test_decode_rejects_plain_url(self) -> None:
        with pytest.raises(ValueError):
            decode_data_uri("https://example.com/a.png")

    def test_infer_ext_prefers_url(self) -> None:
        assert infer_ext("https://x/a.webp", "image/png") == "webp"
        assert infer_ext("https://x/a", "image/png") == "png"
        assert infer_ext("https://x/a", "") == "jpg"
