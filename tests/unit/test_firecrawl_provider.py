"""Unit tests for FirecrawlCrawlerProvider with a mocked httpx client."""

from __future__ import annotations

from typing import Any
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from knowledge_pipeline.config.settings import Settings
from knowledge_pipeline.models.crawl import CrawlOptions
from knowledge_pipeline.providers.crawler.firecrawl_provider import FirecrawlCrawlerProvider
from knowledge_pipeline.utils.errors import ExternalServiceError


def _response(status: int, payload: Any, path: str = "/v1/crawl") -> httpx.Response:
    return httpx.Response(
        status, json=payload, request=httpx.Request("GET", f"https://api.firecrawl.dev{path}")
    )


def _provider(*responses: httpx.Response | Exception, **overrides: Any) -> tuple[FirecrawlCrawlerProvider, AsyncMock]:
    client = AsyncMock()
    client.request = AsyncMock(side_effect=list(responses))
    settings = Settings(
        _env_file=None,
        firecrawl_api_key="fc-test",
        firecrawl_poll_interval=0.0,
        **overrides,
    )
    return FirecrawlCrawlerProvider(settings=settings, http_client=client), client


_PAGE = {
    "markdown": "# Intro\nWelcome",
    "metadata": {"sourceURL": "https://docs.example.com/intro", "title": "Intro"},
}


class TestCrawl:
    @pytest.mark.asyncio
    async def test_start_poll_and_collect(self) -> None:
        provider, client = _provider(
            _response(200, {"success": True, "id": "job-1"}),
            _response(200, {"status": "scraping", "data": []}),
            _response(200, {"status": "completed", "data": [_PAGE]}),
        )
        pages = await provider.crawl(
            "https://docs.example.com",
            CrawlOptions(limit=5, max_depth=1, include_paths=["/docs/*"]),
        )

        assert len(pages) == 1
        assert pages[0].url == "https://docs.example.com/intro"
        assert pages[0].title == "Intro"
        assert pages[0].best_text == "# Intro\nWelcome"

        start_call = client.request.call_args_list[0]
        assert start_call.args == ("POST", "/v1/crawl")
        payload = start_call.kwargs["json"]
        assert payload["limit"] == 5
        assert payload["maxDepth"] == 1
        assert payload["includePaths"] == ["/docs/*"]
        assert "excludePaths" not in payload
        assert payload["scrapeOptions"] == {"formats": ["markdown"], "onlyMainContent": True}
        assert client.request.call_args_list[1].args == ("GET", "/v1/crawl/job-1")

    @pytest.mark.asyncio
    async def test_follows_next_links(self) -> None:
        second = {"markdown": "two", "metadata": {"sourceURL": "https://x/2"}}
        provider, client = _provider(
            _response(200, {"success": True, "id": "job-1"}),
            _response(200, {"status": "completed", "data": [_PAGE], "next": "https://api.firecrawl.dev/v1/crawl/job-1?skip=1"}),
            _response(200, {"data": [second]}),
        )
        pages = await provider.crawl("https://docs.example.com")
        assert [p.url for p in pages] == ["https://docs.example.com/intro", "https://x/2"]
        assert client.request.call_args_list[2].args[1].endswith("skip=1")

    @pytest.mark.asyncio
    async def test_failed_job_raises(self) -> None:
        provider, _ = _provider(
            _response(200, {"success": True, "id": "job-1"}),
            _response(200, {"status": "failed", "error": "blocked by robots.txt"}),
        )
        with pytest.raises(ExternalServiceError, match="blocked by robots.txt"):
            await provider.crawl("https://docs.example.com")

    @pytest.mark.asyncio
    async def test_missing_job_id_raises(self) -> None:
        provider, _ = _provider(_response(200, {"success": False, "error": "invalid url"}))
        with pytest.raises(ExternalServiceError, match="not accepted"):
            await provider.crawl("not a url")

    @pytest.mark.asyncio
    async def test_poll_limit(self) -> None:
        provider, client = _provider(
            _response(200, {"success": True, "id": "job-1"}),
            _response(200, {"status": "scraping"}),
            _response(200, {"status": "scraping"}),
            firecrawl_max_polls=2,
        )
        with pytest.raises(ExternalServiceError, match="did not complete"):
            await provider.crawl("https://docs.example.com")
        assert client.request.await_count == 3

    @pytest.mark.asyncio
    async def test_sleeps_between_polls(self) -> None:
        provider, _ = _provider(
            _response(200, {"success": True, "id": "job-1"}),
            _response(200, {"status": "scraping"}),
            _response(200, {"status": "completed", "data": []}),
        )
        with patch(
            "knowledge_pipeline.providers.crawler.firecrawl_provider.asyncio.sleep",
            new=AsyncMock(),
        ) as sleep:
            await provider.crawl("https://docs.example.com")
        sleep.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_http_error_wrapped(self) -> None:
        provider, _ = _provider(_response(401, {"error": "unauthorized"}))
        with pytest.raises(ExternalServiceError, match="HTTP 401"):
            await provider.crawl("https://docs.example.com")

    @pytest.mark.asyncio
    async def test_timeout_wrapped(self) -> None:
        provider, _ = _provider(httpx.ConnectTimeout("slow"))
        with pytest.raises(ExternalServiceError, match="Timeout"):
            await provider.crawl("https://docs.example.com")


class TestAvailability:
    def test_available_with_key(self) -> None:
        provider, _ = _provider()
        assert provider.is_available() is True
        assert provider.get_provider_name() == "firecrawl"

    def test_unavailable_without_key(self) -> None:
        provider = FirecrawlCrawlerProvider(
            settings=Settings(_env_file=None, firecrawl_api_key=""), http_client=AsyncMock()
        )
        assert provider.is_available() is False
