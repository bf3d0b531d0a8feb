"""Firecrawl crawler provider adapter.

Starts an asynchronous crawl job with ``POST /v1/crawl`` and polls
``GET /v1/crawl/{id}`` until the job completes, following ``next`` links
when the result set is paginated.  Any failure along the way surfaces as
one ``ExternalServiceError`` for the whole crawl.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from knowledge_pipeline.config.settings import Settings
from knowledge_pipeline.interfaces.crawler_provider import ICrawlerProvider
from knowledge_pipeline.models.crawl import CrawledPage, CrawlOptions
from knowledge_pipeline.utils.errors import ExternalServiceError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 30.0
_TERMINAL_FAILURES = {"failed", "cancelled"}


class FirecrawlCrawlerProvider(ICrawlerProvider):
    """Crawler backed by the Firecrawl HTTP API."""

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_key = settings.firecrawl_api_key
        self._poll_interval = settings.firecrawl_poll_interval
        self._max_polls = settings.firecrawl_max_polls
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            base_url=settings.firecrawl_base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=httpx.Timeout(_DEFAULT_TIMEOUT),
        )

    async def crawl(self, url: str, options: CrawlOptions | None = None) -> list[CrawledPage]:
        options = options or CrawlOptions()
        payload: dict[str, Any] = {
            "url": url,
            "limit": options.limit,
            "maxDepth": options.max_depth,
            "scrapeOptions": {
                "formats": options.formats,
                "onlyMainContent": options.only_main_content,
            },
        }
        if options.include_paths:
            payload["includePaths"] = options.include_paths
        if options.exclude_paths:
            payload["excludePaths"] = options.exclude_paths

        started = await self._request_json("POST", "/v1/crawl", json=payload)
        job_id = started.get("id")
        if not started.get("success", True) or not job_id:
            raise ExternalServiceError(
                message=f"Crawl of {url} was not accepted: {started.get('error', 'no job id')}",
                provider_name=self.get_provider_name(),
            )
        logger.info("firecrawl_crawl_started", url=url, job_id=job_id, limit=options.limit)

        status_body = await self._wait_for_job(job_id)
        raw_pages: list[dict[str, Any]] = list(status_body.get("data") or [])
        next_url = status_body.get("next")
        while next_url:
            page_body = await self._request_json("GET", next_url)
            raw_pages.extend(page_body.get("data") or [])
            next_url = page_body.get("next")

        pages = [self._to_page(raw) for raw in raw_pages]
        logger.info("firecrawl_crawl_complete", url=url, job_id=job_id, pages=len(pages))
        return pages

    def get_provider_name(self) -> str:
        return "firecrawl"

    def is_available(self) -> bool:
        return bool(self._api_key)

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _wait_for_job(self, job_id: str) -> dict[str, Any]:
        for _ in range(self._max_polls):
            body = await self._request_json("GET", f"/v1/crawl/{job_id}")
            status = body.get("status")
            if status == "completed":
                return body
            if status in _TERMINAL_FAILURES:
                raise ExternalServiceError(
                    message=f"Crawl job {job_id} {status}: {body.get('error', '')}".rstrip(": "),
                    provider_name=self.get_provider_name(),
                )
            await asyncio.sleep(self._poll_interval)
        raise ExternalServiceError(
            message=f"Crawl job {job_id} did not complete after {self._max_polls} polls",
            provider_name=self.get_provider_name(),
        )

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ExternalServiceError(
                message=f"Timeout calling {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ExternalServiceError(
                message=f"HTTP {exc.response.status_code} for {path}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ExternalServiceError(
                message=f"HTTP error calling {path}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        return response.json()

    @staticmethod
    def _to_page(raw: dict[str, Any]) -> CrawledPage:
        metadata = raw.get("metadata") or {}
        return CrawledPage(
            url=metadata.get("sourceURL") or metadata.get("url") or raw.get("url", ""),
            title=metadata.get("title") or "",
            content=raw.get("content") or raw.get("html") or "",
            markdown=raw.get("markdown") or "",
        )
