"""Abstract base class for content-acquisition (crawler) services."""

from __future__ import annotations

from abc import ABC, abstractmethod

from knowledge_pipeline.models.crawl import CrawledPage, CrawlOptions


# Concrete implementations: FirecrawlCrawlerProvider
# Located in: knowledge_pipeline/providers/crawler/
class ICrawlerProvider(ABC):
    """Contract for crawling a site into a list of pages."""

    @abstractmethod
    async def crawl(self, url: str, options: CrawlOptions | None = None) -> list[CrawledPage]:
        """Crawl *url* and return the pages found.

        Errors surface as a single failure for the whole operation.

        Raises
        ------
        knowledge_pipeline.utils.errors.ExternalServiceError
            If the crawl cannot be started, fails, or never completes.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"firecrawl"``."""

    @abstractmethod
    def is_available(self) -> bool:
        """Return ``True`` if the provider is configured (API key present)."""
