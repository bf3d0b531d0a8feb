"""Crawler provider adapters."""

from knowledge_pipeline.providers.crawler.firecrawl_provider import FirecrawlCrawlerProvider

__all__ = ["FirecrawlCrawlerProvider"]
