"""Bulk ingestion of pre-scraped corpora straight into the vector store.

Unlike :class:`~knowledge_pipeline.pipeline.orchestrator.PipelineOrchestrator`,
this path creates no ingestion records.  Texts go directly through the
:class:`Embedder` and :class:`VectorStoreUploader` under the same batching,
pacing and failure-isolation rules:

    crawl (optional) -> embed_batch -> upload

All dependencies are injected via the constructor.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any

import structlog

from knowledge_pipeline.models.pipeline import BatchIngestionReport
from knowledge_pipeline.models.vectors import UploadResult, VectorObject
from knowledge_pipeline.utils.concurrency import PauseToken
from knowledge_pipeline.utils.errors import ConfigurationError

if TYPE_CHECKING:
    from knowledge_pipeline.interfaces.crawler_provider import ICrawlerProvider
    from knowledge_pipeline.models.crawl import CrawledPage, CrawlOptions
    from knowledge_pipeline.services.embedding.embedder import Embedder
    from knowledge_pipeline.services.vector_store.uploader import VectorStoreUploader

logger = structlog.get_logger(logger_name=__name__)


class BatchIngestionService:
    """Drives many items through embed -> upload without per-item records.

    Parameters
    ----------
    embedder:
        Produces vectors with sub-batching, pacing and per-item isolation.
    uploader:
        Uploads vectors in bounded batches.
    crawler:
        Optional content-acquisition provider used by :meth:`crawl_and_ingest`.
    """

    def __init__(
        self,
        embedder: Embedder,
        uploader: VectorStoreUploader,
        crawler: ICrawlerProvider | None = None,
    ) -> None:
        self._embedder = embedder
        self._uploader = uploader
        self._crawler = crawler
        self._pause = PauseToken()

    @property
    def pause_token(self) -> PauseToken:
        return self._pause

    def pause(self) -> None:
        """Stop after the item currently being embedded."""
        self._pause.pause()

    def resume(self) -> None:
        self._pause.resume()

    async def ingest_texts(
        self,
        collection: str,
        texts: list[str],
        properties: list[dict[str, Any]] | None = None,
    ) -> BatchIngestionReport:
        """Embed *texts* and upload the successful ones to *collection*.

        ``properties[i]`` is stored alongside ``texts[i]``; ``content`` is
        filled from the text when absent.
        """
        if properties is not None and len(properties) != len(texts):
            raise ValueError(
                f"texts and properties length mismatch: {len(texts)} != {len(properties)}"
            )
        start = time.monotonic()

        embedded = await self._embedder.embed_batch(texts, pause=self._pause)

        objects: list[VectorObject] = []
        errors: dict[int, str] = {}
        for outcome in embedded.outcomes:
            if not outcome.success or outcome.vector is None:
                errors[outcome.index] = outcome.error or "embedding failed"
                continue
            props = dict(properties[outcome.index]) if properties else {}
            props.setdefault("content", texts[outcome.index])
            objects.append(VectorObject(properties=props, vector=outcome.vector))

        upload = await self._uploader.upload(collection, objects) if objects else None

        report = BatchIngestionReport(
            collection=collection,
            total=len(texts),
            embedded=embedded.successful,
            embedding_failed=embedded.failed,
            paused=embedded.paused,
            upload=upload,
            errors=errors,
        )
        logger.info(
            "batch_ingestion_complete",
            collection=collection,
            total=report.total,
            embedded=report.embedded,
            embedding_failed=report.embedding_failed,
            uploaded=report.uploaded,
            paused=report.paused,
            elapsed_s=round(time.monotonic() - start, 2),
        )
        return report

    async def ingest_pages(
        self,
        collection: str,
        pages: list[CrawledPage],
    ) -> BatchIngestionReport:
        """Embed and upload crawled pages, keeping title and URL as metadata."""
        texts = [page.best_text for page in pages]
        properties = [
            {"title": page.title, "url": page.url, "source": "crawl"} for page in pages
        ]
        return await self.ingest_texts(collection, texts, properties)

    async def crawl_and_ingest(
        self,
        url: str,
        collection: str,
        options: CrawlOptions | None = None,
    ) -> BatchIngestionReport:
        """Crawl *url*, then embed and upload every page found.

        Raises
        ------
        ConfigurationError
            If no crawler was configured.
        ExternalServiceError
            If the crawl fails as a whole.
        """
        if self._crawler is None:
            raise ConfigurationError(message="No crawler provider configured")
        pages = await self._crawler.crawl(url, options)
        logger.info("crawl_pages_received", url=url, pages=len(pages))
        return await self.ingest_pages(collection, pages)

    async def upload_precomputed(
        self,
        collection: str,
        objects: list[VectorObject],
    ) -> UploadResult:
        """Upload objects that already carry vectors."""
        return await self._uploader.upload(collection, objects)
