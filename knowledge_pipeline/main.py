"""Dependency-injection assembly for the knowledge ingestion pipeline.

Wires every provider and service together from :class:`Settings`.  Nothing
in the pipeline constructs its own collaborators; the CLI (and tests that
want the real adapters) call :func:`build_components` and pick what they
need out of the returned dict.

Start-up checks live here: missing embedding credentials or a missing
vector store URL raise :class:`ConfigurationError` before anything runs.
"""

from __future__ import annotations

from typing import Any

import structlog

from knowledge_pipeline.config.loader import load_config, settings_from_config
from knowledge_pipeline.config.settings import Settings
from knowledge_pipeline.interfaces.crawler_provider import ICrawlerProvider
from knowledge_pipeline.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_pipeline.interfaces.llm_provider import ILLMProvider
from knowledge_pipeline.interfaces.vector_store_provider import IVectorStoreProvider
from knowledge_pipeline.pipeline.orchestrator import PipelineOrchestrator
from knowledge_pipeline.pipeline.progress_tracker import ProgressTracker
from knowledge_pipeline.providers.crawler.firecrawl_provider import FirecrawlCrawlerProvider
from knowledge_pipeline.providers.embedding.openai_embedding_provider import (
    OpenAIEmbeddingProvider,
)
from knowledge_pipeline.providers.llm.anthropic_provider import AnthropicLLMProvider
from knowledge_pipeline.providers.llm.openai_provider import OpenAILLMProvider
from knowledge_pipeline.providers.record_store.sqlite_record_store import (
    SQLiteIngestionRecordStore,
)
from knowledge_pipeline.providers.storage.local_blob_storage import LocalBlobStorageProvider
from knowledge_pipeline.providers.vector_store.weaviate_provider import (
    WeaviateVectorStoreProvider,
)
from knowledge_pipeline.services.embedding.embedder import Embedder
from knowledge_pipeline.services.extraction.content_extractor import ContentExtractor
from knowledge_pipeline.services.ingestion.batch_ingestion_service import (
    BatchIngestionService,
)
from knowledge_pipeline.services.tagging.smart_tagger import SmartTagger
from knowledge_pipeline.services.vector_store.uploader import VectorStoreUploader
from knowledge_pipeline.utils.errors import ConfigurationError
from knowledge_pipeline.utils.logging import configure_logging

logger = structlog.get_logger(logger_name=__name__)


# ---------------------------------------------------------------------------
# Provider selection
# ---------------------------------------------------------------------------


def _build_llm_provider(app_settings: Settings) -> ILLMProvider | None:
    """Select the LLM provider used for smart tagging.

    ``llm_provider`` picks the preferred vendor; if its key is missing the
    other configured vendor is used.  Returns ``None`` when neither has a
    key, which disables tagging rather than failing start-up.
    """
    openai_llm = OpenAILLMProvider(settings=app_settings) if app_settings.openai_api_key else None
    anthropic_llm = (
        AnthropicLLMProvider(settings=app_settings) if app_settings.anthropic_api_key else None
    )
    if app_settings.llm_provider == "anthropic":
        candidates = [p for p in (anthropic_llm, openai_llm) if p is not None]
    else:
        candidates = [p for p in (openai_llm, anthropic_llm) if p is not None]
    return candidates[0] if candidates else None


def _build_embedding_provider(app_settings: Settings) -> IEmbeddingProvider:
    """Return the OpenAI (or OpenAI-compatible) embedding provider.

    Raises
    ------
    ConfigurationError
        If no API key is configured.  Embedding is not optional.
    """
    provider = OpenAIEmbeddingProvider(settings=app_settings)
    if not provider.is_available():
        raise ConfigurationError(
            message="OPENAI_API_KEY is required for embeddings",
            provider_name=provider.get_provider_name(),
        )
    return provider


def _build_vector_store(app_settings: Settings) -> IVectorStoreProvider:
    """Return the configured vector store backend.

    ChromaDB is imported lazily so Weaviate-only deployments never load it.
    """
    if app_settings.vector_store_backend == "chromadb":
        from knowledge_pipeline.providers.vector_store.chromadb_provider import (
            ChromaDBVectorStoreProvider,
        )

        return ChromaDBVectorStoreProvider(persist_directory=app_settings.chromadb_persist_dir)

    if not app_settings.weaviate_url:
        raise ConfigurationError(
            message="WEAVIATE_URL is required when vector_store_backend is 'weaviate'",
            provider_name="weaviate",
        )
    return WeaviateVectorStoreProvider(settings=app_settings)


def _build_crawler(app_settings: Settings) -> ICrawlerProvider | None:
    if not app_settings.firecrawl_api_key:
        return None
    return FirecrawlCrawlerProvider(settings=app_settings)


# ---------------------------------------------------------------------------
# Full assembly
# ---------------------------------------------------------------------------


def load_settings(config_path: str = "config/config.yaml") -> Settings:
    """Build Settings from YAML defaults with environment overrides on top."""
    base = Settings()
    return settings_from_config(load_config(config_path, settings=base), base=base)


def build_components(custom_settings: Settings | None = None) -> dict[str, Any]:
    """Construct every provider and service with injected dependencies.

    Parameters
    ----------
    custom_settings:
        Application settings.  Loaded from ``config/config.yaml`` plus the
        environment when not provided.

    Returns
    -------
    dict
        Components keyed by role name: ``record_store``, ``blob_storage``,
        ``extractor``, ``tagger``, ``embedder``, ``uploader``,
        ``progress_tracker``, ``orchestrator``, ``batch_service``,
        ``vector_store``, ``crawler``, ``settings``.

    Raises
    ------
    ConfigurationError
        If embedding credentials or the vector store URL are missing.
    """
    s = custom_settings or load_settings()
    configure_logging(log_level=s.log_level, json_output=s.app_env == "production")

    embedding_provider = _build_embedding_provider(s)
    vector_store = _build_vector_store(s)
    crawler = _build_crawler(s)

    record_store = SQLiteIngestionRecordStore(db_path=s.record_db_path)
    blob_storage = LocalBlobStorageProvider(root=s.blob_storage_dir)
    extractor = ContentExtractor()

    tagger: SmartTagger | None = None
    if s.tagging_enabled:
        llm = _build_llm_provider(s)
        if llm is not None:
            tagger = SmartTagger(llm=llm, store=record_store)
        else:
            logger.warning("tagging_disabled", reason="no LLM provider configured")

    embedder = Embedder(
        embedding_provider,
        max_chars=s.embedding_max_chars,
        sub_batch_size=s.embedding_sub_batch_size,
        pacing_delay=s.embedding_pacing_delay,
    )
    uploader = VectorStoreUploader(vector_store, batch_size=s.upload_batch_size)
    progress_tracker = ProgressTracker(record_store)

    orchestrator = PipelineOrchestrator(
        store=record_store,
        blob_storage=blob_storage,
        extractor=extractor,
        embedder=embedder,
        uploader=uploader,
        progress_tracker=progress_tracker,
        tagger=tagger,
        collection=s.default_collection,
        tagging_mode=s.tagging_mode,
        max_retry_count=s.max_retry_count,
        concurrency=s.orchestrator_concurrency,
    )
    batch_service = BatchIngestionService(embedder, uploader, crawler=crawler)

    logger.info(
        "components_built",
        embedding=embedding_provider.get_provider_name(),
        vector_store=vector_store.get_provider_name(),
        crawler=crawler.get_provider_name() if crawler else None,
        tagging=tagger is not None,
        tagging_mode=s.tagging_mode,
    )

    return {
        "record_store": record_store,
        "blob_storage": blob_storage,
        "extractor": extractor,
        "tagger": tagger,
        "embedder": embedder,
        "uploader": uploader,
        "progress_tracker": progress_tracker,
        "orchestrator": orchestrator,
        "batch_service": batch_service,
        "vector_store": vector_store,
        "crawler": crawler,
        "settings": s,
    }


async def close_components(components: dict[str, Any]) -> None:
    """Close HTTP clients owned by the vector store and crawler adapters."""
    for key in ("vector_store", "crawler"):
        close = getattr(components.get(key), "close", None)
        if close is not None:
            await close()
