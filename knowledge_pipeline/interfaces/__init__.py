"""Interface definitions for every external collaborator of the pipeline.

Business logic talks only to these abstract base classes.  Concrete
adapters live in ``knowledge_pipeline/providers/`` and are wired together
in ``knowledge_pipeline/main.py``; tests inject in-memory fakes instead.

    Interface               ->  Concrete implementations
    ---------------------------------------------------------------
    IEmbeddingProvider      ->  OpenAIEmbeddingProvider
    ILLMProvider            ->  OpenAILLMProvider, AnthropicLLMProvider
    IVectorStoreProvider    ->  WeaviateVectorStoreProvider,
                                ChromaDBVectorStoreProvider
    ICrawlerProvider        ->  FirecrawlCrawlerProvider
    IBlobStorageProvider    ->  LocalBlobStorageProvider
    IIngestionRecordStore   ->  SQLiteIngestionRecordStore
"""

from knowledge_pipeline.interfaces.blob_storage_provider import IBlobStorageProvider
from knowledge_pipeline.interfaces.crawler_provider import ICrawlerProvider
from knowledge_pipeline.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_pipeline.interfaces.llm_provider import ILLMProvider
from knowledge_pipeline.interfaces.record_store import IIngestionRecordStore
from knowledge_pipeline.interfaces.vector_store_provider import IVectorStoreProvider

__all__ = [
    "IBlobStorageProvider",
    "ICrawlerProvider",
    "IEmbeddingProvider",
    "IIngestionRecordStore",
    "ILLMProvider",
    "IVectorStoreProvider",
]
