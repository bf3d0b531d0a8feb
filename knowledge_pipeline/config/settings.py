"""Application settings loaded from environment variables via pydantic-settings.

Two sources, highest priority first:

  1. Environment variables, e.g. ``OPENAI_API_KEY=sk-abc123``
  2. A ``.env`` file in the working directory

Field ``openai_api_key`` maps to env var ``OPENAI_API_KEY``.  Defaults apply
when neither source sets a value.  An empty credential string means "not
configured"; ``main.build_components`` turns that into a
``ConfigurationError`` for services the pipeline cannot run without.
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Knowledge pipeline settings.

    Environment variables override defaults.  Loaded from .env when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # === LLM / Embedding Providers ===
    openai_api_key: str = ""
    openai_base_url: str = ""  # OpenAI-compatible endpoints (TogetherAI, local gateways)
    openai_embedding_model: str = "text-embedding-3-small"
    openai_text_model: str = "gpt-4o-mini"
    anthropic_api_key: str = ""
    anthropic_text_model: str = "claude-3-5-haiku-latest"
    llm_provider: Literal["openai", "anthropic"] = "openai"

    # === Crawler ===
    firecrawl_api_key: str = ""
    firecrawl_base_url: str = "https://api.firecrawl.dev"
    firecrawl_poll_interval: float = 2.0
    firecrawl_max_polls: int = 150

    # === Vector Store ===
    vector_store_backend: Literal["weaviate", "chromadb"] = "weaviate"
    weaviate_url: str = ""
    weaviate_api_key: str = ""
    chromadb_persist_dir: str = "./data/chromadb"
    default_collection: str = "KnowledgeFragment"
    search_default_limit: int = 10
    search_default_distance: float = 0.7

    # === Persistence ===
    record_db_path: str = "data/ingestion.db"
    blob_storage_dir: str = "data/blobs"

    # === Pipeline Tuning ===
    embedding_max_chars: int = 32000
    embedding_sub_batch_size: int = 10
    embedding_pacing_delay: float = 0.1
    upload_batch_size: int = 100
    tagging_enabled: bool = True
    tagging_mode: Literal["background", "inline"] = "background"
    max_retry_count: int = 5  # 0 disables the cap
    orchestrator_concurrency: int = 4

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"

    def get_available_llm_providers(self) -> list[str]:
        """Return the LLM provider names that have non-empty API keys configured."""
        providers: list[str] = []
        if self.openai_api_key:
            providers.append("openai")
        if self.anthropic_api_key:
            providers.append("anthropic")
        return providers
