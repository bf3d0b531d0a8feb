"""Custom exception hierarchy for the knowledge pipeline.

All application exceptions inherit from :class:`KnowledgePipelineError`,
which carries an optional ``provider_name`` so error handlers can identify
which external service (e.g. "openai", "weaviate", "firecrawl") caused the
failure.

    KnowledgePipelineError  (base -- catch-all for any pipeline error)
    +-- ValidationError       (bad input shape/size -- never retried)
    +-- ExternalServiceError  (crawler/embedding/LLM/vector-store failure)
    +-- NotFoundError         (record or collection absent)
    +-- ConfigurationError    (startup / missing credentials)
    +-- PipelineError         (illegal state transition)

Extraction, embedding and upload errors are terminal for a record until an
explicit retry.  Tagging errors never leave the tagger.
"""


class KnowledgePipelineError(Exception):
    """Base exception for all knowledge pipeline errors.

    Every subclass carries a human-readable ``message`` and an optional
    ``provider_name``.  ``__str__`` prefixes the provider name in brackets,
    e.g. ``[weaviate] Batch insert failed``.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        provider_name: str | None = None,
    ) -> None:
        self._message = message
        self._provider_name = provider_name
        super().__init__(self._message)

    @property
    def message(self) -> str:
        return self._message

    @property
    def provider_name(self) -> str | None:
        return self._provider_name

    def __str__(self) -> str:
        if self._provider_name:
            return f"[{self._provider_name}] {self._message}"
        return self._message


# ---------------------------------------------------------------------------
# Input errors
# ---------------------------------------------------------------------------

class ValidationError(KnowledgePipelineError):
    """Raised for bad input shape or size.  Callers must not retry these."""

    def __init__(
        self,
        message: str = "Invalid input",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class NotFoundError(KnowledgePipelineError):
    """Raised when a record or collection does not exist (or is not visible to the actor)."""

    def __init__(
        self,
        message: str = "Resource not found",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# External service errors
# ---------------------------------------------------------------------------

class ExternalServiceError(KnowledgePipelineError):
    """Raised when a crawler, embedding, LLM or vector-store call fails.

    Retryable by re-running the failed stage (see
    ``PipelineOrchestrator.retry``).
    """

    def __init__(
        self,
        message: str = "External service call failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


# ---------------------------------------------------------------------------
# Orchestration / configuration errors
# ---------------------------------------------------------------------------

class PipelineError(KnowledgePipelineError):
    """Raised when the orchestrator attempts an illegal state transition."""

    def __init__(
        self,
        message: str = "Pipeline orchestration failed",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)


class ConfigurationError(KnowledgePipelineError):
    """Raised when configuration is invalid or credentials are missing at startup."""

    def __init__(
        self,
        message: str = "Invalid or missing configuration",
        provider_name: str | None = None,
    ) -> None:
        super().__init__(message=message, provider_name=provider_name)
