"""Embedding stage: text -> fixed-dimension vector.

Single texts go through :meth:`Embedder.embed_text`, which raises.  Batches
go through :meth:`Embedder.embed_batch`, which never raises for a bad
item.  Each item is recorded as an :class:`EmbeddingOutcome` and the batch
moves on.

Batch discipline:
* items are split into sub-batches (default 10) to bound call latency
* items are embedded one at a time with a pacing delay (default 100 ms)
  between them to stay under provider rate limits
* every vector must match the batch dimension D; a mismatch fails that
  item only
* a :class:`PauseToken` is checked between items, never mid-call
"""

from __future__ import annotations

import asyncio
import time

import structlog

from knowledge_pipeline.interfaces.embedding_provider import IEmbeddingProvider
from knowledge_pipeline.models.embedding import BatchEmbeddingResult, EmbeddingOutcome
from knowledge_pipeline.utils.concurrency import PauseToken
from knowledge_pipeline.utils.errors import ExternalServiceError, ValidationError

logger = structlog.get_logger(logger_name=__name__)


class Embedder:
    """Validates text and produces embedding vectors through an IEmbeddingProvider."""

    def __init__(
        self,
        provider: IEmbeddingProvider,
        max_chars: int = 32000,
        sub_batch_size: int = 10,
        pacing_delay: float = 0.1,
    ) -> None:
        if sub_batch_size < 1:
            raise ValueError("sub_batch_size must be >= 1")
        self._provider = provider
        self._max_chars = max_chars
        self._sub_batch_size = sub_batch_size
        self._pacing_delay = max(0.0, pacing_delay)

    @property
    def model_name(self) -> str:
        return self._provider.get_model_name()

    @property
    def dimension(self) -> int:
        return self._provider.get_dimension()

    # ------------------------------------------------------------------
    # Single text
    # ------------------------------------------------------------------

    def validate(self, text: str) -> None:
        """Raise ValidationError if *text* is empty or longer than the configured maximum."""
        if not isinstance(text, str) or not text.strip():
            raise ValidationError(message="Text to embed must be a non-empty string")
        if len(text) > self._max_chars:
            raise ValidationError(
                message=f"Text length {len(text)} exceeds maximum of {self._max_chars} characters"
            )

    async def embed_text(self, text: str, expected_dimension: int | None = None) -> list[float]:
        """Embed one text.

        Raises
        ------
        ValidationError
            Empty or over-long text.  Never worth retrying.
        ExternalServiceError
            The provider failed or returned a vector of the wrong dimension.
        """
        self.validate(text)
        vector = await self._provider.embed_single(text)
        expected = expected_dimension or self._provider.get_dimension()
        if not vector or (expected and len(vector) != expected):
            raise ExternalServiceError(
                message=(
                    f"Embedding dimension mismatch: expected {expected}, got {len(vector or [])}"
                ),
                provider_name=self._provider.get_provider_name(),
            )
        return list(vector)

    # ------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------

    async def embed_batch(
        self,
        texts: list[str],
        pause: PauseToken | None = None,
    ) -> BatchEmbeddingResult:
        """Embed *texts* in order with per-item failure isolation.

        Returns
        -------
        BatchEmbeddingResult
            Success/failure tally and one outcome per processed item, in
            submission order.  ``paused`` is set when the token stopped the
            run early; unprocessed items have no outcome.
        """
        outcomes: list[EmbeddingOutcome] = []
        batch_dimension = self._provider.get_dimension() or None
        paused = False
        first_item = True

        for start in range(0, len(texts), self._sub_batch_size):
            sub_batch = texts[start : start + self._sub_batch_size]
            for offset, text in enumerate(sub_batch):
                if pause is not None and pause.is_paused:
                    paused = True
                    break
                if not first_item and self._pacing_delay:
                    await asyncio.sleep(self._pacing_delay)
                first_item = False

                outcome = await self._embed_item(start + offset, text, batch_dimension)
                if outcome.success and batch_dimension is None:
                    batch_dimension = outcome.dimensions
                outcomes.append(outcome)
            if paused:
                break
            logger.debug(
                "embedding_sub_batch_complete",
                start=start,
                size=len(sub_batch),
            )

        successful = sum(1 for o in outcomes if o.success)
        result = BatchEmbeddingResult(
            total=len(texts),
            successful=successful,
            failed=len(outcomes) - successful,
            outcomes=outcomes,
            paused=paused,
            model=self.model_name,
        )
        logger.info(
            "embedding_batch_complete",
            total=result.total,
            successful=result.successful,
            failed=result.failed,
            paused=result.paused,
            average_ms=round(result.average_ms, 1),
        )
        return result

    async def _embed_item(
        self, index: int, text: str, expected_dimension: int | None
    ) -> EmbeddingOutcome:
        started = time.perf_counter()
        try:
            vector = await self.embed_text(text, expected_dimension=expected_dimension)
        except ValidationError as exc:
            return self._failure(index, exc, "validation", started)
        except Exception as exc:  # noqa: BLE001
            return self._failure(index, exc, "external", started)
        return EmbeddingOutcome(
            index=index,
            success=True,
            vector=vector,
            dimensions=len(vector),
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )

    @staticmethod
    def _failure(index: int, exc: Exception, kind: str, started: float) -> EmbeddingOutcome:
        logger.warning("embedding_item_failed", index=index, kind=kind, error=str(exc))
        return EmbeddingOutcome(
            index=index,
            success=False,
            error=str(exc),
            error_kind=kind,
            elapsed_ms=(time.perf_counter() - started) * 1000,
        )
