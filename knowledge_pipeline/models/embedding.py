"""Embedding outcomes reported by the Embedder."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class EmbeddingOutcome(BaseModel):
    """Per-item result of a batch embedding run."""

    model_config = ConfigDict(frozen=True)

    index: int = Field(ge=0)
    success: bool
    vector: list[float] | None = None
    dimensions: int = Field(default=0, ge=0)
    error: str | None = None
    # "validation" or "external" when success is False.
    error_kind: str | None = None
    elapsed_ms: float = Field(default=0.0, ge=0.0)


class BatchEmbeddingResult(BaseModel):
    """Success/failure tally for a batch.  Outcomes are in submission order.

    When ``paused`` is True, ``total`` counts all submitted items while
    ``outcomes`` only covers the ones processed before the pause.
    """

    model_config = ConfigDict(frozen=True)

    total: int = Field(ge=0)
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    outcomes: list[EmbeddingOutcome] = Field(default_factory=list)
    paused: bool = False
    model: str = ""

    @property
    def processed(self) -> int:
        return len(self.outcomes)

    @property
    def average_ms(self) -> float:
        if not self.outcomes:
            return 0.0
        return sum(o.elapsed_ms for o in self.outcomes) / len(self.outcomes)
