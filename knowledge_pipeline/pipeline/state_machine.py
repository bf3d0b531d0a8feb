"""Transition table for :class:`~knowledge_pipeline.models.ingestion.IngestionStatus`.

    PENDING -> EXTRACTING -> (TAGGING) -> EMBEDDING -> UPLOADING -> COMPLETED
       \\            \\             \\           \\            \\
        +------------+-------------+-----------+------------+--> FAILED
                                                                   |
    PENDING <------------------ explicit retry --------------------+

TAGGING is only entered in inline tagging mode; in background mode the
record goes straight from EXTRACTING to EMBEDDING.  COMPLETED is terminal.
"""

from __future__ import annotations

from knowledge_pipeline.models.ingestion import IngestionStatus
from knowledge_pipeline.utils.errors import PipelineError

_S = IngestionStatus

TRANSITIONS: dict[IngestionStatus, frozenset[IngestionStatus]] = {
    _S.PENDING: frozenset({_S.EXTRACTING, _S.FAILED}),
    _S.EXTRACTING: frozenset({_S.TAGGING, _S.EMBEDDING, _S.FAILED}),
    _S.TAGGING: frozenset({_S.EMBEDDING, _S.FAILED}),
    _S.EMBEDDING: frozenset({_S.UPLOADING, _S.FAILED}),
    _S.UPLOADING: frozenset({_S.COMPLETED, _S.FAILED}),
    _S.COMPLETED: frozenset(),
    _S.FAILED: frozenset({_S.PENDING}),
}

# Every status needs a row, including terminal ones with no exits.
_missing = set(IngestionStatus) - set(TRANSITIONS)
if _missing:
    raise RuntimeError(f"transition table has no row for {sorted(s.value for s in _missing)}")

# Statuses in which a record is being worked on by the orchestrator.
ACTIVE_STATUSES: frozenset[IngestionStatus] = frozenset(
    {_S.EXTRACTING, _S.TAGGING, _S.EMBEDDING, _S.UPLOADING}
)


def can_transition(current: IngestionStatus, target: IngestionStatus) -> bool:
    return target in TRANSITIONS[current]


def ensure_transition(current: IngestionStatus, target: IngestionStatus) -> None:
    """Raise PipelineError unless ``current -> target`` is in the table."""
    if not can_transition(current, target):
        raise PipelineError(
            message=f"Illegal status transition {current.value} -> {target.value}"
        )


def is_terminal(status: IngestionStatus) -> bool:
    return not TRANSITIONS[status]


def is_retryable(status: IngestionStatus) -> bool:
    return status is IngestionStatus.FAILED
