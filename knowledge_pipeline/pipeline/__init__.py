"""Pipeline orchestration components for the knowledge ingestion pipeline."""

from knowledge_pipeline.pipeline.orchestrator import PipelineOrchestrator, vector_object_id
from knowledge_pipeline.pipeline.progress_tracker import ALL_RECORDS, ProgressTracker
from knowledge_pipeline.pipeline.state_machine import (
    ACTIVE_STATUSES,
    TRANSITIONS,
    can_transition,
    ensure_transition,
    is_retryable,
    is_terminal,
)

__all__ = [
    "ACTIVE_STATUSES",
    "ALL_RECORDS",
    "PipelineOrchestrator",
    "ProgressTracker",
    "TRANSITIONS",
    "can_transition",
    "ensure_transition",
    "is_retryable",
    "is_terminal",
    "vector_object_id",
]
