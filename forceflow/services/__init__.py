"""Service-layer components of the ingestion and scoring pipeline."""

from .assets import resolve_asset
from .events import upsert_flight_event
from .ingestion import (
    BatchSummary,
    CycleReport,
    CycleStatus,
    IngestionService,
    RecordOutcome,
    RecordResult,
)
from .scheduler import PeriodicScheduler, ScheduledJob
from .tempo import TempoComputation, TempoScorer, composite_score

__all__ = [
    "BatchSummary",
    "CycleReport",
    "CycleStatus",
    "IngestionService",
    "PeriodicScheduler",
    "RecordOutcome",
    "RecordResult",
    "ScheduledJob",
    "TempoComputation",
    "TempoScorer",
    "composite_score",
    "resolve_asset",
    "upsert_flight_event",
]
