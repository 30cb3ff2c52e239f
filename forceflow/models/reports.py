"""Response models for the ingestion status and tempo endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from forceflow.models.air_traffic import BoundingBox


class AuthenticationStatus(BaseModel):
    """How the ingestor is authenticating against the feed."""

    method: Literal["oauth2", "basic_auth", "anonymous"] = Field(
        ..., description="Auth mode used by the most recent fetch"
    )
    oauth2_configured: bool = Field(..., description="Client credentials are configured")
    basic_auth_configured: bool = Field(..., description="Legacy username/password configured")
    token_valid: bool = Field(..., description="A cached bearer token is still usable")


class CycleSummary(BaseModel):
    """Outcome counts of one ingestion cycle."""

    status: Literal["completed", "rate_limited", "failed", "skipped"]
    started_at: datetime
    finished_at: Optional[datetime] = None
    total: int = 0
    stored: int = 0
    rejected: int = 0
    skipped: int = 0
    failed: int = 0
    error: Optional[str] = None


class IngestionStatus(BaseModel):
    """Read-only snapshot of the ingestion service."""

    service: str = Field(default="OpenSky Network")
    running: bool = Field(..., description="A cycle is currently in progress")
    last_run: Optional[datetime] = Field(
        default=None, description="Completion time of the last cycle whose fetch succeeded"
    )
    bounds: BoundingBox
    authentication: AuthenticationStatus
    last_cycle: Optional[CycleSummary] = None


class TempoComponent(BaseModel):
    count: int
    score: float


class TempoCalculationResponse(BaseModel):
    """Result of computing and storing the score for the current hour."""

    message: str = "Tempo score calculated successfully"
    timestamp: datetime = Field(..., description="Start of the hour bucket")
    score: float
    components: dict[str, TempoComponent]


class TempoCurrent(BaseModel):
    score: float
    timestamp: datetime
    status: Literal["very_high", "high", "elevated", "normal", "low"]
    drivers: dict[str, float]


class TempoTrend(BaseModel):
    change24h: float
    change7d: float
    direction: Literal["increasing", "decreasing", "stable"]


class TempoIndexResponse(BaseModel):
    """Latest tempo score with its trend."""

    current: TempoCurrent
    trend: TempoTrend


class TempoScoreRange(BaseModel):
    average: float
    minimum: float
    maximum: float


class TempoActivity(BaseModel):
    flights: int
    ships: int
    notams: int
    exercises: int


class TempoHistoryPoint(BaseModel):
    timestamp: datetime
    score: TempoScoreRange
    activity: TempoActivity


class TempoHistoryResponse(BaseModel):
    """Bucketed tempo scores over a lookback window."""

    time_range: str = Field(..., serialization_alias="timeRange")
    resolution: Literal["hour", "day"]
    data: list[TempoHistoryPoint]
