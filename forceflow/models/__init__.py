"""Pydantic models for the ForceFlow service."""

from .air_traffic import BoundingBox, StateVector
from .flights import FlightStatsResponse, FlightTrackResponse, RecentFlightsResponse
from .reports import (
    AuthenticationStatus,
    CycleSummary,
    IngestionStatus,
    TempoCalculationResponse,
    TempoHistoryResponse,
    TempoIndexResponse,
)

__all__ = [
    "AuthenticationStatus",
    "BoundingBox",
    "CycleSummary",
    "FlightStatsResponse",
    "FlightTrackResponse",
    "IngestionStatus",
    "RecentFlightsResponse",
    "StateVector",
    "TempoCalculationResponse",
    "TempoHistoryResponse",
    "TempoIndexResponse",
]
