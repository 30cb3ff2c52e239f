"""Response models for the stored flight read endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class FlightPosition(_CamelModel):
    """One stored position of a tracked aircraft."""

    code: str
    callsign: Optional[str] = None
    timestamp: datetime
    lat: float
    lon: float
    altitude: Optional[int] = None
    velocity: Optional[float] = None
    heading: Optional[float] = None
    on_ground: bool = Field(default=False, serialization_alias="onGround")


class RecentFlightsMetadata(_CamelModel):
    count: int
    time_range: str = Field(..., serialization_alias="timeRange")
    last_update: datetime = Field(..., serialization_alias="lastUpdate")
    military_only: bool = Field(..., serialization_alias="militaryOnly")


class RecentFlightsResponse(BaseModel):
    """Latest positions inside a lookback window, newest first."""

    data: list[FlightPosition]
    metadata: RecentFlightsMetadata


class TrackPoint(_CamelModel):
    timestamp: datetime
    lat: float
    lon: float
    altitude: Optional[int] = None
    velocity: Optional[float] = None
    heading: Optional[float] = None
    on_ground: bool = Field(default=False, serialization_alias="onGround")


class TrackMetadata(_CamelModel):
    point_count: int = Field(..., serialization_alias="pointCount")
    time_range: str = Field(..., serialization_alias="timeRange")
    first_point: datetime = Field(..., serialization_alias="firstPoint")
    last_point: datetime = Field(..., serialization_alias="lastPoint")


class FlightTrackResponse(BaseModel):
    """Chronological positions of one aircraft."""

    aircraft: str
    track: list[TrackPoint]
    metadata: TrackMetadata


class FlightStatsAircraft(_CamelModel):
    total: int
    airborne: int
    on_ground: int = Field(..., serialization_alias="onGround")
    active_last_5min: int = Field(..., serialization_alias="activeLast5Min")
    raf_aircraft: int = Field(..., serialization_alias="rafAircraft")


class FlightStatsMetrics(_CamelModel):
    average_altitude: Optional[int] = Field(default=None, serialization_alias="averageAltitude")
    max_velocity: Optional[int] = Field(default=None, serialization_alias="maxVelocity")


class FlightStatsResponse(BaseModel):
    """Position counts and kinematic extremes over the last 15 minutes."""

    timestamp: datetime
    aircraft: FlightStatsAircraft
    metrics: FlightStatsMetrics


__all__ = [
    "FlightPosition",
    "FlightStatsAircraft",
    "FlightStatsMetrics",
    "FlightStatsResponse",
    "FlightTrackResponse",
    "RecentFlightsMetadata",
    "RecentFlightsResponse",
    "TrackMetadata",
    "TrackPoint",
]
