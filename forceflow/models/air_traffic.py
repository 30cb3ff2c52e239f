"""Models for aircraft state vectors received from the OpenSky feed."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class BoundingBox(BaseModel):
    """Geographic box used to bound a snapshot request."""

    lamin: float = Field(..., description="Minimum latitude in decimal degrees")
    lamax: float = Field(..., description="Maximum latitude in decimal degrees")
    lomin: float = Field(..., description="Minimum longitude in decimal degrees")
    lomax: float = Field(..., description="Maximum longitude in decimal degrees")

    model_config = ConfigDict(frozen=True)

    def as_params(self) -> dict[str, float]:
        return self.model_dump()


class StateVector(BaseModel):
    """Validated, canonical form of one upstream state record."""

    icao24: str = Field(..., description="Upper-cased ICAO 24-bit hex identifier")
    callsign: Optional[str] = Field(default=None, description="Trimmed callsign")
    origin_country: Optional[str] = Field(
        default=None, description="Country name as reported by the feed"
    )
    country_code: Optional[str] = Field(
        default=None, description="Best-effort two-letter country code"
    )
    observed_at: datetime = Field(
        ..., description="Feed last-contact time as naive UTC; the event key"
    )
    lat: float = Field(..., description="Latitude in decimal degrees")
    lon: float = Field(..., description="Longitude in decimal degrees")
    altitude: Optional[int] = Field(
        default=None, description="Barometric altitude in metres, rounded"
    )
    velocity: Optional[float] = Field(default=None, description="Ground speed in m/s")
    heading: Optional[float] = Field(
        default=None, description="True track in degrees clockwise from north"
    )
    vertical_rate: Optional[float] = Field(default=None, description="Vertical rate in m/s")
    on_ground: bool = Field(default=False, description="Surface position report")

    model_config = ConfigDict(extra="ignore")


__all__ = ["BoundingBox", "StateVector"]
