"""SQLAlchemy ORM models for the ForceFlow store."""

from __future__ import annotations

from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from forceflow.db import Base, utcnow


def _uuid() -> str:
    return str(uuid4())


class ApiKey(Base):
    """Stored API keys for authenticating requests."""

    __tablename__ = "api_keys"
    __table_args__ = (
        Index("ix_api_keys_expires_at", "expires_at"),
        Index("ix_api_keys_revoked_at", "revoked_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key_prefix: Mapped[str] = mapped_column(String(32), unique=True, index=True, nullable=False)
    key_hash: Mapped[str] = mapped_column(String(128), nullable=False)
    holder_email: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    holder_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    role: Mapped[str] = mapped_column(String(16), nullable=False, default="viewer")

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    last_used_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_used_ip: Mapped[str | None] = mapped_column(String(64), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)


class Asset(Base):
    """A tracked aircraft or vessel, one row per external code."""

    __tablename__ = "assets"

    id = Column(String(36), primary_key=True, default=_uuid)
    type = Column(Enum("aircraft", "ship", name="asset_type"), nullable=False, index=True)
    code = Column(String, unique=True, nullable=False, index=True)
    callsign = Column(String, nullable=True)
    name = Column(String, nullable=True)
    country_code = Column(String(2), nullable=True)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, nullable=False)


class FlightEvent(Base):
    """Observed aircraft state at one instant; unique per (asset, ts)."""

    __tablename__ = "flight_events"
    __table_args__ = (
        UniqueConstraint("asset_id", "ts", name="unique_flight_event"),
        Index("idx_flight_events_asset_time", "asset_id", "ts"),
        Index("idx_flight_events_location", "lat", "lon"),
    )

    id = Column(String(36), primary_key=True, default=_uuid)
    asset_id = Column(String(36), ForeignKey("assets.id", ondelete="CASCADE"), nullable=False)
    ts = Column(DateTime, nullable=False, index=True)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    alt = Column(Integer, nullable=True)
    velocity = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    vertical_rate = Column(Float, nullable=True)
    on_ground = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, default=utcnow)


class ShipEvent(Base):
    """Observed vessel state; written by the AIS collaborator, counted here."""

    __tablename__ = "ship_events"
    __table_args__ = (UniqueConstraint("asset_id", "ts", name="unique_ship_event"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    asset_id = Column(String(36), ForeignKey("assets.id", ondelete="CASCADE"), nullable=False)
    ts = Column(DateTime, nullable=False, index=True)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    sog = Column(Float, nullable=True)
    cog = Column(Float, nullable=True)
    heading = Column(Float, nullable=True)
    nav_status = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Notam(Base):
    """Notice to airmen with an active interval."""

    __tablename__ = "notams"
    __table_args__ = (Index("idx_notams_time", "ts_start", "ts_end"),)

    id = Column(String, primary_key=True)
    ts_start = Column(DateTime, nullable=False)
    ts_end = Column(DateTime, nullable=True)
    title = Column(Text, nullable=True)
    description = Column(Text, nullable=True)
    category = Column(String, nullable=True)
    geom_lat = Column(Float, nullable=True)
    geom_lon = Column(Float, nullable=True)
    geom_radius = Column(Float, nullable=True)
    source_url = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Exercise(Base):
    """Published military exercise or training area activation."""

    __tablename__ = "exercises"
    __table_args__ = (Index("idx_exercises_time", "ts_start", "ts_end"),)

    id = Column(String(36), primary_key=True, default=_uuid)
    name = Column(Text, nullable=False)
    ts_start = Column(DateTime, nullable=False)
    ts_end = Column(DateTime, nullable=True)
    area_lat = Column(Float, nullable=True)
    area_lon = Column(Float, nullable=True)
    area_radius = Column(Float, nullable=True)
    description = Column(Text, nullable=True)
    exercise_type = Column(String, nullable=True)
    source_document = Column(Text, nullable=True)
    created_at = Column(DateTime, default=utcnow)


class TempoScore(Base):
    """Composite activity score for one whole-hour bucket."""

    __tablename__ = "tempo_scores"

    ts = Column(DateTime, primary_key=True)
    score = Column(Float, nullable=False)
    drivers = Column(JSON, nullable=True)
    flight_count = Column(Integer, nullable=False, default=0)
    ship_count = Column(Integer, nullable=False, default=0)
    notam_count = Column(Integer, nullable=False, default=0)
    exercise_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=utcnow)
