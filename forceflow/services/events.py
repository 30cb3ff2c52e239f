"""Idempotent position-event writes keyed by (asset, timestamp)."""

from __future__ import annotations

from uuid import uuid4

from sqlalchemy.orm import Session

from forceflow.db import dialect_insert
from forceflow.db_models import FlightEvent
from forceflow.models.air_traffic import StateVector

KINEMATIC_FIELDS = ("lat", "lon", "alt", "velocity", "heading", "vertical_rate", "on_ground")


def upsert_flight_event(db: Session, asset_id: str, state: StateVector) -> None:
    """Insert the event or overwrite every kinematic field of the existing one."""

    stmt = dialect_insert(db, FlightEvent).values(
        id=str(uuid4()),
        asset_id=asset_id,
        ts=state.observed_at,
        lat=state.lat,
        lon=state.lon,
        alt=state.altitude,
        velocity=state.velocity,
        heading=state.heading,
        vertical_rate=state.vertical_rate,
        on_ground=state.on_ground,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=[FlightEvent.asset_id, FlightEvent.ts],
        set_={name: stmt.excluded[name] for name in KINEMATIC_FIELDS},
    )
    db.execute(stmt)


__all__ = ["KINEMATIC_FIELDS", "upsert_flight_event"]
