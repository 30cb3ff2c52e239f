"""Read queries over stored flight events for API consumers."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Optional, Sequence

from sqlalchemy import and_, case, false, func, or_, select, true
from sqlalchemy.orm import Session

from forceflow.db_models import Asset, FlightEvent
from forceflow.ingestors.classifier import PrefixRule
from forceflow.models.flights import (
    FlightPosition,
    FlightStatsAircraft,
    FlightStatsMetrics,
    FlightStatsResponse,
    FlightTrackResponse,
    RecentFlightsMetadata,
    RecentFlightsResponse,
    TrackMetadata,
    TrackPoint,
)

STATS_WINDOW = timedelta(minutes=15)
ACTIVE_WINDOW = timedelta(minutes=5)
RAF_CALLSIGN_PREFIX = "RRR"


def military_filter(rules: Sequence[PrefixRule]):
    """SQL condition equivalent to evaluating ``rules`` against the stored asset."""

    clauses = []
    for rule in rules:
        column = Asset.code if rule.field == "icao24" else Asset.callsign
        clauses.append(func.upper(column).like(f"{rule.prefix.upper()}%"))
    return or_(*clauses) if clauses else false()


def recent_flights(
    db: Session,
    *,
    now: datetime,
    minutes: int = 15,
    limit: int = 100,
    rules: Optional[Sequence[PrefixRule]] = None,
) -> RecentFlightsResponse:
    """Newest positions of the last ``minutes``; ``rules`` restricts to military assets."""

    stmt = (
        select(Asset.code, Asset.callsign, FlightEvent)
        .join(Asset, Asset.id == FlightEvent.asset_id)
        .where(FlightEvent.ts > now - timedelta(minutes=minutes))
    )
    if rules is not None:
        stmt = stmt.where(military_filter(rules))
    stmt = stmt.order_by(FlightEvent.ts.desc()).limit(limit)

    data = [
        FlightPosition(
            code=code,
            callsign=callsign,
            timestamp=event.ts,
            lat=event.lat,
            lon=event.lon,
            altitude=event.alt,
            velocity=event.velocity,
            heading=event.heading,
            on_ground=bool(event.on_ground),
        )
        for code, callsign, event in db.execute(stmt).all()
    ]
    return RecentFlightsResponse(
        data=data,
        metadata=RecentFlightsMetadata(
            count=len(data),
            time_range=f"{minutes} minutes",
            last_update=now,
            military_only=rules is not None,
        ),
    )


def flight_track(
    db: Session, code: str, *, now: datetime, hours: int = 24
) -> Optional[FlightTrackResponse]:
    """Chronological track of one aircraft, or None when nothing was stored."""

    code = code.strip().upper()
    events = (
        db.execute(
            select(FlightEvent)
            .join(Asset, Asset.id == FlightEvent.asset_id)
            .where(Asset.code == code, FlightEvent.ts > now - timedelta(hours=hours))
            .order_by(FlightEvent.ts.asc())
        )
        .scalars()
        .all()
    )
    if not events:
        return None

    return FlightTrackResponse(
        aircraft=code,
        track=[
            TrackPoint(
                timestamp=event.ts,
                lat=event.lat,
                lon=event.lon,
                altitude=event.alt,
                velocity=event.velocity,
                heading=event.heading,
                on_ground=bool(event.on_ground),
            )
            for event in events
        ],
        metadata=TrackMetadata(
            point_count=len(events),
            time_range=f"{hours} hours",
            first_point=events[0].ts,
            last_point=events[-1].ts,
        ),
    )


def flight_stats(db: Session, *, now: datetime) -> FlightStatsResponse:
    """Counts over position events of the last 15 minutes, one row per position."""

    airborne = FlightEvent.on_ground == false()
    row = db.execute(
        select(
            func.count(FlightEvent.id),
            func.count(case((airborne, 1))),
            func.count(case((FlightEvent.on_ground == true(), 1))),
            func.avg(case((and_(FlightEvent.alt > 0, airborne), FlightEvent.alt))),
            func.max(FlightEvent.velocity),
            func.count(case((Asset.callsign.like(f"{RAF_CALLSIGN_PREFIX}%"), 1))),
            func.count(case((FlightEvent.ts > now - ACTIVE_WINDOW, 1))),
        )
        .select_from(FlightEvent)
        .join(Asset, Asset.id == FlightEvent.asset_id)
        .where(FlightEvent.ts > now - STATS_WINDOW)
    ).one()
    total, in_air, grounded, avg_alt, max_velocity, raf, active = row

    return FlightStatsResponse(
        timestamp=now,
        aircraft=FlightStatsAircraft(
            total=total,
            airborne=in_air,
            on_ground=grounded,
            active_last_5min=active,
            raf_aircraft=raf,
        ),
        metrics=FlightStatsMetrics(
            average_altitude=round(avg_alt) if avg_alt else None,
            max_velocity=round(max_velocity) if max_velocity else None,
        ),
    )


__all__ = ["flight_stats", "flight_track", "military_filter", "recent_flights"]
