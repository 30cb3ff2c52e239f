"""Read endpoints over stored military flight positions."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forceflow.config import settings
from forceflow.db import get_db, utcnow
from forceflow.ingestors.classifier import build_rules
from forceflow.models.flights import FlightStatsResponse, FlightTrackResponse, RecentFlightsResponse
from forceflow.security import require_api_key
from forceflow.services.flights import flight_stats, flight_track, recent_flights

router = APIRouter(
    prefix="/api/v1/flights",
    tags=["flights"],
    dependencies=[Depends(require_api_key)],
)

logger = logging.getLogger("forceflow.api.flights")


def _query_error(exc: SQLAlchemyError) -> HTTPException:
    logger.error("Flight query failed: %s", exc)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": "ERR_DATABASE_QUERY", "message": "Failed to query flight data"},
    )


@router.get("/recent", response_model=RecentFlightsResponse, summary="Recent flight positions")
def get_recent_flights(
    minutes: int = Query(default=15, ge=1, le=1440, description="Lookback window in minutes"),
    limit: int = Query(default=100, ge=1, le=1000),
    military_only: bool = Query(default=True),
    db: Session = Depends(get_db),
) -> RecentFlightsResponse:
    rules = (
        build_rules(settings.military_hex_prefixes, settings.military_callsign_prefixes)
        if military_only
        else None
    )
    try:
        return recent_flights(db, now=utcnow(), minutes=minutes, limit=limit, rules=rules)
    except SQLAlchemyError as exc:
        raise _query_error(exc) from exc


@router.get("/track/{code}", response_model=FlightTrackResponse, summary="Track of one aircraft")
def get_flight_track(
    code: str,
    hours: int = Query(default=24, ge=1, le=72, description="Lookback window in hours"),
    db: Session = Depends(get_db),
) -> FlightTrackResponse:
    try:
        track = flight_track(db, code, now=utcnow(), hours=hours)
    except SQLAlchemyError as exc:
        raise _query_error(exc) from exc
    if track is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "ERR_NOT_FOUND", "message": f"No track data found for {code}"},
        )
    return track


@router.get("/stats", response_model=FlightStatsResponse, summary="Flight activity statistics")
def get_flight_stats(db: Session = Depends(get_db)) -> FlightStatsResponse:
    try:
        return flight_stats(db, now=utcnow())
    except SQLAlchemyError as exc:
        raise _query_error(exc) from exc
