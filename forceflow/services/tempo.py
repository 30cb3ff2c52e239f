"""Hourly composite activity-tempo score derived from stored events."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Callable, Literal, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session

from forceflow.db import SessionLocal, dialect_insert, utcnow
from forceflow.db_models import Exercise, FlightEvent, Notam, ShipEvent, TempoScore
from forceflow.models.reports import (
    TempoActivity,
    TempoCalculationResponse,
    TempoComponent,
    TempoCurrent,
    TempoHistoryPoint,
    TempoHistoryResponse,
    TempoIndexResponse,
    TempoScoreRange,
    TempoTrend,
)

logger = logging.getLogger("forceflow.tempo")

FLIGHT_WINDOW = timedelta(hours=1)
# AIS positions arrive with up to ~72h latency
SHIP_WINDOW = timedelta(hours=72)

BASELINE_OFFSET = 50.0
MAX_SCORE = 100.0
MIN_SCORE = 0.0


@dataclass(frozen=True)
class CategorySpec:
    name: str
    driver_key: str
    baseline: int
    weight: float


CATEGORIES: tuple[CategorySpec, ...] = (
    CategorySpec("flights", "flight_score", baseline=50, weight=0.4),
    CategorySpec("ships", "ship_score", baseline=20, weight=0.2),
    CategorySpec("notams", "notam_score", baseline=10, weight=0.3),
    CategorySpec("exercises", "exercise_score", baseline=2, weight=0.1),
)


def truncate_to_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


def category_score(count: int, baseline: int) -> float:
    """Percentage above baseline, floored at zero."""

    return max(0.0, (count - baseline) / baseline * 100)


def composite_score(counts: dict[str, int]) -> tuple[float, dict[str, float]]:
    """Weighted sum of category sub-scores plus the flat offset, clamped to [0, 100]."""

    sub_scores = {
        spec.name: category_score(counts.get(spec.name, 0), spec.baseline) for spec in CATEGORIES
    }
    raw = sum(sub_scores[spec.name] * spec.weight for spec in CATEGORIES) + BASELINE_OFFSET
    score = round(min(MAX_SCORE, max(MIN_SCORE, raw)), 2)
    drivers = {spec.driver_key: round(sub_scores[spec.name], 2) for spec in CATEGORIES}
    return score, drivers


def status_band(score: float) -> Literal["very_high", "high", "elevated", "normal", "low"]:
    if score >= 90:
        return "very_high"
    if score >= 75:
        return "high"
    if score >= 60:
        return "elevated"
    if score <= 25:
        return "low"
    return "normal"


@dataclass
class TempoComputation:
    bucket: datetime
    score: float
    drivers: dict[str, float]
    counts: dict[str, int]

    def to_response(self) -> TempoCalculationResponse:
        return TempoCalculationResponse(
            timestamp=self.bucket,
            score=self.score,
            components={
                spec.name: TempoComponent(
                    count=self.counts[spec.name], score=self.drivers[spec.driver_key]
                )
                for spec in CATEGORIES
            },
        )


class TempoScorer:
    """Compute, store and read back hourly tempo scores."""

    def __init__(
        self,
        *,
        session_factory: Callable[[], Session] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.session_factory = session_factory or SessionLocal
        self._clock = clock

    def count_activity(self, db: Session, now: datetime) -> dict[str, int]:
        def _count(stmt) -> int:
            return int(db.execute(stmt).scalar_one())

        def _active(model):
            return (
                select(func.count())
                .select_from(model)
                .where(model.ts_start <= now, or_(model.ts_end.is_(None), model.ts_end >= now))
            )

        return {
            "flights": _count(
                select(func.count())
                .select_from(FlightEvent)
                .where(FlightEvent.ts > now - FLIGHT_WINDOW)
            ),
            "ships": _count(
                select(func.count()).select_from(ShipEvent).where(ShipEvent.ts > now - SHIP_WINDOW)
            ),
            "notams": _count(_active(Notam)),
            "exercises": _count(_active(Exercise)),
        }

    def compute(self, db: Session, now: datetime) -> TempoComputation:
        counts = self.count_activity(db, now)
        score, drivers = composite_score(counts)
        return TempoComputation(
            bucket=truncate_to_hour(now), score=score, drivers=drivers, counts=counts
        )

    def compute_and_store(self, now: Optional[datetime] = None) -> TempoComputation:
        """Compute the score at ``now`` and upsert it into the hour bucket."""

        now = now or self._clock()
        with self.session_factory() as db, db.begin():
            result = self.compute(db, now)
            stmt = dialect_insert(db, TempoScore).values(
                ts=result.bucket,
                score=result.score,
                drivers=result.drivers,
                flight_count=result.counts["flights"],
                ship_count=result.counts["ships"],
                notam_count=result.counts["notams"],
                exercise_count=result.counts["exercises"],
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[TempoScore.ts],
                set_={
                    name: stmt.excluded[name]
                    for name in (
                        "score",
                        "drivers",
                        "flight_count",
                        "ship_count",
                        "notam_count",
                        "exercise_count",
                    )
                },
            )
            db.execute(stmt)

        logger.info(
            "Tempo score %.2f stored for %s (flights=%s ships=%s notams=%s exercises=%s)",
            result.score,
            result.bucket.isoformat(),
            result.counts["flights"],
            result.counts["ships"],
            result.counts["notams"],
            result.counts["exercises"],
        )
        return result

    async def run_scheduled(self) -> TempoComputation:
        return await asyncio.to_thread(self.compute_and_store)

    def current_index(self, now: Optional[datetime] = None) -> TempoIndexResponse:
        """Latest stored score with its status band and 24h/7d trend."""

        now = now or self._clock()
        with self.session_factory() as db:
            latest = db.execute(
                select(TempoScore).order_by(TempoScore.ts.desc()).limit(1)
            ).scalar_one_or_none()
            if latest is None:
                return TempoIndexResponse(
                    current=TempoCurrent(
                        score=BASELINE_OFFSET,
                        timestamp=now,
                        status="normal",
                        drivers={spec.driver_key: 0.0 for spec in CATEGORIES},
                    ),
                    trend=TempoTrend(change24h=0, change7d=0, direction="stable"),
                )

            def _avg(start: datetime, end: datetime) -> Optional[float]:
                value = db.execute(
                    select(func.avg(TempoScore.score)).where(
                        TempoScore.ts > start, TempoScore.ts <= end
                    )
                ).scalar_one()
                return float(value) if value is not None else None

            day, week = timedelta(days=1), timedelta(days=7)
            change24h = _change(_avg(now - day, now), _avg(now - 2 * day, now - day))
            change7d = _change(_avg(now - week, now), _avg(now - 2 * week, now - week))

            drivers = latest.drivers or composite_score(
                {
                    "flights": latest.flight_count,
                    "ships": latest.ship_count,
                    "notams": latest.notam_count,
                    "exercises": latest.exercise_count,
                }
            )[1]
            current = TempoCurrent(
                score=latest.score,
                timestamp=latest.ts,
                status=status_band(latest.score),
                drivers=drivers,
            )

        direction = "stable"
        if abs(change24h) > 5:
            direction = "increasing" if change24h > 0 else "decreasing"
        return TempoIndexResponse(
            current=current,
            trend=TempoTrend(change24h=change24h, change7d=change7d, direction=direction),
        )

    def history(
        self,
        days: int = 7,
        resolution: Literal["hour", "day"] = "hour",
        now: Optional[datetime] = None,
    ) -> TempoHistoryResponse:
        """Scores of the last ``days`` days grouped into hour or day buckets."""

        now = now or self._clock()
        with self.session_factory() as db:
            rows = (
                db.execute(
                    select(TempoScore)
                    .where(TempoScore.ts > now - timedelta(days=days))
                    .order_by(TempoScore.ts.asc())
                )
                .scalars()
                .all()
            )

        buckets: OrderedDict[datetime, list[TempoScore]] = OrderedDict()
        for row in rows:
            key = truncate_to_hour(row.ts)
            if resolution == "day":
                key = key.replace(hour=0)
            buckets.setdefault(key, []).append(row)

        points = []
        for period, members in buckets.items():
            scores = [member.score for member in members]
            points.append(
                TempoHistoryPoint(
                    timestamp=period,
                    score=TempoScoreRange(
                        average=round(sum(scores) / len(scores), 2),
                        minimum=round(min(scores), 2),
                        maximum=round(max(scores), 2),
                    ),
                    activity=TempoActivity(
                        flights=sum(member.flight_count or 0 for member in members),
                        ships=sum(member.ship_count or 0 for member in members),
                        notams=sum(member.notam_count or 0 for member in members),
                        exercises=sum(member.exercise_count or 0 for member in members),
                    ),
                )
            )
        return TempoHistoryResponse(time_range=f"{days} days", resolution=resolution, data=points)


def _change(current: Optional[float], previous: Optional[float]) -> float:
    if current is None or previous is None:
        return 0.0
    return round(current - previous, 2)


__all__ = [
    "CATEGORIES",
    "TempoComputation",
    "TempoScorer",
    "category_score",
    "composite_score",
    "status_band",
    "truncate_to_hour",
]
