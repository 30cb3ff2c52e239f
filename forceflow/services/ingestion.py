"""One fetch -> normalize -> classify -> resolve -> upsert pass over the OpenSky feed."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
import logging
from typing import Any, Callable, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forceflow.config import settings
from forceflow.db import SessionLocal, utcnow
from forceflow.errors import AuthError, PersistenceError, RecordValidationError, TransportError
from forceflow.ingestors.classifier import Classifier, PrefixRule, build_rules
from forceflow.ingestors.normalizer import normalize_state
from forceflow.ingestors.opensky import OpenSkyFeedFetcher
from forceflow.models.air_traffic import BoundingBox, StateVector
from forceflow.models.reports import AuthenticationStatus, CycleSummary, IngestionStatus
from forceflow.services.assets import resolve_asset
from forceflow.services.events import upsert_flight_event

logger = logging.getLogger("forceflow.ingestion")


class RecordOutcome(str, Enum):
    STORED = "stored"
    REJECTED = "rejected"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class RecordResult:
    """What happened to one raw state in a batch."""

    outcome: RecordOutcome
    icao24: Optional[str] = None
    reason: Optional[str] = None
    asset_id: Optional[str] = None


@dataclass
class BatchSummary:
    results: list[RecordResult] = field(default_factory=list)

    def add(self, result: RecordResult) -> None:
        self.results.append(result)

    def count(self, outcome: RecordOutcome) -> int:
        return sum(1 for result in self.results if result.outcome is outcome)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def stored(self) -> int:
        return self.count(RecordOutcome.STORED)

    @property
    def rejected(self) -> int:
        return self.count(RecordOutcome.REJECTED)

    @property
    def skipped(self) -> int:
        return self.count(RecordOutcome.SKIPPED)

    @property
    def failed(self) -> int:
        return self.count(RecordOutcome.FAILED)


class CycleStatus(str, Enum):
    COMPLETED = "completed"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class CycleReport:
    status: CycleStatus
    started_at: datetime
    finished_at: Optional[datetime] = None
    summary: BatchSummary = field(default_factory=BatchSummary)
    error: Optional[str] = None

    def to_summary(self) -> CycleSummary:
        return CycleSummary(
            status=self.status.value,
            started_at=self.started_at,
            finished_at=self.finished_at,
            total=self.summary.total,
            stored=self.summary.stored,
            rejected=self.summary.rejected,
            skipped=self.summary.skipped,
            failed=self.summary.failed,
            error=self.error,
        )


class IngestionService:
    """Own the cross-cycle state of OpenSky ingestion.

    The cached credential lives in the fetcher's credential manager; the
    single-flight flag, last successful run and last report live here. Each
    instance is independent, so tests can build as many as they like.
    """

    def __init__(
        self,
        *,
        fetcher: OpenSkyFeedFetcher | None = None,
        session_factory: Callable[[], Session] | None = None,
        classifier: Classifier | None = None,
        bounds: BoundingBox | None = None,
        max_future_skew: timedelta | None = None,
        max_age: timedelta | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.fetcher = fetcher or OpenSkyFeedFetcher()
        self.session_factory = session_factory or SessionLocal
        self.classifier = classifier or Classifier(
            build_rules(settings.military_hex_prefixes, settings.military_callsign_prefixes)
        )
        self.bounds = bounds or BoundingBox(**settings.bounds)
        self.max_future_skew = (
            max_future_skew
            if max_future_skew is not None
            else timedelta(seconds=settings.max_future_skew_seconds)
        )
        self.max_age = (
            max_age if max_age is not None else timedelta(hours=settings.max_record_age_hours)
        )
        self._clock = clock
        self._running = False
        self._last_run: Optional[datetime] = None
        self._last_report: Optional[CycleReport] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def last_run(self) -> Optional[datetime]:
        return self._last_run

    async def run_cycle(self) -> CycleReport:
        """Run one ingestion cycle unless one is already in progress.

        Never raises for fetch or record failures; the outcome is in the
        returned report. If the cycle is cancelled while records are being
        written, the worker thread runs to completion and the running flag
        stays set until it does, so no second cycle can overlap it.
        """

        if self._running:
            logger.warning("OpenSky ingestion already running, skipping")
            now = self._clock()
            return CycleReport(status=CycleStatus.SKIPPED, started_at=now, finished_at=now)

        self._running = True
        report = CycleReport(status=CycleStatus.FAILED, started_at=self._clock())
        worker: Optional[asyncio.Future] = None
        try:
            snapshot = await self.fetcher.fetch_snapshot(self.bounds)
            if snapshot.rate_limited:
                report.status = CycleStatus.RATE_LIMITED
                logger.info("OpenSky cycle ended early: rate limited")
            else:
                worker = asyncio.ensure_future(
                    asyncio.to_thread(self.process_states, snapshot.states, self._clock())
                )
                report.summary = await asyncio.shield(worker)
                report.status = CycleStatus.COMPLETED
                self._last_run = self._clock()
        except (TransportError, AuthError) as exc:
            report.error = f"{exc.code}: {exc}"
            logger.error("OpenSky data ingestion failed: %s", exc)
        except Exception as exc:  # pragma: no cover
            report.error = f"unexpected: {exc}"
            logger.exception("Unexpected error during OpenSky ingestion")
        finally:
            report.finished_at = self._clock()
            self._last_report = report
            if worker is not None and not worker.done():
                logger.warning("OpenSky cycle cancelled; waiting for in-flight writes to finish")
                worker.add_done_callback(self._release_after_worker)
            else:
                self._running = False
        return report

    def _release_after_worker(self, worker: asyncio.Future) -> None:
        self._running = False
        if worker.cancelled():
            return
        exc = worker.exception()
        if exc is not None:
            logger.error("Detached OpenSky batch failed: %s", exc)
        else:
            logger.info("Detached OpenSky batch finished: %s stored", worker.result().stored)

    def process_states(self, states: list[Any], now: datetime) -> BatchSummary:
        """Process raw states in delivery order, one transaction per record."""

        summary = BatchSummary()
        if not states:
            return summary

        with self.session_factory() as db:
            for raw in states:
                summary.add(self._process_state(db, raw, now))

        logger.info(
            "Stored %s of %s states (%s rejected, %s not of interest, %s errors)",
            summary.stored,
            summary.total,
            summary.rejected,
            summary.skipped,
            summary.failed,
        )
        return summary

    def _raw_of_interest(self, raw: Any, icao24: Optional[str]) -> bool:
        callsign = None
        if isinstance(raw, (list, tuple)) and len(raw) > 1 and isinstance(raw[1], str):
            callsign = raw[1]
        return self.classifier.is_of_interest(icao24, callsign)

    def _process_state(self, db: Session, raw: Any, now: datetime) -> RecordResult:
        try:
            state = normalize_state(
                raw, now=now, max_future_skew=self.max_future_skew, max_age=self.max_age
            )
        except RecordValidationError as exc:
            # Civil traffic is dropped anyway; only military rejections are worth a warning
            level = logging.WARNING if self._raw_of_interest(raw, exc.icao24) else logging.DEBUG
            logger.log(
                level,
                "Rejected state for aircraft %s: %s (last_contact=%r)",
                exc.icao24 or "unknown",
                exc.reason,
                exc.raw_timestamp,
            )
            return RecordResult(RecordOutcome.REJECTED, icao24=exc.icao24, reason=exc.reason)
        except Exception as exc:
            logger.exception("Unexpected error normalizing state %r", raw)
            return RecordResult(RecordOutcome.FAILED, reason=f"{type(exc).__name__}: {exc}")

        rule = self.classifier.match(state.icao24, state.callsign)
        if rule is None:
            return RecordResult(RecordOutcome.SKIPPED, icao24=state.icao24)

        try:
            asset_id = self._persist(db, state, rule)
        except PersistenceError as exc:
            logger.error(
                "Error processing aircraft %s at %s: %s (code: %s)",
                state.icao24,
                state.observed_at.isoformat(),
                exc,
                exc.code,
            )
            return RecordResult(RecordOutcome.FAILED, icao24=state.icao24, reason=str(exc))
        except Exception as exc:  # pragma: no cover
            logger.exception("Unexpected error processing aircraft %s", state.icao24)
            return RecordResult(RecordOutcome.FAILED, icao24=state.icao24, reason=str(exc))

        return RecordResult(RecordOutcome.STORED, icao24=state.icao24, asset_id=asset_id)

    def _persist(self, db: Session, state: StateVector, rule: PrefixRule) -> str:
        try:
            with db.begin():
                asset_id = resolve_asset(
                    db,
                    code=state.icao24,
                    callsign=state.callsign,
                    country_code=state.country_code,
                    asset_type=rule.asset_type,
                )
                upsert_flight_event(db, asset_id, state)
        except SQLAlchemyError as exc:
            code = getattr(exc, "code", None) or "N/A"
            raise PersistenceError(f"{type(exc).__name__} [{code}]: {exc}") from exc
        return asset_id

    def status(self) -> IngestionStatus:
        credentials = self.fetcher.credentials
        return IngestionStatus(
            running=self._running,
            last_run=self._last_run,
            bounds=self.bounds,
            authentication=AuthenticationStatus(
                method=self.fetcher.last_auth_mode or self.fetcher.preferred_auth_mode,
                oauth2_configured=credentials.configured,
                basic_auth_configured=self.fetcher.basic_auth_configured,
                token_valid=credentials.token_valid,
            ),
            last_cycle=self._last_report.to_summary() if self._last_report else None,
        )

    def close(self) -> None:
        """Drop the cached credential; the instance must not be reused afterwards."""

        self.fetcher.credentials.invalidate()
        logger.info("OpenSky ingestion service stopped")


__all__ = [
    "BatchSummary",
    "CycleReport",
    "CycleStatus",
    "IngestionService",
    "RecordOutcome",
    "RecordResult",
]
