import asyncio
import logging
import threading
from datetime import timedelta

import httpx
import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from conftest import NOW
from forceflow.db_models import Asset, FlightEvent
from forceflow.ingestors.credentials import OpenSkyCredentialManager
from forceflow.ingestors.opensky import FeedSnapshot, OpenSkyFeedFetcher
from forceflow.services import ingestion as ingestion_module
from forceflow.services.ingestion import (
    BatchSummary,
    CycleStatus,
    IngestionService,
    RecordOutcome,
)


def _fetcher_for(handler) -> OpenSkyFeedFetcher:
    transport = httpx.MockTransport(handler)
    return OpenSkyFeedFetcher(
        base_url="https://opensky.example.test/api",
        credentials=OpenSkyCredentialManager(client_id="", client_secret="", transport=transport),
        username="",
        password="",
        transport=transport,
    )


def _serving(states):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"time": 1, "states": states})

    return handler


def _service(fetcher, session_factory) -> IngestionService:
    return IngestionService(fetcher=fetcher, session_factory=session_factory, clock=lambda: NOW)


def _count(session_factory, model) -> int:
    with session_factory() as db:
        return db.scalar(select(func.count()).select_from(model))


@pytest.mark.anyio
async def test_cycle_stores_only_records_of_interest(session_factory, make_state):
    states = [
        make_state("43c001", "RRR4421"),
        make_state("aabbcc", "SPEEDBIRD123", country="United States"),
    ]
    service = _service(_fetcher_for(_serving(states)), session_factory)

    report = await service.run_cycle()

    assert report.status is CycleStatus.COMPLETED
    assert report.summary.total == 2
    assert report.summary.stored == 1
    assert report.summary.skipped == 1
    assert service.last_run == NOW
    assert service.running is False

    with session_factory() as db:
        asset = db.scalars(select(Asset)).one()
        assert asset.code == "43C001"
        assert asset.callsign == "RRR4421"
        assert asset.country_code == "GB"
        event = db.scalars(select(FlightEvent)).one()
        assert event.asset_id == asset.id
        assert event.alt == 3658


@pytest.mark.anyio
async def test_repeated_snapshot_is_idempotent(session_factory, make_state):
    service = _service(_fetcher_for(_serving([make_state()])), session_factory)

    await service.run_cycle()
    await service.run_cycle()

    assert _count(session_factory, Asset) == 1
    assert _count(session_factory, FlightEvent) == 1


@pytest.mark.anyio
async def test_callsign_change_updates_existing_asset(session_factory, make_state):
    first = _service(_fetcher_for(_serving([make_state(callsign="RRR1")])), session_factory)
    await first.run_cycle()

    later = make_state(callsign="ASCOT9", last_contact=make_state()[4] + 10)
    second = _service(_fetcher_for(_serving([later])), session_factory)
    await second.run_cycle()

    with session_factory() as db:
        asset = db.scalars(select(Asset)).one()
        assert asset.callsign == "ASCOT9"
        assert db.scalar(select(func.count()).select_from(FlightEvent)) == 2


@pytest.mark.anyio
async def test_malformed_record_does_not_abort_batch(session_factory, make_state):
    states = [make_state(f"43c{i:03x}", f"RRR{i}") for i in range(50)]
    states[17] = make_state("43cfff", "RRR999", lat=None)
    service = _service(_fetcher_for(_serving(states)), session_factory)

    report = await service.run_cycle()

    assert report.summary.stored == 49
    assert report.summary.rejected == 1
    rejected = [r for r in report.summary.results if r.outcome is RecordOutcome.REJECTED]
    assert rejected[0].icao24 == "43CFFF"
    assert rejected[0].reason == "missing position"
    assert _count(session_factory, FlightEvent) == 49


@pytest.mark.anyio
async def test_persistence_failure_isolated_to_one_record(session_factory, make_state, monkeypatch):
    real_upsert = ingestion_module.upsert_flight_event

    def flaky_upsert(db, asset_id, state):
        if state.icao24 == "43C002":
            raise OperationalError("INSERT INTO flight_events", {}, Exception("disk I/O error"))
        return real_upsert(db, asset_id, state)

    monkeypatch.setattr(ingestion_module, "upsert_flight_event", flaky_upsert)
    states = [
        make_state("43c001", "RRR1"),
        make_state("43c002", "RRR2"),
        make_state("43c003", "RRR3"),
    ]
    service = _service(_fetcher_for(_serving(states)), session_factory)

    report = await service.run_cycle()

    assert report.status is CycleStatus.COMPLETED
    assert report.summary.stored == 2
    assert report.summary.failed == 1
    failed = [r for r in report.summary.results if r.outcome is RecordOutcome.FAILED]
    assert failed[0].icao24 == "43C002"
    with session_factory() as db:
        codes = set(db.scalars(select(Asset.code)))
    # The asset created in the failed record's transaction is rolled back with it
    assert codes == {"43C001", "43C003"}


@pytest.mark.anyio
async def test_fetch_failure_clears_flag_and_keeps_last_run(session_factory, make_state):
    responses = iter(
        [
            httpx.Response(503, text="unavailable"),
            httpx.Response(200, json={"states": [make_state()]}),
        ]
    )

    def handler(request: httpx.Request) -> httpx.Response:
        return next(responses)

    service = _service(_fetcher_for(handler), session_factory)

    failed = await service.run_cycle()

    assert failed.status is CycleStatus.FAILED
    assert "transport_error" in failed.error
    assert service.running is False
    assert service.last_run is None

    recovered = await service.run_cycle()

    assert recovered.status is CycleStatus.COMPLETED
    assert service.last_run == NOW


@pytest.mark.anyio
async def test_rate_limited_cycle_does_not_advance_last_run(session_factory):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429)

    service = _service(_fetcher_for(handler), session_factory)

    report = await service.run_cycle()

    assert report.status is CycleStatus.RATE_LIMITED
    assert service.last_run is None
    assert _count(session_factory, FlightEvent) == 0


class BlockingFetcher:
    """Fetcher that parks inside fetch_snapshot until released."""

    def __init__(self):
        self.calls = 0
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_snapshot(self, bounds):
        self.calls += 1
        self.entered.set()
        await self.release.wait()
        return FeedSnapshot()


@pytest.mark.anyio
async def test_overlapping_cycle_is_skipped(session_factory):
    fetcher = BlockingFetcher()
    service = _service(fetcher, session_factory)

    first = asyncio.create_task(service.run_cycle())
    await fetcher.entered.wait()
    assert service.running is True

    skipped = await service.run_cycle()

    assert skipped.status is CycleStatus.SKIPPED
    assert fetcher.calls == 1

    fetcher.release.set()
    completed = await first

    assert completed.status is CycleStatus.COMPLETED
    assert service.running is False


@pytest.mark.anyio
async def test_cancelled_cycle_clears_running_flag(session_factory):
    fetcher = BlockingFetcher()
    service = _service(fetcher, session_factory)

    task = asyncio.create_task(service.run_cycle())
    await fetcher.entered.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    assert service.running is False


@pytest.mark.anyio
async def test_status_reports_auth_and_last_cycle(session_factory, make_state):
    service = _service(_fetcher_for(_serving([make_state()])), session_factory)

    before = service.status()
    assert before.running is False
    assert before.last_run is None
    assert before.authentication.method == "anonymous"
    assert before.authentication.oauth2_configured is False
    assert before.last_cycle is None

    await service.run_cycle()
    after = service.status()

    assert after.last_run == NOW
    assert after.bounds.lamin == 49.5
    assert after.last_cycle.status == "completed"
    assert after.last_cycle.stored == 1


@pytest.mark.anyio
async def test_out_of_range_number_does_not_abort_batch(session_factory, make_state):
    states = [
        make_state("43c001", "RRR1"),
        make_state("43c002", "RRR2", velocity=10**400),
        make_state("43c003", "RRR3", lat=10**400),
        make_state("43c004", "RRR4"),
    ]
    service = _service(_fetcher_for(_serving(states)), session_factory)

    report = await service.run_cycle()

    assert report.status is CycleStatus.COMPLETED
    assert report.summary.stored == 3
    assert report.summary.rejected == 1
    assert service.last_run == NOW
    with session_factory() as db:
        velocity = db.scalar(
            select(FlightEvent.velocity)
            .join(Asset, Asset.id == FlightEvent.asset_id)
            .where(Asset.code == "43C002")
        )
    assert velocity is None


@pytest.mark.anyio
async def test_unexpected_record_error_fails_only_that_record(
    session_factory, make_state, monkeypatch
):
    real_normalize = ingestion_module.normalize_state

    def exploding_normalize(raw, **kwargs):
        if raw[0] == "43c002":
            raise TypeError("unexpected shape")
        return real_normalize(raw, **kwargs)

    monkeypatch.setattr(ingestion_module, "normalize_state", exploding_normalize)
    states = [
        make_state("43c001", "RRR1"),
        make_state("43c002", "RRR2"),
        make_state("43c003", "RRR3"),
    ]
    service = _service(_fetcher_for(_serving(states)), session_factory)

    report = await service.run_cycle()

    assert report.status is CycleStatus.COMPLETED
    assert report.summary.stored == 2
    assert report.summary.failed == 1


class ImmediateFetcher:
    def __init__(self, states):
        self.states = states

    async def fetch_snapshot(self, bounds):
        return FeedSnapshot(states=list(self.states))


@pytest.mark.anyio
async def test_cancelled_cycle_keeps_flag_until_writes_finish(session_factory, make_state):
    service = _service(ImmediateFetcher([make_state()]), session_factory)
    entered = threading.Event()
    release = threading.Event()
    active = []
    peak = []

    def slow_process_states(states, now):
        active.append(1)
        peak.append(len(active))
        entered.set()
        release.wait(5)
        active.pop()
        return BatchSummary()

    service.process_states = slow_process_states

    first = asyncio.create_task(service.run_cycle())
    await asyncio.to_thread(entered.wait, 5)
    first.cancel()
    with pytest.raises(asyncio.CancelledError):
        await first

    assert service.running is True
    overlapping = await service.run_cycle()
    assert overlapping.status is CycleStatus.SKIPPED

    release.set()
    for _ in range(200):
        if not service.running:
            break
        await asyncio.sleep(0.01)
    assert service.running is False

    entered.clear()
    follow_up = await service.run_cycle()

    assert follow_up.status is CycleStatus.COMPLETED
    assert max(peak) == 1


def test_zero_freshness_tolerances_are_respected(session_factory):
    service = IngestionService(
        fetcher=ImmediateFetcher([]),
        session_factory=session_factory,
        max_future_skew=timedelta(0),
        max_age=timedelta(0),
    )

    assert service.max_future_skew == timedelta(0)
    assert service.max_age == timedelta(0)


def test_civil_rejections_log_at_debug(session_factory, make_state, caplog):
    service = _service(ImmediateFetcher([]), session_factory)
    states = [
        make_state("aabbcc", "EZY12", lat=None),
        make_state("43c001", "RRR1", lat=None),
    ]

    with caplog.at_level(logging.DEBUG, logger="forceflow.ingestion"):
        summary = service.process_states(states, NOW)

    assert summary.rejected == 2
    levels = {
        record.args[0]: record.levelno
        for record in caplog.records
        if record.msg.startswith("Rejected state")
    }
    assert levels == {"AABBCC": logging.DEBUG, "43C001": logging.WARNING}
