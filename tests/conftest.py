import os
import tempfile
from datetime import datetime, timezone

# Must be set before forceflow.config / forceflow.db are imported
os.environ.setdefault("FORCEFLOW_USE_SSM", "false")
os.environ.setdefault("FORCEFLOW_ENV", "test")
os.environ.setdefault("FORCEFLOW_INGESTION_ENABLED", "false")
os.environ.setdefault("FORCEFLOW_TEMPO_ENABLED", "false")
os.environ.setdefault(
    "FORCEFLOW_DB_URL",
    f"sqlite:///{tempfile.gettempdir()}/forceflow-test-{os.getpid()}.db",
)

import pytest
from sqlalchemy.orm import sessionmaker

from forceflow.db import init_db, make_engine

NOW = datetime(2025, 3, 1, 12, 30, 0)


def epoch(value: datetime) -> float:
    return value.replace(tzinfo=timezone.utc).timestamp()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def engine(tmp_path):
    engine = make_engine(f"sqlite:///{tmp_path}/forceflow.db")
    init_db(engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def make_state():
    """Build a raw OpenSky state array; last_contact defaults to NOW - 5 s."""

    def _make_state(
        icao24="43c001",
        callsign="RRR4421 ",
        *,
        country="United Kingdom",
        last_contact=None,
        lon=-0.1,
        lat=51.5,
        altitude=3657.6,
        on_ground=False,
        velocity=164.6,
        track=90.0,
        vertical_rate=2.0,
    ):
        if last_contact is None:
            last_contact = epoch(NOW) - 5
        return [
            icao24,
            callsign,
            country,
            last_contact - 1 if isinstance(last_contact, (int, float)) else None,
            last_contact,
            lon,
            lat,
            altitude,
            on_ground,
            velocity,
            track,
            vertical_rate,
            None,
            3700.0,
            "7000",
            False,
            0,
        ]

    return _make_state
