import os
from datetime import timedelta

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conftest import NOW
from forceflow.config import settings
from forceflow.db import SessionLocal, get_db, init_db, utcnow
from forceflow.db_models import ApiKey, Asset, FlightEvent
from forceflow.ingestors.credentials import OpenSkyCredentialManager
from forceflow.ingestors.opensky import OpenSkyFeedFetcher
from forceflow.main import app
from forceflow.security import API_KEY_HEADER
from forceflow.security.api_keys import generate_api_key, hash_api_key, key_prefix
from forceflow.services import IngestionService


@pytest.fixture
def client():
    with TestClient(app) as test_client:
        yield test_client


def _mock_service(states) -> IngestionService:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"time": 1, "states": states})

    transport = httpx.MockTransport(handler)
    fetcher = OpenSkyFeedFetcher(
        base_url="https://opensky.example.test/api",
        credentials=OpenSkyCredentialManager(client_id="", client_secret="", transport=transport),
        username="",
        password="",
        transport=transport,
    )
    return IngestionService(fetcher=fetcher, clock=lambda: NOW)


def test_health(client):
    response = client.get("/healthz")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_detailed_health_checks_database(client):
    response = client.get("/healthz/detailed")

    assert response.status_code == 200
    assert response.json()["checks"]["database"] == "healthy"


def test_ingestion_status_before_any_cycle(client):
    response = client.get("/api/v1/ingestion/status")

    assert response.status_code == 200
    body = response.json()
    assert body["service"] == "OpenSky Network"
    assert body["running"] is False
    assert body["last_run"] is None
    assert body["bounds"] == {"lamin": 49.5, "lamax": 61.0, "lomin": -11.0, "lomax": 2.0}
    assert body["authentication"]["method"] in {"oauth2", "basic_auth", "anonymous"}


def test_manual_run_reports_cycle(client, make_state):
    app.state.ingestion_service = _mock_service(
        [make_state("43c0aa", "RESCUE11"), make_state("aabbcc", "EZY12")]
    )

    response = client.post("/api/v1/ingestion/run")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["stored"] == 1
    assert body["skipped"] == 1

    status_body = client.get("/api/v1/ingestion/status").json()
    assert status_body["last_cycle"]["stored"] == 1
    assert status_body["last_run"] is not None


def test_tempo_calculate_then_index(client):
    calculated = client.post("/api/v1/tempo/calculate")

    assert calculated.status_code == 200
    body = calculated.json()
    assert 0 <= body["score"] <= 100
    assert set(body["components"]) == {"flights", "ships", "notams", "exercises"}

    index = client.get("/api/v1/tempo/index").json()
    assert index["current"]["score"] == body["score"]
    assert index["trend"]["direction"] in {"increasing", "decreasing", "stable"}


def test_tempo_history_shape(client):
    client.post("/api/v1/tempo/calculate")

    response = client.get("/api/v1/tempo/history", params={"days": 1, "resolution": "day"})

    assert response.status_code == 200
    body = response.json()
    assert body["timeRange"] == "1 days"
    assert body["resolution"] == "day"
    assert len(body["data"]) >= 1


def test_tempo_history_validates_query(client):
    assert client.get("/api/v1/tempo/history", params={"days": 0}).status_code == 422
    assert client.get("/api/v1/tempo/history", params={"resolution": "week"}).status_code == 422


@pytest.fixture
def auth_context(monkeypatch):
    monkeypatch.setattr(settings, "forceflow_env", "test")
    monkeypatch.setattr(settings, "require_api_key", True)
    monkeypatch.setattr(settings, "api_key_pepper", "test-pepper-value")

    init_db()
    db = SessionLocal()
    db.query(ApiKey).delete()

    keys = {}
    records = {}
    for role in ("viewer", "analyst", "admin"):
        plaintext_key = generate_api_key(test=True)
        record = ApiKey(
            key_prefix=key_prefix(plaintext_key),
            key_hash=hash_api_key(plaintext_key, settings.api_key_pepper),
            holder_email=f"{role}@example.com",
            holder_label="unit-test",
            role=role,
        )
        db.add(record)
        keys[role] = plaintext_key
        records[role] = record
    db.commit()

    try:
        with TestClient(app) as client:
            yield {"client": client, "keys": keys, "records": records, "db": db}
    finally:
        db.query(ApiKey).delete()
        db.commit()
        db.close()


def test_missing_key_is_rejected(auth_context):
    response = auth_context["client"].get("/api/v1/tempo/history")

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "api_key_missing"


def test_invalid_key_is_rejected(auth_context):
    response = auth_context["client"].get(
        "/api/v1/tempo/history", headers={API_KEY_HEADER: "ff_live_invalid"}
    )

    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "api_key_invalid"


def test_public_index_needs_no_key(auth_context):
    assert auth_context["client"].get("/api/v1/tempo/index").status_code == 200


def test_viewer_can_read_history_but_not_calculate(auth_context):
    headers = {API_KEY_HEADER: auth_context["keys"]["viewer"]}

    history = auth_context["client"].get("/api/v1/tempo/history", headers=headers)
    calculate = auth_context["client"].post("/api/v1/tempo/calculate", headers=headers)

    assert history.status_code == 200
    assert calculate.status_code == 403
    assert calculate.json()["detail"]["code"] == "insufficient_role"


def test_analyst_can_calculate_but_not_run_ingestion(auth_context):
    headers = {API_KEY_HEADER: auth_context["keys"]["analyst"]}

    calculate = auth_context["client"].post("/api/v1/tempo/calculate", headers=headers)
    run = auth_context["client"].post("/api/v1/ingestion/run", headers=headers)

    assert calculate.status_code == 200
    assert run.status_code == 403


def test_valid_key_records_last_use(auth_context):
    headers = {API_KEY_HEADER: auth_context["keys"]["viewer"]}

    auth_context["client"].get("/api/v1/tempo/history", headers=headers)

    db = auth_context["db"]
    record = db.get(ApiKey, auth_context["records"]["viewer"].id)
    db.refresh(record)
    assert record.last_used_at is not None


def test_revoked_key_is_blocked(auth_context):
    db = auth_context["db"]
    record = db.get(ApiKey, auth_context["records"]["viewer"].id)
    record.revoked_at = utcnow()
    db.commit()

    response = auth_context["client"].get(
        "/api/v1/tempo/history", headers={API_KEY_HEADER: auth_context["keys"]["viewer"]}
    )

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "api_key_revoked"


def test_expired_key_is_blocked(auth_context):
    db = auth_context["db"]
    record = db.get(ApiKey, auth_context["records"]["viewer"].id)
    record.expires_at = utcnow() - timedelta(seconds=1)
    db.commit()

    response = auth_context["client"].get(
        "/api/v1/tempo/history", headers={API_KEY_HEADER: auth_context["keys"]["viewer"]}
    )

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "api_key_expired"


def test_test_keys_blocked_in_prod(monkeypatch, auth_context):
    monkeypatch.setattr(settings, "forceflow_env", "prod")

    response = auth_context["client"].get(
        "/api/v1/tempo/history", headers={API_KEY_HEADER: auth_context["keys"]["admin"]}
    )

    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "api_key_test_only"


def _seed_global_track(code, callsign, *minutes_ago):
    init_db()
    with SessionLocal() as db, db.begin():
        asset = db.scalar(select(Asset).where(Asset.code == code))
        if asset is None:
            asset = Asset(type="aircraft", code=code, callsign=callsign)
            db.add(asset)
            db.flush()
        now = utcnow()
        for minutes in minutes_ago:
            db.add(
                FlightEvent(
                    asset_id=asset.id,
                    ts=now - timedelta(minutes=minutes),
                    lat=52.0,
                    lon=-1.0,
                    alt=4000,
                    velocity=180.0,
                    on_ground=False,
                )
            )


def test_recent_flights_lists_military_positions(client):
    _seed_global_track("43CF1A", "ASCOT77", 3)
    _seed_global_track("A1B2C3", "EZY77", 3)

    response = client.get("/api/v1/flights/recent", params={"minutes": 10})

    assert response.status_code == 200
    body = response.json()
    codes = {point["code"] for point in body["data"]}
    assert "43CF1A" in codes
    assert "A1B2C3" not in codes
    assert body["metadata"]["militaryOnly"] is True
    assert body["metadata"]["timeRange"] == "10 minutes"
    assert "onGround" in body["data"][0]

    everyone = client.get("/api/v1/flights/recent", params={"military_only": False}).json()
    assert "A1B2C3" in {point["code"] for point in everyone["data"]}


def test_flight_track_and_missing_track(client):
    _seed_global_track("43CF2B", "RRR7701", 30, 5)

    response = client.get("/api/v1/flights/track/43cf2b", params={"hours": 1})

    assert response.status_code == 200
    body = response.json()
    assert body["aircraft"] == "43CF2B"
    assert body["metadata"]["pointCount"] == 2
    assert body["metadata"]["firstPoint"] == body["track"][0]["timestamp"]
    assert body["metadata"]["lastPoint"] == body["track"][-1]["timestamp"]

    missing = client.get("/api/v1/flights/track/000000")
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "ERR_NOT_FOUND"


def test_flight_stats_shape(client):
    _seed_global_track("43CF3C", "RRR7702", 1)

    response = client.get("/api/v1/flights/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["aircraft"]["total"] >= 1
    assert body["aircraft"]["rafAircraft"] >= 1
    assert body["aircraft"]["activeLast5Min"] >= 1
    assert body["metrics"]["maxVelocity"] >= 180


def test_flight_queries_validate_parameters(client):
    assert client.get("/api/v1/flights/recent", params={"minutes": 0}).status_code == 422
    assert client.get("/api/v1/flights/recent", params={"minutes": 1441}).status_code == 422
    assert client.get("/api/v1/flights/recent", params={"limit": 1001}).status_code == 422
    assert client.get("/api/v1/flights/track/43CF1A", params={"hours": 73}).status_code == 422


def test_flight_routes_require_key(auth_context):
    client = auth_context["client"]

    assert client.get("/api/v1/flights/recent").status_code == 401
    assert client.get("/api/v1/flights/stats").status_code == 401
    headers = {API_KEY_HEADER: auth_context["keys"]["viewer"]}
    assert client.get("/api/v1/flights/stats", headers=headers).status_code == 200


def test_live_and_ready_endpoints(client):
    live = client.get("/healthz/live")
    ready = client.get("/healthz/ready")

    assert live.status_code == 200
    assert live.json()["status"] == "alive"
    assert live.json()["pid"] == os.getpid()
    assert ready.status_code == 200
    assert ready.json()["status"] == "ready"


class _UnreachableDatabase:
    def execute(self, *args, **kwargs):
        raise OperationalError("SELECT 1", {}, Exception("connection refused"))


def test_readiness_reports_unreachable_database(client):
    app.dependency_overrides[get_db] = lambda: _UnreachableDatabase()
    try:
        response = client.get("/healthz/ready")
    finally:
        app.dependency_overrides.pop(get_db, None)

    assert response.status_code == 503
    assert response.json()["status"] == "not ready"
    assert response.json()["error"] == "Database not accessible"
