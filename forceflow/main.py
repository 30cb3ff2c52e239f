from __future__ import annotations

import contextlib
import logging
import time

from fastapi import FastAPI, Request

from forceflow.api import api_router
from forceflow.config import settings
from forceflow.db import init_db
from forceflow.services import IngestionService, PeriodicScheduler, TempoScorer

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger("forceflow")


@contextlib.asynccontextmanager
async def lifespan(app: FastAPI):
    """Own the ingestion service, tempo scorer and scheduler for the app's lifetime."""

    init_db()
    logger.info("Database initialized")

    app.state.ingestion_service = IngestionService()
    app.state.tempo_scorer = TempoScorer()
    scheduler = PeriodicScheduler()
    app.state.scheduler = scheduler

    if settings.ingestion_enabled:
        scheduler.add_job(
            "opensky-ingestion",
            settings.ingestion_interval_seconds,
            app.state.ingestion_service.run_cycle,
            initial_delay=settings.ingestion_initial_delay_seconds,
        )
    else:
        logger.info("OpenSky ingestion disabled; status endpoint only")

    if settings.tempo_enabled:
        scheduler.add_job(
            "tempo-score",
            settings.tempo_interval_seconds,
            app.state.tempo_scorer.run_scheduled,
        )

    scheduler.start()

    try:
        yield
    finally:
        await scheduler.stop()
        app.state.ingestion_service.close()


app = FastAPI(title="ForceFlow UK", lifespan=lifespan)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log basic request information for observability."""

    start_time = time.time()
    response = await call_next(request)
    duration_ms = (time.time() - start_time) * 1000
    logger.info(
        "HTTP %s %s -> %s (%.2f ms)",
        request.method,
        request.url.path,
        response.status_code,
        duration_ms,
    )
    return response


app.include_router(api_router)


@app.get("/", summary="Root")
def read_root() -> dict[str, str]:
    return {"message": "ForceFlow UK ingestion service is running"}
