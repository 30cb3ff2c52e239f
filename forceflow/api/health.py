"""Health check endpoints."""

import logging
import os

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from forceflow.config import settings
from forceflow.db import get_db, utcnow

router = APIRouter()

logger = logging.getLogger("forceflow.health")


@router.get("/healthz", summary="Health check")
def health_check() -> dict[str, str]:
    """Simple liveness check."""
    return {"status": "ok", "env": settings.forceflow_env}


@router.get("/healthz/detailed", summary="Health check including the database")
def detailed_health_check(db: Session = Depends(get_db)) -> JSONResponse:
    checks = {"database": "healthy"}
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Database health check failed: %s", exc)
        checks["database"] = "unhealthy"

    healthy = checks["database"] == "healthy"
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "timestamp": utcnow().isoformat(),
            "env": settings.forceflow_env,
            "checks": checks,
        },
    )


@router.get("/healthz/ready", summary="Readiness check")
def readiness_check(db: Session = Depends(get_db)) -> JSONResponse:
    """Ready once the database answers a trivial query."""
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.error("Readiness check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={
                "status": "not ready",
                "error": "Database not accessible",
                "timestamp": utcnow().isoformat(),
            },
        )
    return JSONResponse(content={"status": "ready", "timestamp": utcnow().isoformat()})


@router.get("/healthz/live", summary="Liveness check with process id")
def liveness_check() -> dict:
    return {"status": "alive", "timestamp": utcnow().isoformat(), "pid": os.getpid()}
