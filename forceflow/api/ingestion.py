"""Ingestion status and manual trigger endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from forceflow.api.dependencies import get_ingestion_service
from forceflow.models import CycleSummary, IngestionStatus
from forceflow.security import require_role
from forceflow.services import IngestionService

router = APIRouter(prefix="/api/v1/ingestion", tags=["ingestion"])

logger = logging.getLogger("forceflow.api.ingestion")


@router.get("/status", response_model=IngestionStatus, summary="OpenSky ingestion status")
def ingestion_status(
    service: IngestionService = Depends(get_ingestion_service),
) -> IngestionStatus:
    return service.status()


@router.post(
    "/run",
    response_model=CycleSummary,
    summary="Run one ingestion cycle now",
    dependencies=[Depends(require_role("admin"))],
)
async def run_ingestion_cycle(
    service: IngestionService = Depends(get_ingestion_service),
) -> CycleSummary:
    """Trigger a cycle outside the schedule; a no-op if one is already running."""

    report = await service.run_cycle()
    logger.info("Manual ingestion cycle finished with status %s", report.status.value)
    return report.to_summary()
