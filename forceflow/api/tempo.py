"""Tempo index endpoints."""

from __future__ import annotations

import asyncio
import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.exc import SQLAlchemyError

from forceflow.api.dependencies import get_tempo_scorer
from forceflow.models import TempoCalculationResponse, TempoHistoryResponse, TempoIndexResponse
from forceflow.security import require_api_key, require_role
from forceflow.services import TempoScorer

router = APIRouter(prefix="/api/v1/tempo", tags=["tempo"])

logger = logging.getLogger("forceflow.api.tempo")


def _store_error(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"code": code, "message": message},
    )


@router.get("/index", response_model=TempoIndexResponse, summary="Current tempo index")
def tempo_index(scorer: TempoScorer = Depends(get_tempo_scorer)) -> TempoIndexResponse:
    try:
        return scorer.current_index()
    except SQLAlchemyError as exc:
        logger.error("Failed to fetch tempo index: %s", exc)
        raise _store_error("ERR_TEMPO_FETCH_FAILED", "Failed to retrieve tempo index") from exc


@router.get(
    "/history",
    response_model=TempoHistoryResponse,
    summary="Tempo history",
    dependencies=[Depends(require_api_key)],
)
def tempo_history(
    days: int = Query(default=7, ge=1, le=90, description="Lookback window in days"),
    resolution: Literal["hour", "day"] = Query(default="hour"),
    scorer: TempoScorer = Depends(get_tempo_scorer),
) -> TempoHistoryResponse:
    try:
        return scorer.history(days=days, resolution=resolution)
    except SQLAlchemyError as exc:
        logger.error("Failed to fetch tempo history: %s", exc)
        raise _store_error("ERR_TEMPO_HISTORY_FAILED", "Failed to retrieve tempo history") from exc


@router.post(
    "/calculate",
    response_model=TempoCalculationResponse,
    summary="Compute and store the score for the current hour",
    dependencies=[Depends(require_role("admin", "analyst"))],
)
async def calculate_tempo(
    scorer: TempoScorer = Depends(get_tempo_scorer),
) -> TempoCalculationResponse:
    try:
        result = await asyncio.to_thread(scorer.compute_and_store)
    except SQLAlchemyError as exc:
        logger.error("Failed to calculate tempo score: %s", exc)
        raise _store_error(
            "ERR_TEMPO_CALCULATION_FAILED", "Failed to calculate tempo score"
        ) from exc
    return result.to_response()
