"""Accessors for the service instances owned by the application lifespan."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from forceflow.services import IngestionService, TempoScorer


def get_ingestion_service(request: Request) -> IngestionService:
    service = getattr(request.app.state, "ingestion_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "ingestion_unavailable", "message": "Ingestion service not started"},
        )
    return service


def get_tempo_scorer(request: Request) -> TempoScorer:
    scorer = getattr(request.app.state, "tempo_scorer", None)
    if scorer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"code": "tempo_unavailable", "message": "Tempo scorer not started"},
        )
    return scorer
