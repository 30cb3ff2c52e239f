"""API routers for the ForceFlow service."""

from fastapi import APIRouter

from .flights import router as flights_router
from .health import router as health_router
from .ingestion import router as ingestion_router
from .tempo import router as tempo_router

api_router = APIRouter()
api_router.include_router(health_router)
api_router.include_router(ingestion_router)
api_router.include_router(flights_router)
api_router.include_router(tempo_router)

__all__ = ["api_router"]
