"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.health_dashboard.api.v1 import dashboard

router = APIRouter(prefix="/api/v1")

router.include_router(dashboard.router)
