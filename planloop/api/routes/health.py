"""
Health Check Routes
"""

from typing import Any

from fastapi import APIRouter, Depends

from planloop.api.dependencies import get_app_settings, get_components
from planloop.config.settings import Settings

router = APIRouter()


@router.get("/health")
async def health_check(settings: Settings = Depends(get_app_settings)) -> dict[str, Any]:
    """Basic health check."""
    return {"status": "healthy", "version": settings.app_version}


@router.get("/health/ready")
async def readiness_check(
    components: dict[str, Any] = Depends(get_components),
) -> dict[str, Any]:
    """Ready once the orchestrator is wired."""
    ready = "orchestrator" in components
    return {"status": "ready" if ready else "starting"}
