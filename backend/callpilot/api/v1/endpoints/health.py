"""
Health Check Endpoint
Provides health status for Docker health checks and monitoring
"""
from typing import Any, Dict

from fastapi import APIRouter, Depends, status

from callpilot.api.v1.dependencies import get_registry
from callpilot.domain.services.session_registry import SessionRegistry
from callpilot.utils.clock import utcnow

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(registry: SessionRegistry = Depends(get_registry)) -> Dict[str, Any]:
    """
    Health check endpoint for Docker and monitoring systems.

    Reports process-wide session counts only, never tenant data.
    """
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat() + "Z",
        "service": "callpilot",
        **registry.stats(),
    }
