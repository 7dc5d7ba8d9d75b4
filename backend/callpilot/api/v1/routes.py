"""
API Router
Combines all endpoint routers
"""
from fastapi import APIRouter

from callpilot.api.v1.endpoints import tenant_config, voice

api_router = APIRouter()

api_router.include_router(tenant_config.router)
api_router.include_router(voice.router)
