"""
API Dependencies
Shared services for the endpoints and translation of domain errors to HTTP errors
"""
import logging
from typing import Any, Dict

from fastapi import HTTPException, Request, status

from callpilot.core.config import Settings
from callpilot.core.exceptions import (
    CallbackNotFoundError,
    CallNotFoundError,
    CallPilotError,
    ConfigurationError,
    DecryptionError,
    GatewayError,
    InvalidTransitionError,
    TurnInProgressError,
    WebhookURLError,
)
from callpilot.domain.services.call_session_engine import CallSessionEngine
from callpilot.domain.services.session_registry import SessionRegistry
from callpilot.domain.services.tenant_context import TenantContext
from callpilot.domain.services.webhook_urls import WebhookURLResolver

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_engine(request: Request) -> CallSessionEngine:
    return request.app.state.engine


def get_tenants(request: Request) -> TenantContext:
    return request.app.state.tenants


def get_registry(request: Request) -> SessionRegistry:
    return request.app.state.registry


def get_resolver(request: Request) -> WebhookURLResolver:
    return request.app.state.resolver


async def read_payload(request: Request) -> Dict[str, Any]:
    """
    Webhook body as a dict.

    Vendors post JSON or form-encoded bodies; an empty or unreadable body
    is treated as no payload.
    """
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return dict(form)

    body = await request.body()
    if not body:
        return {}
    try:
        data = await request.json()
    except ValueError:
        logger.warning(f"Ignoring non-JSON webhook body on {request.url.path}")
        return {}
    if not isinstance(data, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object",
        )
    return data


def http_error(error: CallPilotError) -> HTTPException:
    """
    Map a domain error to the HTTP error the API reports for it.

    Not-found responses never say whether the id exists under another tenant.
    """
    if isinstance(error, ConfigurationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=error.to_dict())
    if isinstance(error, CallNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Call not found")
    if isinstance(error, CallbackNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(error))
    if isinstance(error, (TurnInProgressError, InvalidTransitionError)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(error))
    if isinstance(error, GatewayError):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "gateway_error", "provider": error.provider, "operation": error.operation},
        )
    if isinstance(error, DecryptionError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"type": "decryption_error", "message": "Stored tenant configuration could not be decrypted"},
        )
    if isinstance(error, WebhookURLError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(error))

    logger.error(f"Unmapped service error: {type(error).__name__}: {error}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")
