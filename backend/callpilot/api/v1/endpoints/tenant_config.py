"""
Tenant Configuration Endpoints
Store, inspect and remove a tenant's encrypted provider configuration
"""
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status

from callpilot.api.v1.dependencies import get_tenants, http_error, read_payload
from callpilot.core.exceptions import CallPilotError
from callpilot.domain.services.tenant_context import TenantContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/voice/{tenant_id}/config", tags=["tenant-config"])


@router.put("")
async def put_tenant_config(
    tenant_id: str,
    request: Request,
    tenants: TenantContext = Depends(get_tenants),
) -> Dict[str, Any]:
    """
    Replace the tenant's stored config.

    Body holds the telephony, llm, voice and agent sections (optionally
    wrapped in "config"). Secrets are encrypted before they are written and
    only masked values are returned.
    """
    payload = await read_payload(request)
    try:
        config = await tenants.update_config(tenant_id, payload)
    except CallPilotError as e:
        raise http_error(e)

    logger.info(f"Stored configuration for tenant {tenant_id}")
    return {"tenant_id": tenant_id, "config": config.redacted()}


@router.get("")
async def get_tenant_config(
    tenant_id: str,
    tenants: TenantContext = Depends(get_tenants),
) -> Dict[str, Any]:
    """The tenant's stored config with secrets masked."""
    try:
        config = tenants.get_config(tenant_id)
    except CallPilotError as e:
        raise http_error(e)

    if config is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant configuration not found")
    return {"tenant_id": tenant_id, "config": config.redacted()}


@router.delete("", status_code=status.HTTP_204_NO_CONTENT)
async def delete_tenant_config(
    tenant_id: str,
    tenants: TenantContext = Depends(get_tenants),
) -> None:
    try:
        removed = tenants.remove_config(tenant_id)
    except CallPilotError as e:
        raise http_error(e)

    if not removed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Tenant configuration not found")
    logger.info(f"Removed configuration for tenant {tenant_id}")
