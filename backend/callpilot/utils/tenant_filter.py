"""
Tenant Filter Utility
Shared helpers for keeping every query and file path scoped to one tenant
"""
import re
from pathlib import Path
from typing import Any

from callpilot.core.exceptions import CallNotFoundError

TENANT_ID_PATTERN = re.compile(r"[A-Za-z0-9_-]{1,64}")


def is_valid_tenant_id(tenant_id: Any) -> bool:
    """Tenant ids become directory names, so only a safe alphabet is accepted."""
    return isinstance(tenant_id, str) and bool(TENANT_ID_PATTERN.fullmatch(tenant_id))


def ensure_tenant_id(tenant_id: Any) -> str:
    """
    Validate a tenant id from a request path.

    Invalid ids are reported exactly like unknown calls so the response
    never hints at which tenants exist.

    Raises:
        CallNotFoundError: If the id is not a valid tenant identifier
    """
    if not is_valid_tenant_id(tenant_id):
        raise CallNotFoundError()
    return tenant_id


def tenant_dir(data_dir: str, tenant_id: str) -> Path:
    """Isolated storage directory for a tenant: {data_dir}/tenants/{tenant_id}"""
    ensure_tenant_id(tenant_id)
    return Path(data_dir) / "tenants" / tenant_id


def apply_tenant_filter(query: Any, model: Any, tenant_id: str, column: str = "tenant_id") -> Any:
    """
    Apply tenant filtering to a SQLAlchemy query.

    Each tenant already has its own database file; the extra filter keeps
    a misrouted session from ever returning another tenant's rows.

    Usage:
        query = db.query(ConversationRecord)
        query = apply_tenant_filter(query, ConversationRecord, self.tenant_id)
    """
    return query.filter(getattr(model, column) == tenant_id)
