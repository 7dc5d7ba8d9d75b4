"""
Tenant Config Store
Per-tenant encrypted configuration files: {data_dir}/tenants/{tenant_id}/config.json
"""
import copy
import json
import logging
import os
from typing import Any, Dict, Optional

from callpilot.core.exceptions import DecryptionError
from callpilot.domain.models.tenant_config import SENSITIVE_FIELDS
from callpilot.infrastructure.encryption import CredentialEncryptionService
from callpilot.utils.clock import utcnow
from callpilot.utils.tenant_filter import tenant_dir

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "config.json"
CONFIG_VERSION = 1


class TenantConfigStore:
    """
    Persists tenant config sections with every sensitive field encrypted
    individually. Decryption happens per lookup and only for the tenant asked for.
    """

    def __init__(self, data_dir: str, encryption: CredentialEncryptionService):
        self._data_dir = data_dir
        self._encryption = encryption

    def _path(self, tenant_id: str):
        return tenant_dir(self._data_dir, tenant_id) / CONFIG_FILENAME

    def exists(self, tenant_id: str) -> bool:
        return self._path(tenant_id).exists()

    def save(self, tenant_id: str, sections: Dict[str, Any]) -> None:
        """Encrypt sensitive fields and write the config atomically."""
        data = copy.deepcopy(sections)
        for section, key in SENSITIVE_FIELDS:
            value = data.get(section, {}).get(key)
            if value:
                data[section][key] = self._encryption.encrypt(value)

        path = self._path(tenant_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        document = {
            "version": CONFIG_VERSION,
            "tenant_id": tenant_id,
            "updated_at": utcnow().isoformat(),
            "config": data,
        }

        tmp_path = path.with_suffix(".json.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
        os.replace(tmp_path, path)

        logger.info(f"Stored encrypted config for tenant {tenant_id}")

    def load(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        """
        Load and decrypt a tenant's config sections.

        Returns:
            Config sections, or None if the tenant has no stored config

        Raises:
            DecryptionError: If the file or any encrypted field is unreadable
        """
        path = self._path(tenant_id)
        if not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Stored config for tenant {tenant_id} is unreadable: {type(e).__name__}")
            raise DecryptionError(f"Stored config for tenant {tenant_id} is unreadable")

        if not isinstance(document, dict) or document.get("tenant_id") != tenant_id:
            raise DecryptionError(f"Stored config for tenant {tenant_id} is unreadable")

        data = document.get("config") or {}
        if not isinstance(data, dict) or not all(isinstance(s, dict) for s in data.values()):
            logger.error(f"Stored config for tenant {tenant_id} has malformed sections")
            raise DecryptionError(f"Stored config for tenant {tenant_id} is unreadable")

        for section, key in SENSITIVE_FIELDS:
            value = data.get(section, {}).get(key)
            if value:
                data[section][key] = self._encryption.decrypt(value)

        return data

    def delete(self, tenant_id: str) -> bool:
        path = self._path(tenant_id)
        if not path.exists():
            return False
        path.unlink()
        logger.info(f"Removed stored config for tenant {tenant_id}")
        return True
