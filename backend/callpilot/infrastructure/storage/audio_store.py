"""
Audio Store
Synthesized agent audio served back to the telephony vendor during a call.
Clips live under {data_dir}/tenants/{tenant_id}/audio/{call_id}/ and are
removed when the call completes.
"""
import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import Optional, Tuple

from callpilot.utils.tenant_filter import tenant_dir

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"[A-Za-z0-9._~-]{1,128}")

MEDIA_TYPES = {
    "mp3": "audio/mpeg",
    "wav": "audio/wav",
}


class AudioStore:
    """File-backed clip storage scoped by tenant and call"""

    def __init__(self, data_dir: str):
        self._data_dir = data_dir

    def _call_dir(self, tenant_id: str, call_id: str) -> Path:
        if not _SAFE_NAME.fullmatch(call_id) or call_id in (".", ".."):
            raise ValueError(f"Unsafe call id: {call_id!r}")
        return tenant_dir(self._data_dir, tenant_id) / "audio" / call_id

    def save(self, tenant_id: str, call_id: str, data: bytes, extension: str = "mp3") -> str:
        """Write a clip and return its clip id."""
        directory = self._call_dir(tenant_id, call_id)
        directory.mkdir(parents=True, exist_ok=True)
        clip_id = f"{uuid.uuid4().hex}.{extension}"
        (directory / clip_id).write_bytes(data)
        logger.debug(f"Saved {len(data)} byte clip {clip_id} for call {call_id}")
        return clip_id

    def load(self, tenant_id: str, call_id: str, clip_id: str) -> Optional[Tuple[bytes, str]]:
        """Return (data, media_type), or None when the clip does not exist."""
        if not _SAFE_NAME.fullmatch(clip_id) or clip_id.startswith("."):
            return None
        try:
            path = self._call_dir(tenant_id, call_id) / clip_id
        except ValueError:
            return None
        if not path.is_file():
            return None
        extension = path.suffix.lstrip(".")
        return path.read_bytes(), MEDIA_TYPES.get(extension, "application/octet-stream")

    def purge_call(self, tenant_id: str, call_id: str) -> None:
        try:
            directory = self._call_dir(tenant_id, call_id)
        except ValueError:
            return
        if directory.exists():
            shutil.rmtree(directory, ignore_errors=True)
            logger.debug(f"Purged audio clips for call {call_id}")
