"""
Session Models
Runtime state the process keeps for a live call
"""
import asyncio
from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from callpilot.utils.clock import utcnow


class CallSession(BaseModel):
    """
    Runtime state for an active call.

    Conversation state itself lives in the ConversationStore; the session
    only holds what must not outlive the process: the per-call lock, the
    tenant bundle used for this call, and consecutive failure counters.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    # ========== Identity ==========
    tenant_id: str = Field(..., description="Owning tenant")
    call_id: str = Field(..., description="Conversation id")

    # ========== Runtime ==========
    lock: asyncio.Lock = Field(default_factory=asyncio.Lock, exclude=True)
    services: Optional[Any] = Field(None, exclude=True, description="TenantServices bundle for this call")

    # ========== Counters ==========
    error_count: int = Field(default=0, ge=0, description="Consecutive failed turns")
    silent_count: int = Field(default=0, ge=0, description="Consecutive turns without caller input")
    turns_processed: int = Field(default=0, ge=0)

    # ========== Timing ==========
    created_at: datetime = Field(default_factory=utcnow)
    last_activity_at: datetime = Field(default_factory=utcnow)

    @property
    def busy(self) -> bool:
        return self.lock.locked()

    def update_activity(self) -> None:
        self.last_activity_at = utcnow()

    def idle_seconds(self, now: Optional[datetime] = None) -> float:
        return ((now or utcnow()) - self.last_activity_at).total_seconds()

    def record_failure(self) -> int:
        self.error_count += 1
        return self.error_count

    def record_success(self) -> None:
        self.error_count = 0
        self.turns_processed += 1
