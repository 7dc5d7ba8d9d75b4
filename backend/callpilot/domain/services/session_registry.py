"""
Session Registry
The table of active calls: (tenant_id, call_id) -> CallSession

Eviction policy:
- sessions are removed when their call completes or fails
- a periodic sweep drops sessions idle longer than the configured timeout,
  skipping any session whose turn lock is held
"""
import asyncio
import logging
from typing import Dict, Optional, Tuple

from callpilot.domain.models.session import CallSession

logger = logging.getLogger(__name__)

SessionKey = Tuple[str, str]


class SessionRegistry:
    """
    In-memory registry of live call sessions.

    All mutating operations are synchronous, so lookup-or-insert is atomic
    with respect to other coroutines on the event loop.
    """

    def __init__(self, idle_timeout_seconds: int = 900, sweep_interval_seconds: int = 60):
        self._sessions: Dict[SessionKey, CallSession] = {}
        self._idle_timeout = idle_timeout_seconds
        self._sweep_interval = sweep_interval_seconds
        self._sweep_task: Optional[asyncio.Task] = None

    def get(self, tenant_id: str, call_id: str) -> Optional[CallSession]:
        return self._sessions.get((tenant_id, call_id))

    def get_or_create(self, tenant_id: str, call_id: str) -> CallSession:
        key = (tenant_id, call_id)
        session = self._sessions.get(key)
        if session is None:
            session = CallSession(tenant_id=tenant_id, call_id=call_id)
            self._sessions[key] = session
            logger.debug(f"Registered session {tenant_id}/{call_id}")
        return session

    def remove(self, tenant_id: str, call_id: str) -> Optional[CallSession]:
        session = self._sessions.pop((tenant_id, call_id), None)
        if session is not None:
            # Drop the tenant bundle so injected credentials do not outlive the call
            session.services = None
            logger.debug(f"Removed session {tenant_id}/{call_id}")
        return session

    def evict_stale(self, idle_seconds: Optional[int] = None) -> int:
        """Remove idle sessions that are not mid-turn. Returns the number evicted."""
        limit = self._idle_timeout if idle_seconds is None else idle_seconds
        stale = [
            key for key, session in self._sessions.items()
            if not session.busy and session.idle_seconds() > limit
        ]
        for tenant_id, call_id in stale:
            self.remove(tenant_id, call_id)
        if stale:
            logger.info(f"Evicted {len(stale)} idle session(s)")
        return len(stale)

    def count_for_tenant(self, tenant_id: str) -> int:
        return sum(1 for t, _ in self._sessions if t == tenant_id)

    @property
    def active_count(self) -> int:
        return len(self._sessions)

    def stats(self) -> dict:
        return {
            "active_sessions": self.active_count,
            "busy_sessions": sum(1 for s in self._sessions.values() if s.busy),
            "idle_timeout_seconds": self._idle_timeout,
        }

    async def start(self) -> None:
        """Start the periodic idle sweep"""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._periodic_sweep())
            logger.info("Session registry sweep started")

    async def shutdown(self) -> None:
        """Stop the sweep and drop all sessions"""
        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        for tenant_id, call_id in list(self._sessions):
            self.remove(tenant_id, call_id)
        logger.info("Session registry shutdown complete")

    async def _periodic_sweep(self) -> None:
        while True:
            await asyncio.sleep(self._sweep_interval)
            try:
                self.evict_stale()
            except Exception as e:
                logger.error(f"Session sweep failed: {e}", exc_info=True)
