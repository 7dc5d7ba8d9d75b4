"""
Tests for the Session Registry and call session counters
"""
import asyncio
from datetime import timedelta

import pytest

from callpilot.domain.services.session_registry import SessionRegistry
from callpilot.utils.clock import utcnow


def make_idle(session, seconds=1000):
    session.last_activity_at = utcnow() - timedelta(seconds=seconds)


class TestSessionRegistry:
    """Live call table"""

    def test_get_or_create_returns_same_session(self, registry):
        first = registry.get_or_create("acme", "call-1")
        second = registry.get_or_create("acme", "call-1")

        assert first is second
        assert registry.active_count == 1

    def test_sessions_keyed_by_tenant(self, registry):
        acme = registry.get_or_create("acme", "call-1")
        globex = registry.get_or_create("globex", "call-1")

        assert acme is not globex
        assert registry.get("globex", "call-1") is globex
        assert registry.count_for_tenant("acme") == 1

    def test_remove_drops_services(self, registry):
        session = registry.get_or_create("acme", "call-1")
        session.services = object()

        removed = registry.remove("acme", "call-1")

        assert removed is session
        assert session.services is None
        assert registry.get("acme", "call-1") is None
        assert registry.remove("acme", "call-1") is None

    def test_evict_stale(self, registry):
        make_idle(registry.get_or_create("acme", "old"))
        registry.get_or_create("acme", "fresh")

        assert registry.evict_stale() == 1
        assert registry.get("acme", "old") is None
        assert registry.get("acme", "fresh") is not None

    @pytest.mark.asyncio
    async def test_evict_skips_busy_sessions(self, registry):
        """A session mid-turn is never evicted, however idle it looks"""
        session = registry.get_or_create("acme", "call-1")
        make_idle(session)

        async with session.lock:
            assert registry.stats()["busy_sessions"] == 1
            assert registry.evict_stale() == 0

        assert registry.evict_stale() == 1

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self):
        registry = SessionRegistry(idle_timeout_seconds=1, sweep_interval_seconds=60)
        registry.get_or_create("acme", "call-1")

        await registry.start()
        await registry.shutdown()

        assert registry.active_count == 0

    @pytest.mark.asyncio
    async def test_periodic_sweep_evicts(self):
        registry = SessionRegistry(idle_timeout_seconds=0, sweep_interval_seconds=0)
        make_idle(registry.get_or_create("acme", "call-1"), seconds=5)

        await registry.start()
        await asyncio.sleep(0.05)
        evicted = registry.get("acme", "call-1") is None
        await registry.shutdown()

        assert evicted


class TestCallSessionCounters:
    """Consecutive failure tracking"""

    def test_failure_and_success(self, registry):
        session = registry.get_or_create("acme", "call-1")

        assert session.record_failure() == 1
        assert session.record_failure() == 2
        session.record_success()

        assert session.error_count == 0
        assert session.turns_processed == 1

    def test_update_activity(self, registry):
        session = registry.get_or_create("acme", "call-1")
        make_idle(session)

        session.update_activity()

        assert session.idle_seconds() < 5
