"""
Tests for the Conversation Store
Atomic turns, append-only transcripts, tenant isolation, callbacks and analytics
"""
import uuid
from datetime import timedelta

import pytest

from callpilot.core.exceptions import (
    CallbackNotFoundError,
    CallNotFoundError,
    InvalidTransitionError,
)
from callpilot.domain.models.conversation import (
    CallbackStatus,
    Conversation,
    ConversationAnalysis,
    Turn,
)
from callpilot.domain.models.conversation_state import CallState, ConversationStatus
from callpilot.domain.models.tenant_config import AgentPersona
from callpilot.infrastructure.storage.conversation_store import ConversationStore
from callpilot.infrastructure.storage.database import TenantDatabase
from callpilot.utils.clock import utcnow

PERSONA = AgentPersona(name="Ava", prompt="You are Ava.")


@pytest.fixture
def store(settings):
    store = ConversationStore(TenantDatabase(settings.data_dir, "acme"))
    yield store
    store.close()


@pytest.fixture
def other_store(settings):
    store = ConversationStore(TenantDatabase(settings.data_dir, "globex"))
    yield store
    store.close()


def new_conversation(store, direction="outbound", provider_call_id=None):
    return store.create_conversation(Conversation(
        id=str(uuid.uuid4()),
        tenant_id=store.tenant_id,
        direction=direction,
        customer_number="15557654321",
        provider_call_id=provider_call_id,
        agent_config=PERSONA,
    ))


def activate(store, call_id):
    return store.apply_turn(
        call_id,
        CallState.AWAITING_CONSENT,
        CallState.ACTIVE,
        turns=[Turn(role="assistant", content="Hi, this is Ava.")],
        consent=True,
    )


class TestConversations:
    """Creating and reading conversations"""

    def test_create_and_get(self, store):
        created = new_conversation(store, provider_call_id="uuid-1")

        loaded = store.get_conversation(created.id)
        assert loaded.state == CallState.AWAITING_CONSENT
        assert loaded.status == ConversationStatus.INITIATED
        assert loaded.agent_config == PERSONA
        assert loaded.transcript == []
        assert store.get_by_provider_call_id("uuid-1").id == created.id

    def test_rejects_foreign_tenant_record(self, store):
        with pytest.raises(ValueError):
            store.create_conversation(Conversation(
                id=str(uuid.uuid4()), tenant_id="globex", direction="inbound", agent_config=PERSONA,
            ))

    def test_provider_call_id_is_bound_once(self, store):
        created = new_conversation(store)
        store.set_provider_call_id(created.id, "uuid-1")
        updated = store.set_provider_call_id(created.id, "uuid-2")
        assert updated.provider_call_id == "uuid-1"

    def test_tenant_isolation(self, store, other_store):
        """Another tenant's store never sees this tenant's calls"""
        created = new_conversation(store, provider_call_id="uuid-1")

        assert other_store.get_conversation(created.id) is None
        assert other_store.get_by_provider_call_id("uuid-1") is None
        with pytest.raises(CallNotFoundError):
            other_store.require_conversation(created.id)
        with pytest.raises(CallNotFoundError):
            other_store.apply_turn(created.id, CallState.AWAITING_CONSENT, CallState.ACTIVE)


class TestApplyTurn:
    """One state-machine step per transaction"""

    def test_consent_turn(self, store):
        created = new_conversation(store)

        updated = activate(store, created.id)

        assert updated.state == CallState.ACTIVE
        assert updated.status == ConversationStatus.ACTIVE
        assert updated.consent_given is True
        assert updated.consent_at is not None
        assert [t.content for t in updated.transcript] == ["Hi, this is Ava."]

    def test_transcript_is_append_only_and_ordered(self, store):
        created = new_conversation(store)
        activate(store, created.id)

        store.apply_turn(created.id, CallState.ACTIVE, CallState.ACTIVE, turns=[
            Turn(role="user", content="What are your hours?"),
            Turn(role="assistant", content="We open at nine."),
        ])
        updated = store.apply_turn(created.id, CallState.ACTIVE, CallState.ACTIVE, turns=[
            Turn(role="user", content="Thanks."),
            Turn(role="assistant", content="You're welcome."),
        ])

        assert [t.sequence for t in updated.transcript] == [0, 1, 2, 3, 4]
        assert [t.role for t in updated.transcript] == ["assistant", "user", "assistant", "user", "assistant"]
        assert updated.transcript[1].content == "What are your hours?"

    def test_wrong_expected_state_writes_nothing(self, store):
        created = new_conversation(store)

        with pytest.raises(InvalidTransitionError):
            store.apply_turn(
                created.id,
                CallState.ACTIVE,
                CallState.ACTIVE,
                turns=[Turn(role="user", content="hello")],
                callback_reason="Human transfer requested",
            )

        loaded = store.get_conversation(created.id)
        assert loaded.transcript == []
        assert loaded.state == CallState.AWAITING_CONSENT
        assert store.list_callback_requests() == []

    def test_illegal_transition_rejected(self, store):
        created = new_conversation(store)
        activate(store, created.id)

        with pytest.raises(InvalidTransitionError):
            store.apply_turn(created.id, CallState.ACTIVE, CallState.AWAITING_CONSENT)

    def test_completed_conversation_accepts_no_turns(self, store):
        created = new_conversation(store)
        activate(store, created.id)
        store.complete_conversation(created.id)

        with pytest.raises(InvalidTransitionError):
            store.apply_turn(
                created.id, CallState.ACTIVE, CallState.ACTIVE,
                turns=[Turn(role="user", content="late input")],
            )
        assert len(store.get_conversation(created.id).transcript) == 1

    def test_transfer_creates_and_annotates_callback(self, store):
        created = new_conversation(store)
        activate(store, created.id)

        pending = store.apply_turn(
            created.id, CallState.ACTIVE, CallState.TRANSFER_PENDING,
            turns=[Turn(role="user", content="Get me a human"), Turn(role="assistant", content="Sure.")],
            callback_reason="Human transfer requested",
        )
        assert pending.state == CallState.TRANSFER_PENDING
        assert pending.status == ConversationStatus.ACTIVE

        done = store.apply_turn(
            created.id, CallState.TRANSFER_PENDING, CallState.COMPLETED,
            callback_notes="Tomorrow after 3pm",
        )
        assert done.status == ConversationStatus.COMPLETED
        assert done.completed_at is not None

        requests = store.list_callback_requests(conversation_id=created.id)
        assert len(requests) == 1
        assert requests[0].status == CallbackStatus.PENDING
        assert requests[0].notes == "Tomorrow after 3pm"


class TestCompletion:
    """Vendor-driven completion and failure"""

    def test_complete_is_idempotent(self, store):
        created = new_conversation(store)
        activate(store, created.id)

        first, newly_completed = store.complete_conversation(created.id, duration_seconds=42)
        second, again = store.complete_conversation(created.id, duration_seconds=99, recording_url="https://rec/1")

        assert newly_completed is True
        assert again is False
        assert first.completed_at == second.completed_at
        assert second.duration_seconds == 42
        assert second.recording_url == "https://rec/1"

    def test_complete_from_awaiting_consent(self, store):
        created = new_conversation(store)
        completed, _ = store.complete_conversation(created.id)
        assert completed.state == CallState.COMPLETED

    def test_mark_failed_keeps_completed(self, store):
        created = new_conversation(store)
        store.complete_conversation(created.id)

        assert store.mark_failed(created.id).status == ConversationStatus.COMPLETED

        other = new_conversation(store)
        failed = store.mark_failed(other.id)
        assert failed.state == CallState.FAILED
        assert failed.status == ConversationStatus.FAILED

    def test_analysis_written_once(self, store):
        created = new_conversation(store)
        store.complete_conversation(created.id)

        assert store.save_analysis(created.id, ConversationAnalysis(rating=8, source="llm")) is True
        assert store.save_analysis(created.id, ConversationAnalysis(rating=2)) is False

        loaded = store.get_conversation(created.id)
        assert loaded.rating == 8
        assert loaded.analysis.source == "llm"


class TestCallbackRequests:
    """Externally driven callback lifecycle"""

    @pytest.fixture
    def request_id(self, store):
        created = new_conversation(store)
        activate(store, created.id)
        store.apply_turn(
            created.id, CallState.ACTIVE, CallState.TRANSFER_PENDING,
            callback_reason="Human transfer requested",
        )
        return store.list_callback_requests()[0].id

    def test_status_progression(self, store, request_id):
        scheduled = store.update_callback_status(request_id, CallbackStatus.SCHEDULED, notes="Friday 10am")
        assert scheduled.status == CallbackStatus.SCHEDULED
        assert scheduled.notes == "Friday 10am"

        completed = store.update_callback_status(request_id, "completed")
        assert completed.status == CallbackStatus.COMPLETED
        assert completed.notes == "Friday 10am"

    def test_terminal_status_is_final(self, store, request_id):
        store.update_callback_status(request_id, CallbackStatus.CANCELLED)
        with pytest.raises(InvalidTransitionError):
            store.update_callback_status(request_id, CallbackStatus.SCHEDULED)

    def test_filter_by_status(self, store, request_id):
        assert len(store.list_callback_requests(status=CallbackStatus.PENDING)) == 1
        assert store.list_callback_requests(status=CallbackStatus.SCHEDULED) == []

    def test_unknown_or_foreign_request(self, store, other_store, request_id):
        with pytest.raises(CallbackNotFoundError):
            store.update_callback_status(str(uuid.uuid4()), CallbackStatus.SCHEDULED)
        with pytest.raises(CallbackNotFoundError):
            other_store.update_callback_status(request_id, CallbackStatus.SCHEDULED)


class TestAnalytics:
    """Aggregates over a tenant's calls"""

    def test_empty(self, store):
        stats = store.analytics()
        assert stats["total_calls"] == 0
        assert stats["avg_rating"] is None
        assert stats["top_categories"] == []

    def test_aggregates(self, store, other_store):
        good = new_conversation(store)
        activate(store, good.id)
        store.complete_conversation(good.id, duration_seconds=60)
        store.save_analysis(good.id, ConversationAnalysis(rating=8, categories=["billing", "support"]))

        poor = new_conversation(store, direction="inbound")
        activate(store, poor.id)
        store.apply_turn(poor.id, CallState.ACTIVE, CallState.TRANSFER_PENDING, callback_reason="Human transfer requested")
        store.complete_conversation(poor.id, duration_seconds=30)
        store.save_analysis(poor.id, ConversationAnalysis(rating=4, categories=["billing"]))

        failed = new_conversation(store)
        store.mark_failed(failed.id)

        new_conversation(other_store)

        stats = store.analytics()
        assert stats["total_calls"] == 3
        assert stats["completed_calls"] == 2
        assert stats["failed_calls"] == 1
        assert stats["successful_calls"] == 1
        assert stats["inbound_calls"] == 1
        assert stats["outbound_calls"] == 2
        assert stats["avg_rating"] == 6.0
        assert stats["avg_duration_seconds"] == 45.0
        assert stats["transfer_requests"] == 1
        assert stats["pending_callbacks"] == 1
        assert stats["top_categories"][0] == {"category": "billing", "count": 2}

    def test_date_window(self, store):
        new_conversation(store)

        assert store.analytics(start_date=utcnow() + timedelta(days=1))["total_calls"] == 0
        assert store.analytics(end_date=utcnow() + timedelta(minutes=1))["total_calls"] == 1
