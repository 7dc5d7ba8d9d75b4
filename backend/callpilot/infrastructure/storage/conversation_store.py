"""
Conversation Store
Durable per-tenant record of calls, transcript turns and callback requests
"""
import logging
from collections import Counter
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from callpilot.core.exceptions import (
    CallbackNotFoundError,
    CallNotFoundError,
    InvalidTransitionError,
)
from callpilot.domain.models.conversation import (
    CALLBACK_TRANSITIONS,
    CallbackRequest,
    CallbackStatus,
    Conversation,
    ConversationAnalysis,
    Turn,
)
from callpilot.domain.models.conversation_state import (
    CallState,
    ConversationStatus,
    can_transition,
    status_for,
)
from callpilot.infrastructure.storage.database import TenantDatabase
from callpilot.infrastructure.storage.models import (
    CallbackRequestRecord,
    ConversationRecord,
    MessageRecord,
)
from callpilot.utils.clock import utcnow
from callpilot.utils.tenant_filter import apply_tenant_filter

logger = logging.getLogger(__name__)

SUCCESS_RATING = 7
TOP_CATEGORY_LIMIT = 5


class ConversationStore:
    """
    Conversation persistence for exactly one tenant.

    Every read and write is filtered on this store's tenant id, on top of
    the tenant having its own database file. Transcript turns are only
    ever inserted; a completed conversation accepts no further turns.
    """

    def __init__(self, database: TenantDatabase):
        self._db = database
        self.tenant_id = database.tenant_id

    def close(self) -> None:
        self._db.dispose()

    # ========== Conversations ==========

    def create_conversation(self, conversation: Conversation) -> Conversation:
        if conversation.tenant_id != self.tenant_id:
            raise ValueError("Conversation belongs to a different tenant")

        with self._db.session() as db:
            record = ConversationRecord(
                id=conversation.id,
                tenant_id=self.tenant_id,
                provider_call_id=conversation.provider_call_id,
                direction=conversation.direction,
                customer_number=conversation.customer_number,
                agent_config=conversation.agent_config.model_dump(mode="json"),
                state=conversation.state,
                status=status_for(conversation.state).value,
                created_at=conversation.created_at,
            )
            db.add(record)
            db.flush()
            logger.info(f"Created conversation {record.id} for tenant {self.tenant_id}")
            return self._to_conversation(record)

    def get_conversation(self, call_id: str) -> Optional[Conversation]:
        with self._db.session() as db:
            record = self._find(db, call_id)
            return self._to_conversation(record) if record else None

    def require_conversation(self, call_id: str) -> Conversation:
        conversation = self.get_conversation(call_id)
        if conversation is None:
            raise CallNotFoundError()
        return conversation

    def get_by_provider_call_id(self, provider_call_id: str) -> Optional[Conversation]:
        if not provider_call_id:
            return None
        with self._db.session() as db:
            record = (
                self._query(db)
                .filter(ConversationRecord.provider_call_id == provider_call_id)
                .order_by(ConversationRecord.created_at.desc())
                .first()
            )
            return self._to_conversation(record) if record else None

    def set_provider_call_id(self, call_id: str, provider_call_id: str) -> Conversation:
        with self._db.session() as db:
            record = self._require(db, call_id)
            if record.provider_call_id and record.provider_call_id != provider_call_id:
                logger.warning(
                    f"Conversation {call_id} already bound to provider call "
                    f"{record.provider_call_id}, ignoring {provider_call_id}"
                )
            else:
                record.provider_call_id = provider_call_id
            db.flush()
            return self._to_conversation(record)

    def apply_turn(
        self,
        call_id: str,
        expected_state: CallState,
        new_state: CallState,
        turns: Iterable[Turn] = (),
        callback_reason: Optional[str] = None,
        callback_notes: Optional[str] = None,
        consent: Optional[bool] = None,
    ) -> Conversation:
        """
        Apply one state-machine step atomically.

        Appends turns, records consent, creates or annotates a callback
        request and moves the state, all in one transaction. Nothing is
        written if any part fails.

        Raises:
            CallNotFoundError: Unknown call for this tenant
            InvalidTransitionError: Conversation is completed, not in
                expected_state, or cannot move to new_state
        """
        expected_state = CallState(expected_state)
        new_state = CallState(new_state)

        with self._db.session() as db:
            record = self._require(db, call_id)

            if record.status == ConversationStatus.COMPLETED.value:
                raise InvalidTransitionError(f"Conversation {call_id} is completed")
            if record.state != expected_state.value:
                raise InvalidTransitionError(
                    f"Conversation {call_id} is {record.state}, expected {expected_state.value}"
                )
            if not can_transition(expected_state, new_state):
                raise InvalidTransitionError(
                    f"Cannot move conversation {call_id} from {expected_state.value} to {new_state.value}"
                )

            now = utcnow()
            sequence = self._next_sequence(db, call_id)
            for turn in turns:
                db.add(MessageRecord(
                    conversation_id=call_id,
                    tenant_id=self.tenant_id,
                    sequence=sequence,
                    role=turn.role,
                    content=turn.content,
                    created_at=turn.timestamp,
                ))
                sequence += 1

            if consent is not None:
                record.consent_given = consent
                record.consent_at = now

            if callback_notes is not None:
                pending = self._latest_pending_callback(db, call_id)
                if pending is not None:
                    pending.notes = callback_notes
                    pending.updated_at = now
                else:
                    logger.warning(f"No pending callback request to annotate for {call_id}")

            if callback_reason:
                db.add(CallbackRequestRecord(
                    conversation_id=call_id,
                    tenant_id=self.tenant_id,
                    reason=callback_reason,
                    status=CallbackStatus.PENDING.value,
                    created_at=now,
                ))

            record.state = new_state.value
            record.status = status_for(new_state).value
            if new_state == CallState.COMPLETED:
                record.completed_at = now
            record.updated_at = now

            db.flush()
            db.refresh(record)
            return self._to_conversation(record)

    def complete_conversation(
        self,
        call_id: str,
        duration_seconds: Optional[int] = None,
        recording_url: Optional[str] = None,
    ) -> Tuple[Conversation, bool]:
        """
        Mark a conversation completed from any state.

        Safe to call repeatedly: an already-completed conversation only has
        missing duration/recording filled in.

        Returns:
            (conversation, newly_completed)
        """
        with self._db.session() as db:
            record = self._require(db, call_id)
            newly_completed = record.status != ConversationStatus.COMPLETED.value
            now = utcnow()

            if newly_completed:
                record.state = CallState.COMPLETED.value
                record.status = ConversationStatus.COMPLETED.value
                record.completed_at = now
            if duration_seconds is not None and record.duration_seconds is None:
                record.duration_seconds = duration_seconds
            if recording_url and not record.recording_url:
                record.recording_url = recording_url
            record.updated_at = now

            db.flush()
            return self._to_conversation(record), newly_completed

    def mark_failed(self, call_id: str) -> Conversation:
        """Mark a conversation failed unless it already completed."""
        with self._db.session() as db:
            record = self._require(db, call_id)
            if record.status != ConversationStatus.COMPLETED.value:
                record.state = CallState.FAILED.value
                record.status = ConversationStatus.FAILED.value
                record.updated_at = utcnow()
            db.flush()
            return self._to_conversation(record)

    def set_recording_url(self, call_id: str, recording_url: str) -> Conversation:
        with self._db.session() as db:
            record = self._require(db, call_id)
            record.recording_url = recording_url
            record.updated_at = utcnow()
            db.flush()
            return self._to_conversation(record)

    def save_analysis(self, call_id: str, analysis: ConversationAnalysis) -> bool:
        """
        Store the analysis and rating unless the conversation already has one.

        Returns:
            True if this call wrote the analysis
        """
        with self._db.session() as db:
            updated = (
                self._query(db)
                .filter(ConversationRecord.id == call_id, ConversationRecord.analysis.is_(None))
                .update(
                    {
                        ConversationRecord.analysis: analysis.model_dump(mode="json"),
                        ConversationRecord.rating: analysis.rating,
                    },
                    synchronize_session=False,
                )
            )
            return updated > 0

    # ========== Callback requests ==========

    def list_callback_requests(
        self,
        status: Optional[CallbackStatus] = None,
        conversation_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[CallbackRequest]:
        with self._db.session() as db:
            query = apply_tenant_filter(db.query(CallbackRequestRecord), CallbackRequestRecord, self.tenant_id)
            if status:
                query = query.filter(CallbackRequestRecord.status == CallbackStatus(status).value)
            if conversation_id:
                query = query.filter(CallbackRequestRecord.conversation_id == conversation_id)
            records = query.order_by(CallbackRequestRecord.created_at.asc()).limit(limit).all()
            return [self._to_callback(r) for r in records]

    def update_callback_status(
        self,
        request_id: str,
        status: CallbackStatus,
        notes: Optional[str] = None,
    ) -> CallbackRequest:
        """
        Move a callback request along its externally driven lifecycle.

        Raises:
            CallbackNotFoundError: Unknown request for this tenant
            InvalidTransitionError: Status cannot be reached from the current one
        """
        target = CallbackStatus(status)
        with self._db.session() as db:
            record = (
                apply_tenant_filter(db.query(CallbackRequestRecord), CallbackRequestRecord, self.tenant_id)
                .filter(CallbackRequestRecord.id == request_id)
                .first()
            )
            if record is None:
                raise CallbackNotFoundError()

            current = CallbackStatus(record.status)
            if target not in CALLBACK_TRANSITIONS[current]:
                raise InvalidTransitionError(
                    f"Callback request cannot move from {current.value} to {target.value}"
                )

            record.status = target.value
            if notes is not None:
                record.notes = notes
            record.updated_at = utcnow()
            db.flush()
            return self._to_callback(record)

    # ========== Analytics ==========

    def analytics(
        self,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Aggregate call counts and averages, optionally limited to a created_at window."""
        with self._db.session() as db:
            query = self._query(db)
            if start_date:
                query = query.filter(ConversationRecord.created_at >= start_date)
            if end_date:
                query = query.filter(ConversationRecord.created_at <= end_date)
            records = query.all()

            ids = [r.id for r in records]
            callbacks = []
            if ids:
                callbacks = (
                    apply_tenant_filter(db.query(CallbackRequestRecord), CallbackRequestRecord, self.tenant_id)
                    .filter(CallbackRequestRecord.conversation_id.in_(ids))
                    .all()
                )

            ratings = [r.rating for r in records if r.rating is not None]
            durations = [r.duration_seconds for r in records if r.duration_seconds is not None]
            categories: Counter = Counter()
            for r in records:
                if r.analysis:
                    categories.update(r.analysis.get("categories") or [])

            top_categories = sorted(categories.items(), key=lambda item: (-item[1], item[0]))
            return {
                "total_calls": len(records),
                "completed_calls": sum(1 for r in records if r.status == ConversationStatus.COMPLETED.value),
                "failed_calls": sum(1 for r in records if r.status == ConversationStatus.FAILED.value),
                "successful_calls": sum(1 for r in ratings if r >= SUCCESS_RATING),
                "inbound_calls": sum(1 for r in records if r.direction == "inbound"),
                "outbound_calls": sum(1 for r in records if r.direction == "outbound"),
                "avg_rating": round(sum(ratings) / len(ratings), 2) if ratings else None,
                "avg_duration_seconds": round(sum(durations) / len(durations), 2) if durations else None,
                "transfer_requests": len(callbacks),
                "pending_callbacks": sum(1 for c in callbacks if c.status == CallbackStatus.PENDING.value),
                "top_categories": [
                    {"category": name, "count": count}
                    for name, count in top_categories[:TOP_CATEGORY_LIMIT]
                ],
            }

    # ========== Helpers ==========

    def _query(self, db: Session):
        return apply_tenant_filter(db.query(ConversationRecord), ConversationRecord, self.tenant_id)

    def _find(self, db: Session, call_id: str) -> Optional[ConversationRecord]:
        return self._query(db).filter(ConversationRecord.id == call_id).first()

    def _require(self, db: Session, call_id: str) -> ConversationRecord:
        record = self._find(db, call_id)
        if record is None:
            raise CallNotFoundError()
        return record

    def _next_sequence(self, db: Session, call_id: str) -> int:
        current = (
            db.query(func.max(MessageRecord.sequence))
            .filter(MessageRecord.conversation_id == call_id, MessageRecord.tenant_id == self.tenant_id)
            .scalar()
        )
        return 0 if current is None else current + 1

    def _latest_pending_callback(self, db: Session, call_id: str) -> Optional[CallbackRequestRecord]:
        return (
            apply_tenant_filter(db.query(CallbackRequestRecord), CallbackRequestRecord, self.tenant_id)
            .filter(
                CallbackRequestRecord.conversation_id == call_id,
                CallbackRequestRecord.status == CallbackStatus.PENDING.value,
            )
            .order_by(CallbackRequestRecord.created_at.desc())
            .first()
        )

    def _to_conversation(self, record: ConversationRecord) -> Conversation:
        transcript = [
            Turn(role=m.role, content=m.content, timestamp=m.created_at, sequence=m.sequence)
            for m in record.messages
            if m.tenant_id == self.tenant_id
        ]
        return Conversation(
            id=record.id,
            tenant_id=record.tenant_id,
            provider_call_id=record.provider_call_id,
            direction=record.direction,
            customer_number=record.customer_number,
            agent_config=record.agent_config,
            state=record.state,
            status=record.status,
            consent_given=record.consent_given,
            consent_at=record.consent_at,
            transcript=transcript,
            recording_url=record.recording_url,
            duration_seconds=record.duration_seconds,
            rating=record.rating,
            analysis=record.analysis,
            created_at=record.created_at,
            updated_at=record.updated_at,
            completed_at=record.completed_at,
        )

    @staticmethod
    def _to_callback(record: CallbackRequestRecord) -> CallbackRequest:
        return CallbackRequest(
            id=record.id,
            conversation_id=record.conversation_id,
            tenant_id=record.tenant_id,
            reason=record.reason,
            status=record.status,
            notes=record.notes,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
