"""
SQLAlchemy Database Models
Tables inside each tenant's conversation database
"""
import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

from callpilot.utils.clock import utcnow

Base = declarative_base()


def _new_id() -> str:
    return str(uuid.uuid4())


class ConversationRecord(Base):
    """Conversation model - maps to conversations table"""
    __tablename__ = "conversations"
    __table_args__ = (
        CheckConstraint("direction IN ('inbound', 'outbound')", name="ck_conversation_direction"),
        CheckConstraint(
            "status IN ('initiated', 'active', 'completed', 'failed')",
            name="ck_conversation_status",
        ),
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 10)", name="ck_conversation_rating"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    tenant_id = Column(String(64), nullable=False, index=True)
    provider_call_id = Column(String(128), index=True)
    direction = Column(String(16), nullable=False)
    customer_number = Column(String(32))
    agent_config = Column(JSON(none_as_null=True), nullable=False)
    state = Column(String(32), nullable=False, default="awaiting_consent")
    status = Column(String(16), nullable=False, default="initiated")
    consent_given = Column(Boolean)
    consent_at = Column(DateTime)
    recording_url = Column(Text)
    duration_seconds = Column(Integer)
    rating = Column(Integer)
    analysis = Column(JSON(none_as_null=True))
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
    completed_at = Column(DateTime)

    messages = relationship(
        "MessageRecord",
        back_populates="conversation",
        order_by="MessageRecord.sequence",
        cascade="all, delete-orphan",
    )
    callback_requests = relationship(
        "CallbackRequestRecord",
        back_populates="conversation",
        order_by="CallbackRequestRecord.created_at",
        cascade="all, delete-orphan",
    )


class MessageRecord(Base):
    """Transcript turn - maps to conversation_messages table (insert-only)"""
    __tablename__ = "conversation_messages"
    __table_args__ = (
        UniqueConstraint("conversation_id", "sequence", name="uq_message_sequence"),
        CheckConstraint("role IN ('user', 'assistant')", name="ck_message_role"),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(String(64), nullable=False, index=True)
    sequence = Column(Integer, nullable=False)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    conversation = relationship("ConversationRecord", back_populates="messages")


class CallbackRequestRecord(Base):
    """Callback request - maps to callback_requests table"""
    __tablename__ = "callback_requests"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'scheduled', 'completed', 'cancelled')",
            name="ck_callback_status",
        ),
    )

    id = Column(String(36), primary_key=True, default=_new_id)
    conversation_id = Column(String(36), ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False)
    tenant_id = Column(String(64), nullable=False, index=True)
    reason = Column(Text, nullable=False, default="Human transfer requested")
    status = Column(String(16), nullable=False, default="pending")
    notes = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    conversation = relationship("ConversationRecord", back_populates="callback_requests")
