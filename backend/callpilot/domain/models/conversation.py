"""
Conversation Domain Models
Conversations, transcript turns, callback requests and post-call analysis
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from callpilot.domain.models.conversation_state import CallState, ConversationStatus
from callpilot.domain.models.tenant_config import AgentPersona
from callpilot.utils.clock import utcnow


class TurnRole(str, Enum):
    """Speaker of a transcript turn"""
    USER = "user"
    ASSISTANT = "assistant"


class CallDirection(str, Enum):
    INBOUND = "inbound"
    OUTBOUND = "outbound"


class Turn(BaseModel):
    """Single utterance in a conversation"""
    model_config = ConfigDict(use_enum_values=True)

    role: TurnRole
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    sequence: Optional[int] = Field(None, ge=0, description="Position in the transcript")


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"
    MIXED = "mixed"


class ConversationAnalysis(BaseModel):
    """Post-call quality signal produced by the analyzer"""
    model_config = ConfigDict(use_enum_values=True)

    rating: int = Field(..., ge=1, le=10, description="Overall quality 1-10")
    sentiment: Sentiment = Sentiment.NEUTRAL
    categories: List[str] = Field(default_factory=lambda: ["general"])
    topics: List[str] = Field(default_factory=list)
    resolved: bool = False
    transfer_requested: bool = False
    summary: Optional[str] = None
    source: str = Field(default="fallback", description="llm or fallback")
    analyzed_at: datetime = Field(default_factory=utcnow)

    @property
    def successful(self) -> bool:
        return self.rating >= 7


class CallbackStatus(str, Enum):
    PENDING = "pending"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


CALLBACK_TRANSITIONS = {
    CallbackStatus.PENDING: {CallbackStatus.SCHEDULED, CallbackStatus.COMPLETED, CallbackStatus.CANCELLED},
    CallbackStatus.SCHEDULED: {CallbackStatus.COMPLETED, CallbackStatus.CANCELLED},
    CallbackStatus.COMPLETED: set(),
    CallbackStatus.CANCELLED: set(),
}


class CallbackRequest(BaseModel):
    """Request for a human to call the customer back"""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    conversation_id: str
    tenant_id: str
    reason: str = "Human transfer requested"
    status: CallbackStatus = CallbackStatus.PENDING
    notes: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class Conversation(BaseModel):
    """One call attempt and everything recorded about it"""
    model_config = ConfigDict(use_enum_values=True)

    id: str
    tenant_id: str
    provider_call_id: Optional[str] = None
    direction: CallDirection
    customer_number: Optional[str] = None
    agent_config: AgentPersona = Field(..., description="Persona snapshot taken at call start")

    state: CallState = CallState.AWAITING_CONSENT
    status: ConversationStatus = ConversationStatus.INITIATED
    consent_given: Optional[bool] = None
    consent_at: Optional[datetime] = None

    transcript: List[Turn] = Field(default_factory=list)

    recording_url: Optional[str] = None
    duration_seconds: Optional[int] = None
    rating: Optional[int] = Field(None, ge=1, le=10)
    analysis: Optional[ConversationAnalysis] = None

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_completed(self) -> bool:
        return self.status == ConversationStatus.COMPLETED
