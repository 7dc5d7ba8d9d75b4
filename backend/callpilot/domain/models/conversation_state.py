"""
Conversation State Models
Defines call states, their stored status, and the allowed transitions
"""
from enum import Enum
from typing import Dict, FrozenSet


class CallState(str, Enum):
    """State of the call-interaction state machine"""
    AWAITING_CONSENT = "awaiting_consent"  # Every call starts here
    ACTIVE = "active"                      # Consent given, AI conversation running
    TRANSFER_PENDING = "transfer_pending"  # Waiting for preferred callback time
    COMPLETED = "completed"
    FAILED = "failed"


class ConversationStatus(str, Enum):
    """Coarse call status exposed on the conversation record"""
    INITIATED = "initiated"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


STATUS_FOR_STATE: Dict[CallState, ConversationStatus] = {
    CallState.AWAITING_CONSENT: ConversationStatus.INITIATED,
    CallState.ACTIVE: ConversationStatus.ACTIVE,
    CallState.TRANSFER_PENDING: ConversationStatus.ACTIVE,
    CallState.COMPLETED: ConversationStatus.COMPLETED,
    CallState.FAILED: ConversationStatus.FAILED,
}

# Transitions driven by conversation turns. The vendor "completed" event
# bypasses this table and may complete a call from any state.
TURN_TRANSITIONS: Dict[CallState, FrozenSet[CallState]] = {
    CallState.AWAITING_CONSENT: frozenset({CallState.ACTIVE, CallState.FAILED}),
    CallState.ACTIVE: frozenset({CallState.ACTIVE, CallState.TRANSFER_PENDING, CallState.COMPLETED}),
    CallState.TRANSFER_PENDING: frozenset({CallState.COMPLETED}),
    CallState.COMPLETED: frozenset(),
    CallState.FAILED: frozenset(),
}

TERMINAL_STATES: FrozenSet[CallState] = frozenset({CallState.COMPLETED, CallState.FAILED})


def status_for(state: CallState) -> ConversationStatus:
    return STATUS_FOR_STATE[CallState(state)]


def can_transition(current: CallState, target: CallState) -> bool:
    return CallState(target) in TURN_TRANSITIONS[CallState(current)]
