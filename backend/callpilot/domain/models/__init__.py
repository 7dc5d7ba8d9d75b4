"""Domain models"""

from .conversation_state import (
    CallState,
    ConversationStatus,
    status_for,
    can_transition,
)

from .tenant_config import (
    TelephonyProviderName,
    LLMProviderName,
    SpeechProviderName,
    TelephonyConfig,
    LLMConfig,
    VoiceConfig,
    AgentPersona,
    TenantConfig,
    parse_tenant_config,
)

from .conversation import (
    TurnRole,
    CallDirection,
    Turn,
    Sentiment,
    ConversationAnalysis,
    CallbackStatus,
    CallbackRequest,
    Conversation,
)

from .call_control import (
    Say,
    Play,
    Gather,
    Record,
    Hangup,
    CallControl,
    RenderedControl,
    TelephonyEvent,
)

from .session import CallSession

__all__ = [
    "CallState",
    "ConversationStatus",
    "status_for",
    "can_transition",
    "TelephonyProviderName",
    "LLMProviderName",
    "SpeechProviderName",
    "TelephonyConfig",
    "LLMConfig",
    "VoiceConfig",
    "AgentPersona",
    "TenantConfig",
    "parse_tenant_config",
    "TurnRole",
    "CallDirection",
    "Turn",
    "Sentiment",
    "ConversationAnalysis",
    "CallbackStatus",
    "CallbackRequest",
    "Conversation",
    "Say",
    "Play",
    "Gather",
    "Record",
    "Hangup",
    "CallControl",
    "RenderedControl",
    "TelephonyEvent",
    "CallSession",
]
