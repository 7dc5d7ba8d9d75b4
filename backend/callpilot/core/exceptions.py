"""
Domain Exceptions
Error taxonomy shared by the call engine, tenant context and API layer
"""
from typing import Dict, List, Optional


class CallPilotError(Exception):
    """Base class for all service errors"""
    pass


class ConfigurationError(CallPilotError):
    """
    Raised when a tenant configuration is missing fields or has malformed values.

    Carries field-level detail so callers can report exactly which keys
    need attention.
    """

    def __init__(
        self,
        message: str = "Invalid tenant configuration",
        missing_fields: Optional[List[str]] = None,
        invalid_fields: Optional[Dict[str, str]] = None,
    ):
        self.missing_fields = missing_fields or []
        self.invalid_fields = invalid_fields or {}
        details = []
        if self.missing_fields:
            details.append(f"missing: {', '.join(self.missing_fields)}")
        if self.invalid_fields:
            details.append(
                "invalid: " + ", ".join(f"{k} ({v})" for k, v in self.invalid_fields.items())
            )
        full = f"{message} ({'; '.join(details)})" if details else message
        super().__init__(full)
        self.message = message

    def to_dict(self) -> dict:
        return {
            "error": "configuration_error",
            "message": self.message,
            "missing_fields": self.missing_fields,
            "invalid_fields": self.invalid_fields,
        }


class TenantNotConfiguredError(ConfigurationError):
    """Raised when a tenant has no stored config and none was supplied"""

    def __init__(self, tenant_id: str):
        super().__init__(
            f"No configuration stored for tenant '{tenant_id}'",
            missing_fields=["telephony", "llm", "voice", "agent"],
        )
        self.tenant_id = tenant_id


class GatewayError(CallPilotError):
    """Raised when a speech, LLM or telephony vendor call fails or times out"""

    def __init__(self, provider: str, operation: str, message: str):
        self.provider = provider
        self.operation = operation
        super().__init__(f"{provider} {operation} failed: {message}")


class CallNotFoundError(CallPilotError):
    """
    Raised for unknown tenants, unknown calls and cross-tenant lookups.

    The message is identical in every case so responses never reveal
    whether a call exists under another tenant.
    """

    def __init__(self):
        super().__init__("Call not found")


class TurnInProgressError(CallPilotError):
    """Raised when a webhook arrives for a call whose previous turn is still running"""

    def __init__(self, call_id: str):
        self.call_id = call_id
        super().__init__(f"A turn is already being processed for call {call_id}")


class WebhookURLError(CallPilotError):
    """Raised when a webhook URL cannot be built or parsed"""
    pass


class InvalidTransitionError(CallPilotError):
    """Raised when a record is moved to a status it cannot reach"""
    pass


class DecryptionError(CallPilotError):
    """Raised when an encrypted value cannot be decrypted with the key chain"""
    pass


class CallbackNotFoundError(CallPilotError):
    """Raised when a callback request does not exist for the tenant"""

    def __init__(self):
        super().__init__("Callback request not found")
