"""
Tenant Configuration Models
Validated per-tenant bundle of telephony, language model, voice and persona settings
"""
import copy
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from callpilot.core.exceptions import ConfigurationError


class TelephonyProviderName(str, Enum):
    VONAGE = "vonage"


class LLMProviderName(str, Enum):
    GROQ = "groq"
    OPENAI = "openai"
    OPENROUTER = "openrouter"
    ANTHROPIC = "anthropic"


class SpeechProviderName(str, Enum):
    DEEPGRAM = "deepgram"
    ELEVENLABS = "elevenlabs"


class TelephonyConfig(BaseModel):
    """Telephony vendor credentials and caller id"""
    model_config = ConfigDict(use_enum_values=True)

    provider: TelephonyProviderName = TelephonyProviderName.VONAGE
    api_key: str = Field(..., min_length=1)
    api_secret: str = Field(..., min_length=1)
    application_id: str = Field(..., min_length=1)
    private_key: str = Field(..., min_length=1, description="PEM private key of the voice application")
    phone_number: str = Field(..., min_length=1, description="Caller id for outbound calls")


class LLMConfig(BaseModel):
    """Language model credentials and generation parameters"""
    model_config = ConfigDict(use_enum_values=True, protected_namespaces=())

    provider: LLMProviderName
    api_key: str = Field(..., min_length=1)
    model: Optional[str] = None
    temperature: float = Field(default=0.6, ge=0.0, le=2.0)
    max_tokens: int = Field(default=75, ge=1, le=4096)


class VoiceConfig(BaseModel):
    """Speech vendor credentials and default voice"""
    model_config = ConfigDict(use_enum_values=True)

    provider: SpeechProviderName
    api_key: str = Field(..., min_length=1)
    voice_name: str = Field(..., min_length=1)


class AgentPersona(BaseModel):
    """Name, instructions and optional voice of the conversational agent"""
    name: str = Field(..., min_length=1)
    prompt: str = Field(..., min_length=1)
    voice: Optional[str] = None


class TenantConfig(BaseModel):
    """Complete configuration needed to run calls for one tenant"""
    telephony: TelephonyConfig
    llm: LLMConfig
    voice: VoiceConfig
    agent: AgentPersona

    def redacted(self) -> Dict[str, Any]:
        """Config as a dict with every sensitive value masked."""
        data = self.model_dump(mode="json")
        for section, key in SENSITIVE_FIELDS:
            value = data.get(section, {}).get(key)
            if value:
                data[section][key] = _mask(value)
        return data


REQUIRED_FIELDS: Dict[str, Tuple[str, ...]] = {
    "telephony": ("api_key", "api_secret", "application_id", "private_key", "phone_number"),
    "llm": ("provider", "api_key"),
    "voice": ("provider", "api_key", "voice_name"),
    "agent": ("name", "prompt"),
}

SENSITIVE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("telephony", "api_key"),
    ("telephony", "api_secret"),
    ("telephony", "private_key"),
    ("llm", "api_key"),
    ("voice", "api_key"),
)

CONFIG_SECTIONS: Tuple[str, ...] = tuple(REQUIRED_FIELDS.keys())


def _mask(value: str) -> str:
    if len(value) <= 4:
        return "****"
    return f"****{value[-4:]}"


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def find_missing_fields(payload: Mapping[str, Any]) -> List[str]:
    """Dotted paths of every required key that is absent or empty."""
    missing = []
    for section, keys in REQUIRED_FIELDS.items():
        values = payload.get(section)
        if not isinstance(values, Mapping):
            values = {}
        for key in keys:
            if _is_blank(values.get(key)):
                missing.append(f"{section}.{key}")
    return missing


def extract_config_sections(payload: Mapping[str, Any]) -> Dict[str, Any]:
    """Pick the config sections out of a request body, ignoring everything else."""
    if isinstance(payload.get("config"), Mapping):
        payload = payload["config"]
    return {
        section: dict(payload[section])
        for section in CONFIG_SECTIONS
        if isinstance(payload.get(section), Mapping)
    }


def merge_config_layers(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merge config layers section by section, later layers win.

    Blank values never override a value from an earlier layer. Inputs are
    never mutated.
    """
    merged: Dict[str, Any] = {}
    for layer in layers:
        if not layer:
            continue
        for section, values in layer.items():
            if not isinstance(values, Mapping):
                continue
            target = merged.setdefault(section, {})
            for key, value in values.items():
                if not _is_blank(value):
                    target[key] = copy.deepcopy(value)
    return merged


def parse_tenant_config(
    payload: Mapping[str, Any],
    global_voice: Optional[Mapping[str, Any]] = None,
) -> TenantConfig:
    """
    Validate a raw config payload into a TenantConfig.

    The global voice layer sits under the tenant's own voice section so a
    tenant value always wins.

    Raises:
        ConfigurationError: Listing every missing key and every malformed value
    """
    layers = [{"voice": dict(global_voice)}] if global_voice else []
    data = merge_config_layers(*layers, payload)

    missing = find_missing_fields(data)
    invalid: Dict[str, str] = {}

    try:
        config = TenantConfig(**data)
    except ValidationError as e:
        for error in e.errors():
            path = ".".join(str(part) for part in error["loc"])
            if path in missing or path in CONFIG_SECTIONS:
                continue
            invalid[path] = error["msg"]
        config = None

    if missing or invalid:
        raise ConfigurationError(missing_fields=missing, invalid_fields=invalid)

    return config
