"""
Tenant Context
Resolves a fully configured service bundle for one tenant.

Config precedence, lowest to highest:
  1. global voice layer (settings)
  2. tenant's stored, encrypted config
  3. sections injected in the request payload

Bundles built from stored config alone are cached by tenant id and replaced
when the config is updated. Bundles that include request-injected sections
are never cached; the call's session holds them and drops them on eviction.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from callpilot.core.config import Settings
from callpilot.core.exceptions import CallNotFoundError, ConfigurationError, TenantNotConfiguredError
from callpilot.domain.interfaces.llm_provider import LLMProvider
from callpilot.domain.interfaces.speech_provider import SpeechProvider
from callpilot.domain.interfaces.telephony_provider import TelephonyProvider
from callpilot.domain.models.tenant_config import (
    LLMConfig,
    TelephonyConfig,
    TenantConfig,
    VoiceConfig,
    extract_config_sections,
    merge_config_layers,
    parse_tenant_config,
)
from callpilot.infrastructure.llm.factory import LLMFactory
from callpilot.infrastructure.speech.factory import SpeechFactory
from callpilot.infrastructure.storage.config_store import TenantConfigStore
from callpilot.infrastructure.storage.conversation_store import ConversationStore
from callpilot.infrastructure.storage.database import TenantDatabase
from callpilot.infrastructure.telephony.factory import TelephonyFactory
from callpilot.utils.tenant_filter import ensure_tenant_id, tenant_dir

logger = logging.getLogger(__name__)


class TenantServices(BaseModel):
    """Read-only bundle of everything a call needs for one tenant"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    tenant_id: str
    config: TenantConfig
    telephony: TelephonyProvider
    llm: LLMProvider
    speech: SpeechProvider
    store: ConversationStore
    injected: bool = False


class TenantContext:
    """
    Builds and caches per-tenant service bundles.

    Usage:
        tenants = TenantContext(settings, config_store)
        services = await tenants.resolve("acme")
        services = await tenants.resolve("acme", injected=request_body)
    """

    def __init__(
        self,
        settings: Settings,
        config_store: TenantConfigStore,
        llm_factory: Optional[Callable[[LLMConfig], Awaitable[LLMProvider]]] = None,
        speech_factory: Optional[Callable[[VoiceConfig], Awaitable[SpeechProvider]]] = None,
        telephony_factory: Optional[Callable[[TelephonyConfig], Awaitable[TelephonyProvider]]] = None,
    ):
        self._settings = settings
        self._config_store = config_store
        self._create_llm = llm_factory or LLMFactory.create
        self._create_speech = speech_factory or SpeechFactory.create
        self._create_telephony = telephony_factory or TelephonyFactory.create

        self._bundles: Dict[str, TenantServices] = {}
        self._stores: Dict[str, ConversationStore] = {}
        self._build_locks: Dict[str, asyncio.Lock] = {}

    @property
    def global_voice(self) -> Optional[Dict[str, str]]:
        layer = {}
        if self._settings.global_voice_provider:
            layer["provider"] = self._settings.global_voice_provider
        if self._settings.global_voice_api_key:
            layer["api_key"] = self._settings.global_voice_api_key
        return layer or None

    def store(self, tenant_id: str, create: bool = True) -> ConversationStore:
        """
        Conversation store for a tenant, creating its storage on first use.

        Lookups pass create=False so an unknown tenant never gets storage.

        Raises:
            CallNotFoundError: Invalid tenant id, or create=False and the
                tenant has no storage yet
        """
        tenant_id = ensure_tenant_id(tenant_id)
        store = self._stores.get(tenant_id)
        if store is None:
            if not create and not tenant_dir(self._settings.data_dir, tenant_id).is_dir():
                raise CallNotFoundError()
            store = ConversationStore(TenantDatabase(self._settings.data_dir, tenant_id))
            self._stores[tenant_id] = store
        return store

    async def resolve(
        self,
        tenant_id: str,
        injected: Optional[Mapping[str, Any]] = None,
    ) -> TenantServices:
        """
        Get the service bundle for a tenant.

        Raises:
            CallNotFoundError: Invalid tenant id
            TenantNotConfiguredError: No stored config and nothing injected
            ConfigurationError: Merged config is incomplete or malformed
            DecryptionError: Stored config cannot be decrypted
        """
        tenant_id = ensure_tenant_id(tenant_id)
        sections = extract_config_sections(injected) if injected else {}

        if not sections:
            cached = self._bundles.get(tenant_id)
            if cached is not None:
                return cached
            return await self._resolve_stored(tenant_id)

        stored = self._config_store.load(tenant_id)
        config = parse_tenant_config(merge_config_layers(stored, sections), self.global_voice)
        logger.info(f"Built request-scoped services for tenant {tenant_id}")
        return await self._build(tenant_id, config, injected=True)

    async def _resolve_stored(self, tenant_id: str) -> TenantServices:
        lock = self._build_locks.setdefault(tenant_id, asyncio.Lock())
        async with lock:
            cached = self._bundles.get(tenant_id)
            if cached is not None:
                return cached

            stored = self._config_store.load(tenant_id)
            if stored is None:
                raise TenantNotConfiguredError(tenant_id)

            config = parse_tenant_config(stored, self.global_voice)
            bundle = await self._build(tenant_id, config, injected=False)
            self._bundles[tenant_id] = bundle
            logger.info(f"Cached services for tenant {tenant_id}")
            return bundle

    async def _build(self, tenant_id: str, config: TenantConfig, injected: bool) -> TenantServices:
        try:
            telephony = await self._create_telephony(config.telephony)
            llm = await self._create_llm(config.llm)
            speech = await self._create_speech(config.voice)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Provider initialization failed for tenant {tenant_id}: {type(e).__name__}")
            raise ConfigurationError(f"Provider initialization failed: {e}")

        return TenantServices(
            tenant_id=tenant_id,
            config=config,
            telephony=telephony,
            llm=llm,
            speech=speech,
            store=self.store(tenant_id),
            injected=injected,
        )

    async def update_config(self, tenant_id: str, payload: Mapping[str, Any]) -> TenantConfig:
        """
        Validate and persist a tenant's config, replacing any cached bundle.

        Calls already holding the previous bundle keep using it unchanged.
        """
        tenant_id = ensure_tenant_id(tenant_id)
        sections = extract_config_sections(payload)
        config = parse_tenant_config(sections, self.global_voice)

        self._config_store.save(tenant_id, merge_config_layers(sections))
        self.invalidate(tenant_id)
        return config

    def get_config(self, tenant_id: str) -> Optional[TenantConfig]:
        tenant_id = ensure_tenant_id(tenant_id)
        stored = self._config_store.load(tenant_id)
        if stored is None:
            return None
        return parse_tenant_config(stored, self.global_voice)

    def remove_config(self, tenant_id: str) -> bool:
        tenant_id = ensure_tenant_id(tenant_id)
        removed = self._config_store.delete(tenant_id)
        self.invalidate(tenant_id)
        return removed

    def invalidate(self, tenant_id: str) -> None:
        if self._bundles.pop(tenant_id, None) is not None:
            logger.info(f"Invalidated cached services for tenant {tenant_id}")

    def is_cached(self, tenant_id: str) -> bool:
        return tenant_id in self._bundles

    def close(self) -> None:
        for store in self._stores.values():
            store.close()
        self._stores.clear()
        self._bundles.clear()
