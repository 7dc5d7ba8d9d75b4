"""
Telephony Provider Factory
"""
from typing import Dict, Type

from callpilot.domain.interfaces.telephony_provider import TelephonyProvider
from callpilot.domain.models.tenant_config import TelephonyConfig, TelephonyProviderName
from callpilot.infrastructure.telephony.vonage_provider import VonageTelephonyProvider


class TelephonyFactory:
    """Factory for creating telephony provider instances"""

    _providers: Dict[str, Type[TelephonyProvider]] = {}

    @classmethod
    def get_class(cls, name: TelephonyProviderName) -> Type[TelephonyProvider]:
        """Provider class, for credential-free parsing and rendering"""
        provider_name = TelephonyProviderName(name).value
        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys()) if cls._providers else "None"
            raise ValueError(f"Unknown telephony provider: {provider_name}. Available: {available}")
        return cls._providers[provider_name]

    @classmethod
    async def create(cls, config: TelephonyConfig) -> TelephonyProvider:
        """Create and initialize the provider named in the config"""
        provider = cls.get_class(config.provider)()
        await provider.initialize(config)
        return provider

    @classmethod
    def register(cls, name: TelephonyProviderName, provider_class: Type[TelephonyProvider]) -> None:
        """Register a provider"""
        cls._providers[TelephonyProviderName(name).value] = provider_class

    @classmethod
    def list_providers(cls) -> list[str]:
        """List available providers"""
        return list(cls._providers.keys())


TelephonyFactory.register(TelephonyProviderName.VONAGE, VonageTelephonyProvider)
