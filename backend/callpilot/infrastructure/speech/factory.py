"""
Speech Provider Factory
"""
from typing import Dict, Type

from callpilot.domain.interfaces.speech_provider import SpeechProvider
from callpilot.domain.models.tenant_config import SpeechProviderName, VoiceConfig
from callpilot.infrastructure.speech.deepgram import DeepgramSpeechProvider
from callpilot.infrastructure.speech.elevenlabs import ElevenLabsSpeechProvider


class SpeechFactory:
    """Factory for creating speech provider instances"""

    _providers: Dict[str, Type[SpeechProvider]] = {}

    @classmethod
    async def create(cls, config: VoiceConfig) -> SpeechProvider:
        """Create and initialize the provider named in the config"""
        provider_name = SpeechProviderName(config.provider).value
        if provider_name not in cls._providers:
            available = ", ".join(cls._providers.keys()) if cls._providers else "None"
            raise ValueError(f"Unknown speech provider: {provider_name}. Available: {available}")

        provider = cls._providers[provider_name]()
        await provider.initialize(config)
        return provider

    @classmethod
    def register(cls, name: SpeechProviderName, provider_class: Type[SpeechProvider]) -> None:
        """Register a provider"""
        cls._providers[SpeechProviderName(name).value] = provider_class

    @classmethod
    def list_providers(cls) -> list[str]:
        """List available providers"""
        return list(cls._providers.keys())


SpeechFactory.register(SpeechProviderName.DEEPGRAM, DeepgramSpeechProvider)
SpeechFactory.register(SpeechProviderName.ELEVENLABS, ElevenLabsSpeechProvider)
