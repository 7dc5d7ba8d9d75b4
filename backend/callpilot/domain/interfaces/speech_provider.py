"""
Speech Provider Interface
Abstract base class for speech-to-text and text-to-speech vendors
"""
from abc import ABC, abstractmethod

from pydantic import BaseModel

from callpilot.domain.models.tenant_config import VoiceConfig


class SynthesizedAudio(BaseModel):
    """Audio produced by a text-to-speech call"""
    data: bytes
    content_type: str = "audio/mpeg"

    @property
    def extension(self) -> str:
        return {
            "audio/mpeg": "mp3",
            "audio/mp3": "mp3",
            "audio/wav": "wav",
            "audio/x-wav": "wav",
        }.get(self.content_type, "mp3")


class SpeechProvider(ABC):
    """Abstract base class for speech providers"""

    @abstractmethod
    async def initialize(self, config: VoiceConfig) -> None:
        """Initialize the provider with configuration"""
        pass

    @abstractmethod
    async def transcribe(
        self,
        audio: bytes,
        mime_type: str = "audio/mpeg",
        language: str = "en-US",
    ) -> str:
        """
        Transcribe a complete audio clip

        Returns:
            str: Recognized text, empty when nothing was said
        """
        pass

    @abstractmethod
    async def synthesize(self, text: str, voice: str) -> SynthesizedAudio:
        """Convert text to audio using the given voice"""
        pass

    @abstractmethod
    async def cleanup(self) -> None:
        """Release resources"""
        pass

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name"""
        pass
