"""
ElevenLabs Speech Provider Implementation
Text-to-speech and Scribe speech-to-text over REST
"""
import logging
from typing import Optional

import httpx

from callpilot.domain.interfaces.speech_provider import SpeechProvider, SynthesizedAudio
from callpilot.domain.models.tenant_config import VoiceConfig

logger = logging.getLogger(__name__)


class ElevenLabsSpeechProvider(SpeechProvider):
    """
    ElevenLabs provider

    Voice names are ElevenLabs voice ids.
    """

    API_BASE_URL = "https://api.elevenlabs.io/v1"
    TTS_MODEL = "eleven_turbo_v2_5"
    STT_MODEL = "scribe_v1"
    REQUEST_TIMEOUT = 30.0

    # Voice settings tuned for phone playback
    VOICE_SETTINGS = {
        "stability": 0.5,
        "similarity_boost": 0.75,
        "use_speaker_boost": True,
    }

    def __init__(self):
        self._api_key: Optional[str] = None
        self._default_voice: Optional[str] = None

    async def initialize(self, config: VoiceConfig) -> None:
        self._api_key = config.api_key
        self._default_voice = config.voice_name

    def _require_key(self) -> str:
        if not self._api_key:
            raise RuntimeError("ElevenLabs provider not initialized. Call initialize() first.")
        return self._api_key

    async def transcribe(
        self,
        audio: bytes,
        mime_type: str = "audio/mpeg",
        language: str = "en-US",
    ) -> str:
        headers = {"xi-api-key": self._require_key()}
        data = {
            "model_id": self.STT_MODEL,
            "language_code": language.split("-")[0],
        }
        files = {"file": ("audio", audio, mime_type)}

        async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT) as client:
            response = await client.post(
                f"{self.API_BASE_URL}/speech-to-text",
                data=data,
                files=files,
                headers=headers,
            )

            if response.status_code != 200:
                logger.error(f"ElevenLabs transcription failed: HTTP {response.status_code}")
                raise ValueError(f"ElevenLabs transcription failed: HTTP {response.status_code}")

            return (response.json().get("text") or "").strip()

    async def synthesize(self, text: str, voice: str) -> SynthesizedAudio:
        voice_id = voice or self._default_voice
        headers = {
            "xi-api-key": self._require_key(),
            "accept": "audio/mpeg",
            "content-type": "application/json",
        }
        payload = {
            "text": text,
            "model_id": self.TTS_MODEL,
            "voice_settings": self.VOICE_SETTINGS,
        }

        async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT) as client:
            response = await client.post(
                f"{self.API_BASE_URL}/text-to-speech/{voice_id}",
                json=payload,
                headers=headers,
            )

            if response.status_code != 200:
                logger.error(f"ElevenLabs synthesis failed: HTTP {response.status_code}")
                raise ValueError(f"ElevenLabs synthesis failed: HTTP {response.status_code}")

            return SynthesizedAudio(data=response.content, content_type="audio/mpeg")

    async def cleanup(self) -> None:
        self._api_key = None

    @property
    def name(self) -> str:
        return "elevenlabs"
