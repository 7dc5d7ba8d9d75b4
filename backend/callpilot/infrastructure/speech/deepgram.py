"""
Deepgram Speech Provider Implementation
Prerecorded transcription (Nova-2) and Aura text-to-speech over REST
"""
import logging
from typing import Optional

import httpx

from callpilot.domain.interfaces.speech_provider import SpeechProvider, SynthesizedAudio
from callpilot.domain.models.tenant_config import VoiceConfig

logger = logging.getLogger(__name__)


class DeepgramSpeechProvider(SpeechProvider):
    """
    Deepgram provider

    Voice names are Aura model ids, e.g. "aura-asteria-en".
    """

    API_BASE_URL = "https://api.deepgram.com/v1"
    STT_MODEL = "nova-2"
    DEFAULT_VOICE = "aura-asteria-en"
    REQUEST_TIMEOUT = 30.0

    def __init__(self):
        self._api_key: Optional[str] = None
        self._default_voice: str = self.DEFAULT_VOICE

    async def initialize(self, config: VoiceConfig) -> None:
        self._api_key = config.api_key
        self._default_voice = config.voice_name or self.DEFAULT_VOICE

    def _headers(self, content_type: str) -> dict:
        if not self._api_key:
            raise RuntimeError("Deepgram provider not initialized. Call initialize() first.")
        return {
            "Authorization": f"Token {self._api_key}",
            "Content-Type": content_type,
        }

    async def transcribe(
        self,
        audio: bytes,
        mime_type: str = "audio/mpeg",
        language: str = "en-US",
    ) -> str:
        params = {
            "model": self.STT_MODEL,
            "smart_format": "true",
            "punctuate": "true",
            "language": language,
        }

        async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT) as client:
            response = await client.post(
                f"{self.API_BASE_URL}/listen",
                params=params,
                content=audio,
                headers=self._headers(mime_type),
            )

            if response.status_code != 200:
                logger.error(f"Deepgram transcription failed: HTTP {response.status_code}")
                raise ValueError(f"Deepgram transcription failed: HTTP {response.status_code}")

            data = response.json()

        try:
            return data["results"]["channels"][0]["alternatives"][0]["transcript"].strip()
        except (KeyError, IndexError, TypeError):
            logger.warning("Deepgram response had no transcript")
            return ""

    async def synthesize(self, text: str, voice: str) -> SynthesizedAudio:
        params = {
            "model": voice or self._default_voice,
            "encoding": "mp3",
        }

        async with httpx.AsyncClient(timeout=self.REQUEST_TIMEOUT) as client:
            response = await client.post(
                f"{self.API_BASE_URL}/speak",
                params=params,
                json={"text": text},
                headers=self._headers("application/json"),
            )

            if response.status_code != 200:
                logger.error(f"Deepgram synthesis failed: HTTP {response.status_code}")
                raise ValueError(f"Deepgram synthesis failed: HTTP {response.status_code}")

            return SynthesizedAudio(data=response.content, content_type="audio/mpeg")

    async def cleanup(self) -> None:
        self._api_key = None

    @property
    def name(self) -> str:
        return "deepgram"
