"""
Vonage Telephony Provider
Outbound call origination, recording download, webhook parsing and NCCO rendering
"""
import asyncio
import logging
from typing import Any, Mapping, Optional

import vonage

from callpilot.domain.interfaces.telephony_provider import TelephonyProvider
from callpilot.domain.models.call_control import CallControl, RenderedControl, TelephonyEvent
from callpilot.domain.models.tenant_config import TelephonyConfig
from callpilot.infrastructure.telephony.ncco import NCCO_MEDIA_TYPE, NCCOBuilder

logger = logging.getLogger(__name__)


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def _to_float(value: Any) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class VonageTelephonyProvider(TelephonyProvider):
    """
    Vonage Voice API provider.

    The Vonage SDK is synchronous, so API calls run in a worker thread to
    keep the event loop free.
    """

    def __init__(self):
        self._client: Optional[vonage.Client] = None
        self._voice: Optional[vonage.Voice] = None
        self._from_number: Optional[str] = None

    async def initialize(self, config: TelephonyConfig) -> None:
        """Initialize Vonage client."""
        self._client = vonage.Client(
            key=config.api_key,
            secret=config.api_secret,
            application_id=config.application_id,
            private_key=config.private_key,
        )
        self._voice = vonage.Voice(self._client)
        self._from_number = self._normalize_number(config.phone_number)
        logger.info("Vonage telephony provider initialized")

    async def place_call(self, to_number: str, answer_url: str, event_url: str) -> str:
        """
        Initiate an outbound call.

        Returns:
            Vonage call UUID
        """
        if self._voice is None:
            raise RuntimeError("Vonage provider not initialized. Call initialize() first.")

        params = {
            "to": [{"type": "phone", "number": self._normalize_number(to_number)}],
            "from": {"type": "phone", "number": self._from_number},
            "answer_url": [answer_url],
            "answer_method": "POST",
            "event_url": [event_url],
            "event_method": "POST",
        }

        logger.info(f"Initiating call to {params['to'][0]['number']}")
        response = await asyncio.to_thread(self._voice.create_call, params)

        call_uuid = response.get("uuid") if isinstance(response, dict) else None
        if not call_uuid:
            raise RuntimeError("Vonage did not return a call UUID")

        logger.info(f"Call initiated: uuid={call_uuid}")
        return call_uuid

    async def fetch_recording(self, url: str) -> bytes:
        if self._voice is None:
            raise RuntimeError("Vonage provider not initialized. Call initialize() first.")
        return await asyncio.to_thread(self._voice.get_recording, url)

    @classmethod
    def parse_event(cls, payload: Mapping[str, Any]) -> TelephonyEvent:
        """
        Normalize answer, input, record and event webhooks.

        Speech results arrive as speech.results[0].text, DTMF as dtmf.digits,
        recordings as recording_url.
        """
        payload = payload or {}

        speech_text = None
        confidence = None
        speech = payload.get("speech")
        if isinstance(speech, Mapping):
            results = speech.get("results") or []
            if results and isinstance(results[0], Mapping):
                speech_text = (results[0].get("text") or "").strip() or None
                confidence = _to_float(results[0].get("confidence"))
        elif isinstance(payload.get("speech_result"), str):
            speech_text = payload["speech_result"].strip() or None

        digits = None
        dtmf = payload.get("dtmf")
        if isinstance(dtmf, Mapping):
            digits = dtmf.get("digits") or None
        elif isinstance(dtmf, str):
            digits = dtmf or None

        return TelephonyEvent(
            provider_call_id=payload.get("uuid") or payload.get("call_uuid"),
            from_number=payload.get("from"),
            to_number=payload.get("to"),
            status=payload.get("status"),
            speech_text=speech_text,
            speech_confidence=confidence,
            digits=digits,
            audio_url=payload.get("audio_url"),
            recording_url=payload.get("recording_url"),
            duration_seconds=_to_int(payload.get("duration")),
        )

    @classmethod
    def render(cls, control: CallControl, language: str = "en-US") -> RenderedControl:
        return RenderedControl(body=NCCOBuilder(language).build(control), media_type=NCCO_MEDIA_TYPE)

    async def cleanup(self) -> None:
        self._voice = None
        self._client = None

    @property
    def name(self) -> str:
        return "vonage"

    @staticmethod
    def _normalize_number(number: str) -> str:
        """Vonage expects E.164 digits without the leading +."""
        digits = "".join(c for c in (number or "") if c.isdigit())
        return digits
