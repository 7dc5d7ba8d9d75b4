"""
Telephony Provider Interface
Abstract base class for telephony/VoIP providers
"""
from abc import ABC, abstractmethod
from typing import Any, Mapping

from callpilot.domain.models.call_control import CallControl, RenderedControl, TelephonyEvent
from callpilot.domain.models.tenant_config import TelephonyConfig


class TelephonyProvider(ABC):
    """Abstract base class for telephony providers"""

    @abstractmethod
    async def initialize(self, config: TelephonyConfig) -> None:
        """Initialize the provider with configuration"""
        pass

    @abstractmethod
    async def place_call(self, to_number: str, answer_url: str, event_url: str) -> str:
        """
        Initiate an outbound call

        Args:
            to_number: Destination phone number
            answer_url: URL the vendor fetches call-control instructions from
            event_url: URL for call status events

        Returns:
            Provider call identifier
        """
        pass

    @abstractmethod
    async def fetch_recording(self, url: str) -> bytes:
        """Download a recording or caller audio clip hosted by the vendor"""
        pass

    @classmethod
    @abstractmethod
    def parse_event(cls, payload: Mapping[str, Any]) -> TelephonyEvent:
        """Normalize a webhook body from this vendor (no credentials needed)"""
        pass

    @classmethod
    @abstractmethod
    def render(cls, control: CallControl, language: str = "en-US") -> RenderedControl:
        """Render call-control instructions as vendor markup (no credentials needed)"""
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
