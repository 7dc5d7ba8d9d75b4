"""
NCCO Builder
Renders vendor-neutral call control as a Vonage Nexmo Call Control Object
"""
from typing import Any, Dict, List

from callpilot.domain.models.call_control import (
    CallControl,
    Gather,
    Hangup,
    Play,
    Record,
    Say,
)

NCCO_MEDIA_TYPE = "application/json"

# Seconds of silence that end a spoken answer
SPEECH_END_ON_SILENCE = 1.5
SPEECH_MAX_DURATION = 30


class NCCOBuilder:
    """
    Builds NCCO action lists.

    Notes on Vonage semantics:
    - talk/stream with bargeIn must be followed by an input action
    - record without endOnSilence keeps recording until the call ends
    - there is no hangup action; a call ends when the NCCO runs out
    """

    def __init__(self, language: str = "en-US"):
        self.language = language

    def build(self, control: CallControl) -> List[Dict[str, Any]]:
        ncco: List[Dict[str, Any]] = []
        has_input = control.gathers_input

        for instruction in control.instructions:
            if isinstance(instruction, Say):
                ncco.append(self._talk(instruction, has_input))
            elif isinstance(instruction, Play):
                ncco.append(self._stream(instruction, has_input))
            elif isinstance(instruction, Gather):
                ncco.append(self._input(instruction))
            elif isinstance(instruction, Record):
                ncco.append(self._record(instruction))
            elif isinstance(instruction, Hangup):
                break

        return ncco

    def _talk(self, say: Say, has_input: bool) -> Dict[str, Any]:
        return {
            "action": "talk",
            "text": say.text,
            "language": self.language,
            "style": 0,
            "bargeIn": say.barge_in and has_input,
        }

    def _stream(self, play: Play, has_input: bool) -> Dict[str, Any]:
        return {
            "action": "stream",
            "streamUrl": [play.url],
            "bargeIn": play.barge_in and has_input,
        }

    def _input(self, gather: Gather) -> Dict[str, Any]:
        action: Dict[str, Any] = {
            "action": "input",
            "type": list(gather.input_types),
            "eventUrl": [gather.action_url],
            "eventMethod": "POST",
        }
        if "speech" in gather.input_types:
            action["speech"] = {
                "language": gather.language or self.language,
                "endOnSilence": SPEECH_END_ON_SILENCE,
                "maxDuration": SPEECH_MAX_DURATION,
                "startTimeout": gather.timeout_seconds,
            }
        if "dtmf" in gather.input_types:
            action["dtmf"] = {
                "maxDigits": 1,
                "timeOut": gather.timeout_seconds,
            }
        return action

    def _record(self, record: Record) -> Dict[str, Any]:
        return {
            "action": "record",
            "eventUrl": [record.event_url],
            "eventMethod": "POST",
            "format": record.format,
            "beepStart": False,
        }
