"""
Call Control Models
Vendor-neutral instructions telling the telephony layer what the caller hears next,
plus the normalized form of incoming telephony webhooks
"""
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field


class Say(BaseModel):
    """Speak fixed text with the vendor's own voice"""
    kind: Literal["say"] = "say"
    text: str
    barge_in: bool = False


class Play(BaseModel):
    """Play a synthesized audio clip from a URL"""
    kind: Literal["play"] = "play"
    url: str
    barge_in: bool = True


class Gather(BaseModel):
    """Collect the caller's next input and post it to action_url"""
    kind: Literal["gather"] = "gather"
    action_url: str
    input_types: List[str] = Field(default_factory=lambda: ["speech"])
    language: Optional[str] = None
    timeout_seconds: int = Field(default=5, ge=1, le=60)


class Record(BaseModel):
    """Record the remainder of the call, reporting the recording to event_url"""
    kind: Literal["record"] = "record"
    event_url: str
    format: str = "mp3"


class Hangup(BaseModel):
    """End the call once preceding instructions finish"""
    kind: Literal["hangup"] = "hangup"


Instruction = Union[Say, Play, Gather, Record, Hangup]


class CallControl(BaseModel):
    """Ordered call-control instructions for one webhook response"""
    instructions: List[Instruction] = Field(default_factory=list)

    def say(self, text: str, barge_in: bool = False) -> "CallControl":
        self.instructions.append(Say(text=text, barge_in=barge_in))
        return self

    def play(self, url: str) -> "CallControl":
        self.instructions.append(Play(url=url))
        return self

    def gather(self, action_url: str, language: Optional[str] = None, dtmf: bool = False) -> "CallControl":
        input_types = ["speech", "dtmf"] if dtmf else ["speech"]
        self.instructions.append(Gather(action_url=action_url, language=language, input_types=input_types))
        return self

    def record(self, event_url: str) -> "CallControl":
        self.instructions.append(Record(event_url=event_url))
        return self

    def hangup(self) -> "CallControl":
        self.instructions.append(Hangup())
        return self

    @property
    def ends_call(self) -> bool:
        return any(isinstance(i, Hangup) for i in self.instructions)

    @property
    def gathers_input(self) -> bool:
        return any(isinstance(i, Gather) for i in self.instructions)


class RenderedControl(BaseModel):
    """Vendor markup ready to be returned as the webhook response body"""
    body: Union[list, dict, str]
    media_type: str


class TelephonyEvent(BaseModel):
    """Normalized telephony webhook payload"""
    provider_call_id: Optional[str] = None
    from_number: Optional[str] = None
    to_number: Optional[str] = None
    status: Optional[str] = None
    speech_text: Optional[str] = None
    speech_confidence: Optional[float] = None
    digits: Optional[str] = None
    audio_url: Optional[str] = Field(None, description="Caller audio to transcribe when no text was recognized")
    recording_url: Optional[str] = Field(None, description="Recording of the whole call")
    duration_seconds: Optional[int] = None

    @property
    def has_input(self) -> bool:
        return bool((self.speech_text or "").strip() or self.digits or self.audio_url)
