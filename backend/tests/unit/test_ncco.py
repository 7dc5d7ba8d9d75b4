"""
Tests for Vonage call control: NCCO rendering and webhook parsing
"""
import pytest

from callpilot.domain.models.call_control import CallControl
from callpilot.infrastructure.telephony.ncco import NCCO_MEDIA_TYPE, NCCOBuilder
from callpilot.infrastructure.telephony.vonage_provider import VonageTelephonyProvider


class TestNCCOBuilder:
    """CallControl -> NCCO action list"""

    def test_consent_prompt(self):
        control = CallControl().say("Do you consent?", barge_in=True).gather(
            "https://voice.example.com/consent", dtmf=True
        )

        ncco = NCCOBuilder().build(control)

        assert [a["action"] for a in ncco] == ["talk", "input"]
        assert ncco[0]["bargeIn"] is True
        assert ncco[1]["type"] == ["speech", "dtmf"]
        assert ncco[1]["eventUrl"] == ["https://voice.example.com/consent"]
        assert ncco[1]["eventMethod"] == "POST"
        assert ncco[1]["speech"]["language"] == "en-US"
        assert ncco[1]["dtmf"]["maxDigits"] == 1

    def test_barge_in_requires_input(self):
        """Vonage rejects bargeIn talk actions not followed by an input action"""
        ncco = NCCOBuilder().build(CallControl().say("Goodbye.", barge_in=True).hangup())

        assert ncco == [{
            "action": "talk",
            "text": "Goodbye.",
            "language": "en-US",
            "style": 0,
            "bargeIn": False,
        }]

    def test_stream_and_record(self):
        control = (
            CallControl()
            .record("https://voice.example.com/rec")
            .play("https://voice.example.com/clip.mp3")
            .gather("https://voice.example.com/turn")
        )

        ncco = NCCOBuilder(language="en-GB").build(control)

        assert [a["action"] for a in ncco] == ["record", "stream", "input"]
        assert ncco[0]["eventUrl"] == ["https://voice.example.com/rec"]
        assert ncco[0]["format"] == "mp3"
        assert ncco[1]["streamUrl"] == ["https://voice.example.com/clip.mp3"]
        assert ncco[1]["bargeIn"] is True
        assert ncco[2]["type"] == ["speech"]
        assert "dtmf" not in ncco[2]
        assert ncco[2]["speech"]["language"] == "en-GB"

    def test_hangup_stops_rendering(self):
        control = CallControl().say("Bye.").hangup().say("never spoken")

        ncco = NCCOBuilder().build(control)

        assert len(ncco) == 1
        assert control.ends_call is True

    def test_render_media_type(self):
        rendered = VonageTelephonyProvider.render(CallControl().say("Hi"))
        assert rendered.media_type == NCCO_MEDIA_TYPE == "application/json"
        assert isinstance(rendered.body, list)

    def test_render_language(self):
        """The render language applies to talk and input unless a gather sets its own"""
        control = CallControl().say("Hola").gather("https://voice.example.com/turn")

        rendered = VonageTelephonyProvider.render(control, language="es-ES")

        assert rendered.body[0]["language"] == "es-ES"
        assert rendered.body[1]["speech"]["language"] == "es-ES"

        own = CallControl().gather("https://voice.example.com/turn", language="fr-FR")
        assert VonageTelephonyProvider.render(own, language="es-ES").body[0]["speech"]["language"] == "fr-FR"


class TestVonageEvents:
    """Webhook body normalization"""

    def test_speech_input(self, make_speech_event):
        event = VonageTelephonyProvider.parse_event(make_speech_event(text="  yes please "))

        assert event.provider_call_id == "vonage-uuid-1"
        assert event.speech_text == "yes please"
        assert event.speech_confidence == pytest.approx(0.92)
        assert event.has_input is True

    def test_dtmf_input(self):
        event = VonageTelephonyProvider.parse_event({"uuid": "u1", "dtmf": {"digits": "1", "timed_out": False}})
        assert event.digits == "1"
        assert event.has_input is True

    def test_speech_timeout_has_no_input(self):
        payload = {"uuid": "u1", "speech": {"timeout_reason": "start_timeout", "results": []}}
        event = VonageTelephonyProvider.parse_event(payload)
        assert event.speech_text is None
        assert event.has_input is False

    def test_status_event(self):
        event = VonageTelephonyProvider.parse_event({
            "uuid": "u1",
            "status": "completed",
            "duration": "67",
            "from": "15550001111",
            "to": "15557654321",
        })

        assert event.status == "completed"
        assert event.duration_seconds == 67
        assert event.from_number == "15550001111"

    def test_recording_event(self):
        event = VonageTelephonyProvider.parse_event({
            "conversation_uuid": "CON-1",
            "call_uuid": "u1",
            "recording_url": "https://api.nexmo.com/v1/files/abc",
        })
        assert event.provider_call_id == "u1"
        assert event.recording_url == "https://api.nexmo.com/v1/files/abc"

    @pytest.mark.parametrize("payload", [{}, None, {"duration": "n/a", "speech": "garbled"}])
    def test_tolerates_odd_payloads(self, payload):
        event = VonageTelephonyProvider.parse_event(payload)
        assert event.has_input is False
        assert event.duration_seconds is None

    def test_number_normalization(self):
        assert VonageTelephonyProvider._normalize_number("+1 (555) 765-4321") == "15557654321"
