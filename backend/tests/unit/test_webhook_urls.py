"""
Unit tests for the Webhook URL Resolver
"""
import pytest

from callpilot.core.exceptions import WebhookURLError
from callpilot.domain.services.webhook_urls import WebhookTarget, WebhookURLResolver


@pytest.fixture
def resolver():
    return WebhookURLResolver("https://voice.example.com", "/api/v1")


class TestResolve:
    """Building URLs"""

    def test_call_url_shape(self, resolver):
        url = resolver.resolve("acme", "call-1", "consent")
        assert url == "https://voice.example.com/api/v1/voice/acme/calls/call-1?action=consent"

    def test_call_url_without_action(self, resolver):
        assert resolver.resolve("acme", "call-1") == "https://voice.example.com/api/v1/voice/acme/calls/call-1"

    def test_endpoint_urls(self, resolver):
        assert resolver.endpoint_url("acme", "status") == "https://voice.example.com/api/v1/voice/acme/status"
        assert resolver.endpoint_url("acme", "inbound").endswith("/voice/acme/inbound")

    def test_media_urls(self, resolver):
        assert resolver.recording_url("acme", "c1").endswith("/voice/acme/calls/c1/recording")
        assert resolver.audio_url("acme", "c1", "ab12.mp3").endswith("/voice/acme/calls/c1/audio/ab12.mp3")

    def test_base_path_is_kept(self):
        resolver = WebhookURLResolver("https://example.com/tenant-gw/", "api/v1/")
        url = resolver.resolve("acme", "c1")
        assert url == "https://example.com/tenant-gw/api/v1/voice/acme/calls/c1"
        assert resolver.parse(url) == WebhookTarget(tenant_id="acme", call_id="c1")

    @pytest.mark.parametrize("tenant_id,call_id", [
        ("acme/evil", "c1"),
        ("acme", "c 1"),
        ("", "c1"),
        ("acme", ".."),
        ("acme", "c1?x=1"),
        ("acme\n", "c1"),
        ("acme", "c1\n"),
    ])
    def test_unsafe_ids_are_rejected(self, resolver, tenant_id, call_id):
        with pytest.raises(WebhookURLError):
            resolver.resolve(tenant_id, call_id)

    def test_unknown_endpoint(self, resolver):
        with pytest.raises(WebhookURLError):
            resolver.endpoint_url("acme", "config")

    def test_relative_base_url_rejected(self):
        with pytest.raises(WebhookURLError):
            WebhookURLResolver("/just/a/path")


class TestParse:
    """Parsing URLs back into targets"""

    @pytest.mark.parametrize("tenant_id,call_id,action", [
        ("acme", "3f2b6c1e-9a4d-4f6e-8b1a-2c3d4e5f6a7b", "turn"),
        ("tenant_01", "call.with.dots", None),
        ("T-9", "a~b_c-d", "recording"),
    ])
    def test_round_trip(self, resolver, tenant_id, call_id, action):
        """parse(resolve(t, c, a)) gives back exactly (t, c, a)"""
        target = resolver.parse(resolver.resolve(tenant_id, call_id, action))
        assert target == WebhookTarget(tenant_id=tenant_id, call_id=call_id, action=action)

    def test_endpoint_round_trip(self, resolver):
        target = resolver.parse(resolver.endpoint_url("acme", "status"))
        assert target == WebhookTarget(tenant_id="acme", endpoint="status")

    @pytest.mark.parametrize("url", [
        "https://voice.example.com/api/v1/voice/acme",
        "https://voice.example.com/api/v1/voice/acme/calls",
        "https://voice.example.com/api/v1/voice/acme/calls/c1/extra",
        "https://voice.example.com/api/v2/voice/acme/calls/c1",
        "https://voice.example.com/api/v1/voice/acme/unknown",
        "https://voice.example.com/api/v1/voice/acme/calls/c1?action=turn&action=consent",
        "https://voice.example.com/api/v1/voice/acme/calls/c1?foo=bar",
        "https://voice.example.com/api/v1/voice/acme/calls/c1?action=",
        "https://voice.example.com/api/v1/voice/acme/calls/c1#frag",
        "https://voice.example.com/api/v1/voice/acme/status?action=turn",
        "https://voice.example.com/api/v1/voice/ac%20me/calls/c1",
        "",
    ])
    def test_malformed_urls_are_rejected(self, resolver, url):
        with pytest.raises(WebhookURLError):
            resolver.parse(url)
