"""
Tests for tenant configuration parsing
Required keys, malformed values, layer merging and redaction
"""
import pytest

from callpilot.core.exceptions import ConfigurationError
from callpilot.domain.models.tenant_config import (
    extract_config_sections,
    find_missing_fields,
    merge_config_layers,
    parse_tenant_config,
)


class TestParseTenantConfig:
    """Validation of a raw payload into a TenantConfig"""

    def test_complete_config_parses(self, make_config):
        config = parse_tenant_config(make_config())

        assert config.telephony.provider == "vonage"
        assert config.llm.provider == "groq"
        assert config.llm.temperature == 0.6
        assert config.voice.voice_name == "aura-asteria-en"
        assert config.agent.name == "Ava"
        assert config.agent.voice is None

    def test_every_missing_key_is_listed(self):
        """An empty payload reports every required key, not just the first"""
        with pytest.raises(ConfigurationError) as exc_info:
            parse_tenant_config({})

        missing = exc_info.value.missing_fields
        assert "telephony.api_key" in missing
        assert "telephony.private_key" in missing
        assert "llm.provider" in missing
        assert "voice.voice_name" in missing
        assert "agent.prompt" in missing
        assert len(missing) == 12

    def test_blank_values_count_as_missing(self, make_config):
        config = make_config()
        config["telephony"]["api_secret"] = "   "

        with pytest.raises(ConfigurationError) as exc_info:
            parse_tenant_config(config)

        assert exc_info.value.missing_fields == ["telephony.api_secret"]

    def test_malformed_values_are_reported(self, make_config):
        config = make_config()
        config["llm"]["provider"] = "skynet"
        config["llm"]["temperature"] = 9

        with pytest.raises(ConfigurationError) as exc_info:
            parse_tenant_config(config)

        error = exc_info.value
        assert error.missing_fields == []
        assert "llm.provider" in error.invalid_fields
        assert "llm.temperature" in error.invalid_fields

    def test_error_dict_shape(self):
        with pytest.raises(ConfigurationError) as exc_info:
            parse_tenant_config({"agent": {"name": "Ava"}})

        body = exc_info.value.to_dict()
        assert body["error"] == "configuration_error"
        assert "agent.prompt" in body["missing_fields"]
        assert body["invalid_fields"] == {}

    def test_global_voice_fills_gaps(self, make_config):
        """Global voice credentials cover a tenant that only names a voice"""
        config = make_config(voice={"voice_name": "aura-luna-en"})

        parsed = parse_tenant_config(config, global_voice={"provider": "deepgram", "api_key": "dg-global"})

        assert parsed.voice.api_key == "dg-global"
        assert parsed.voice.voice_name == "aura-luna-en"

    def test_tenant_voice_beats_global_voice(self, make_config):
        parsed = parse_tenant_config(
            make_config(),
            global_voice={"provider": "elevenlabs", "api_key": "el-global"},
        )

        assert parsed.voice.provider == "deepgram"
        assert parsed.voice.api_key == "dg-test"


class TestMergeLayers:
    """Section-by-section merging"""

    def test_later_layer_wins(self):
        merged = merge_config_layers(
            {"llm": {"provider": "groq", "api_key": "a"}},
            {"llm": {"api_key": "b"}},
        )
        assert merged == {"llm": {"provider": "groq", "api_key": "b"}}

    def test_blank_values_do_not_override(self):
        merged = merge_config_layers(
            {"voice": {"voice_name": "aura-asteria-en"}},
            {"voice": {"voice_name": ""}},
        )
        assert merged["voice"]["voice_name"] == "aura-asteria-en"

    def test_inputs_are_not_mutated(self):
        base = {"agent": {"name": "Ava"}}
        merge_config_layers(base, {"agent": {"name": "Max"}})
        assert base == {"agent": {"name": "Ava"}}

    def test_extract_ignores_unrelated_keys(self, make_config):
        body = {"contact": {"phone_number": "+1555"}, **make_config()}
        sections = extract_config_sections(body)
        assert set(sections) == {"telephony", "llm", "voice", "agent"}

    def test_extract_accepts_config_envelope(self, make_config):
        sections = extract_config_sections({"config": make_config()})
        assert sections["agent"]["name"] == "Ava"

    def test_find_missing_ignores_non_mapping_sections(self):
        missing = find_missing_fields({"llm": "groq"})
        assert "llm.provider" in missing


class TestRedaction:
    """Secrets never leave the service in clear text"""

    def test_sensitive_fields_masked(self, make_config):
        redacted = parse_tenant_config(make_config()).redacted()

        assert redacted["telephony"]["api_secret"] == "****cret"
        assert redacted["llm"]["api_key"] == "****test"
        assert "BEGIN PRIVATE KEY" not in redacted["telephony"]["private_key"]
        assert redacted["telephony"]["phone_number"] == "+15550001111"
        assert redacted["agent"]["prompt"].startswith("You are Ava")

    def test_short_secrets_fully_masked(self, make_config):
        config = make_config()
        config["voice"]["api_key"] = "abc"
        assert parse_tenant_config(config).redacted()["voice"]["api_key"] == "****"
