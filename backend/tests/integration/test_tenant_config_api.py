"""
Integration tests for tenant configuration endpoints
"""
import json

import pytest


class TestPutConfig:
    """PUT /voice/{tenant}/config"""

    @pytest.mark.asyncio
    async def test_store_config(self, client, make_config, settings):
        response = await client.put("/api/v1/voice/acme/config", json=make_config())

        assert response.status_code == 200
        data = response.json()
        assert data["tenant_id"] == "acme"
        assert data["config"]["telephony"]["api_secret"] == "****cret"
        assert data["config"]["agent"]["name"] == "Ava"
        assert "vonage-secret" not in response.text

        with open(f"{settings.data_dir}/tenants/acme/config.json", "r", encoding="utf-8") as f:
            on_disk = f.read()
        assert "vonage-secret" not in on_disk
        assert "gsk-test" not in on_disk
        assert json.loads(on_disk)["config"]["agent"]["name"] == "Ava"

    @pytest.mark.asyncio
    async def test_config_envelope(self, client, make_config):
        response = await client.put("/api/v1/voice/acme/config", json={"config": make_config()})
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_incomplete_config(self, client):
        response = await client.put(
            "/api/v1/voice/acme/config",
            json={"agent": {"name": "Ava"}, "llm": {"provider": "groq"}},
        )

        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["error"] == "configuration_error"
        assert "agent.prompt" in detail["missing_fields"]
        assert "llm.api_key" in detail["missing_fields"]

    @pytest.mark.asyncio
    async def test_invalid_value(self, client, make_config):
        config = make_config()
        config["llm"]["temperature"] = -1

        response = await client.put("/api/v1/voice/acme/config", json=config)

        assert response.status_code == 400
        assert "llm.temperature" in response.json()["detail"]["invalid_fields"]

    @pytest.mark.asyncio
    async def test_update_applies_to_new_calls(self, client, make_config, fake_telephony):
        await client.put("/api/v1/voice/acme/config", json=make_config())
        await client.post("/api/v1/voice/acme/outbound", json={"to": "+15557654321"})

        updated = make_config()
        updated["telephony"]["phone_number"] = "+15559990000"
        await client.put("/api/v1/voice/acme/config", json=updated)
        await client.post("/api/v1/voice/acme/outbound", json={"to": "+15557654321"})

        assert fake_telephony.config.phone_number == "+15559990000"

    @pytest.mark.asyncio
    async def test_invalid_tenant_id(self, client, make_config):
        response = await client.put("/api/v1/voice/bad.tenant/config", json=make_config())
        assert response.status_code == 404


class TestGetAndDeleteConfig:
    """GET and DELETE /voice/{tenant}/config"""

    @pytest.mark.asyncio
    async def test_get_redacted(self, client, configured_tenant):
        response = await client.get("/api/v1/voice/acme/config")

        assert response.status_code == 200
        assert response.json()["config"]["llm"]["api_key"] == "****test"
        assert "BEGIN PRIVATE KEY" not in response.text

    @pytest.mark.asyncio
    async def test_get_unknown(self, client):
        response = await client.get("/api/v1/voice/acme/config")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_corrupt_config(self, client, configured_tenant, settings):
        with open(f"{settings.data_dir}/tenants/acme/config.json", "w", encoding="utf-8") as f:
            f.write("{}")

        response = await client.get("/api/v1/voice/acme/config")

        assert response.status_code == 500
        assert response.json()["detail"]["type"] == "decryption_error"

    @pytest.mark.asyncio
    async def test_delete(self, client, configured_tenant):
        response = await client.delete("/api/v1/voice/acme/config")
        assert response.status_code == 204

        assert (await client.get("/api/v1/voice/acme/config")).status_code == 404
        assert (await client.delete("/api/v1/voice/acme/config")).status_code == 404

    @pytest.mark.asyncio
    async def test_delete_stops_new_calls(self, client, configured_tenant):
        await client.delete("/api/v1/voice/acme/config")

        response = await client.post("/api/v1/voice/acme/outbound", json={"to": "+15557654321"})

        assert response.status_code == 400
