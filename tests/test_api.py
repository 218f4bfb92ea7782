"""HTTP surface: verification, session bootstrap, sidecar callbacks, status"""

import os
import re
import signal
from unittest.mock import AsyncMock, Mock

import pytest
from httpx import ASGITransport, AsyncClient

from wagate.api import dependencies
from wagate.main import app
from tests.conftest import BOT_JID, text_message

SIDECAR_HEADERS = {"X-API-Key": "test-sidecar-key"}
TOKEN = "CLOUD-AI~ABC123#deadbeef"


@pytest.fixture
def restart():
    return AsyncMock()


@pytest.fixture
async def client(gateway, restart):
    app.state.gateway = gateway
    app.state.restart = restart
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    await gateway.shutdown()
    del app.state.gateway
    del app.state.restart


async def verify(client, session_id="web-session-1"):
    response = await client.post("/verify-channel", json={"sessionId": session_id})
    assert response.status_code == 200
    return session_id


class TestHealth:
    @pytest.mark.anyio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.anyio
    async def test_gateway_not_ready(self):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            response = await ac.get("/status/default")
        assert response.status_code == 503


class TestVerification:
    @pytest.mark.anyio
    async def test_verify_then_check(self, client):
        response = await client.post("/verify-channel", json={"sessionId": "abc"})
        assert response.json() == {
            "success": True,
            "verified": True,
            "message": "Verification complete. You may now deploy your bot.",
        }

        response = await client.get("/check-verification/abc")
        assert response.json() == {"verified": True, "channelLink": "https://whatsapp.com/channel/0029TESTCHANNEL"}

    @pytest.mark.anyio
    async def test_verify_is_idempotent(self, client, gateway):
        await verify(client, "abc")
        await verify(client, "abc")
        assert len(gateway.verifications) == 1

    @pytest.mark.anyio
    async def test_verify_requires_id(self, client):
        response = await client.post("/verify-channel", json={})
        assert response.status_code == 400

    @pytest.mark.anyio
    async def test_unknown_id_is_unverified(self, client):
        response = await client.get("/check-verification/nobody")
        assert response.json()["verified"] is False


class TestSetSession:
    @pytest.mark.anyio
    async def test_unverified_is_rejected_without_side_effects(self, client, gateway, blob_store, factory):
        response = await client.post("/set-session", json={"sessionId": "nobody", "SESSION_ID": TOKEN})

        assert response.status_code == 403
        assert response.json() == {
            "error": "Please verify by visiting our channel first",
            "channelLink": "https://whatsapp.com/channel/0029TESTCHANNEL",
        }
        assert blob_store.calls == []
        assert factory.created == []
        assert gateway.paths.restorable_tenants() == []

    @pytest.mark.anyio
    async def test_missing_session_id(self, client):
        session_id = await verify(client)
        response = await client.post("/set-session", json={"sessionId": session_id})
        assert response.status_code == 400

    @pytest.mark.anyio
    async def test_malformed_token(self, client, blob_store):
        session_id = await verify(client)
        response = await client.post("/set-session", json={"sessionId": session_id, "SESSION_ID": "garbage"})

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid session ID format"
        assert blob_store.calls == []

    @pytest.mark.anyio
    async def test_download_failure(self, client, blob_store, factory, download_error):
        blob_store.error = download_error
        session_id = await verify(client)
        response = await client.post("/set-session", json={"sessionId": session_id, "SESSION_ID": TOKEN})

        assert response.status_code == 500
        assert response.json()["error"].startswith("Session download failed")
        assert factory.created == []

    @pytest.mark.anyio
    async def test_success_persists_and_starts(self, client, gateway, blob_store, factory):
        session_id = await verify(client)
        response = await client.post(
            "/set-session",
            json={"sessionId": session_id, "SESSION_ID": TOKEN, "tenantId": "shop-42"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True}
        assert blob_store.calls == [("ABC123", "deadbeef")]
        assert (gateway.paths.root / "shop-42" / "creds.json").read_bytes() == blob_store.data
        assert gateway.sessions.get("shop-42") is factory.created[0]


class TestDeploy:
    @pytest.mark.anyio
    async def test_requires_literal_prefix(self, client, restart, blob_store):
        response = await client.post("/deploy", json={"sessionId": "Demo-Slayer~ABC#key"})

        assert response.status_code == 400
        assert blob_store.calls == []
        restart.assert_not_called()

    @pytest.mark.anyio
    async def test_prefix_without_key_is_malformed(self, client, restart):
        response = await client.post("/deploy", json={"sessionId": "CLOUD-AI~ABC"})
        assert response.status_code == 400
        restart.assert_not_called()

    @pytest.mark.anyio
    async def test_deploy_persists_token_and_restarts(self, client, gateway, restart, blob_store):
        response = await client.post("/deploy", json={"sessionId": TOKEN})

        assert response.status_code == 200
        assert response.json()["success"] is True
        slot = gateway.paths.root / gateway.default_tenant
        assert (slot / "session_id.txt").read_text() == TOKEN
        assert (slot / "creds.json").read_bytes() == blob_store.data
        restart.assert_called_once()

    @pytest.mark.anyio
    async def test_deploy_download_failure_does_not_restart(self, client, restart, blob_store, download_error):
        blob_store.error = download_error
        response = await client.post("/deploy", json={"sessionId": TOKEN})

        assert response.status_code == 500
        restart.assert_not_called()

    @pytest.mark.anyio
    async def test_default_restart_terminates_own_process(self, monkeypatch):
        kill = Mock()
        monkeypatch.setattr(dependencies.os, "kill", kill)

        await dependencies.restart_process(0)

        kill.assert_called_once_with(os.getpid(), signal.SIGTERM)


class TestSidecarEvents:
    @pytest.mark.anyio
    async def test_api_key_required(self, client):
        body = {"sessionId": "default", "event": "connection.update", "data": {}}
        assert (await client.post("/baileys/events", json=body)).status_code == 401
        assert (await client.post("/baileys/events", json=body, headers={"X-API-Key": "wrong"})).status_code == 401

    @pytest.mark.anyio
    async def test_event_without_connection_is_ignored(self, client):
        response = await client.post(
            "/baileys/events",
            json={"sessionId": "default", "event": "connection.update", "data": {"connection": "open"}},
            headers=SIDECAR_HEADERS,
        )
        assert response.json()["status"] == "ignored"

    @pytest.mark.anyio
    async def test_unsupported_event_is_ignored(self, client, gateway):
        await gateway.manager.start("default")
        response = await client.post(
            "/baileys/events",
            json={"sessionId": "default", "event": "presence.update", "data": {}},
            headers=SIDECAR_HEADERS,
        )
        assert response.json()["status"] == "ignored"

    @pytest.mark.anyio
    async def test_open_event_reaches_manager(self, client, gateway, factory):
        await gateway.manager.start("default")
        conn = factory.created[0]

        response = await client.post(
            "/baileys/events",
            json={
                "sessionId": "default",
                "connectionId": conn.connection_id,
                "event": "connection.update",
                "data": {"connection": "open", "user": {"id": BOT_JID}},
            },
            headers=SIDECAR_HEADERS,
        )

        assert response.json() == {"status": "received"}
        status = (await client.get("/status/default")).json()
        assert status["state"] == "open"
        assert status["connected"] is True
        assert status["user"] == BOT_JID
        assert len(conn.sent) == 1

    @pytest.mark.anyio
    async def test_stale_connection_id_is_dropped(self, client, gateway, factory):
        await gateway.manager.start("default")
        response = await client.post(
            "/baileys/events",
            json={
                "sessionId": "default",
                "connectionId": "from-an-older-socket",
                "event": "connection.update",
                "data": {"connection": "close", "lastDisconnect": {"statusCode": 428}},
            },
            headers=SIDECAR_HEADERS,
        )

        assert response.json()["reason"] == "stale connection"
        assert gateway.manager.state("default").value == "connecting"

    @pytest.mark.anyio
    async def test_messages_upsert_runs_commands(self, client, gateway, factory):
        await gateway.manager.start("default")
        conn = factory.created[0]
        conn.user = {"id": BOT_JID}

        await client.post(
            "/baileys/events",
            json={
                "sessionId": "default",
                "connectionId": conn.connection_id,
                "event": "messages.upsert",
                "data": {"messages": [text_message("ping")], "type": "notify"},
            },
            headers=SIDECAR_HEADERS,
        )
        await gateway.router.drain()

        assert len(conn.texts()) == 2


class TestSystem:
    @pytest.mark.anyio
    async def test_status_of_unknown_tenant(self, client):
        response = await client.get("/status/ghost")
        assert response.json()["state"] == "closed"
        assert response.json()["features"]["deepseek"] is True

    @pytest.mark.anyio
    async def test_nairobi_time(self, client):
        body = (await client.get("/nairobi-time")).json()
        assert body["timezone"] == "Africa/Nairobi"
        assert re.fullmatch(r"\d{2}:\d{2}:\d{2}", body["time"])
