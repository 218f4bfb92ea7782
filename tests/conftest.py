"""Pytest configuration.

Shared fixtures: an in-memory fake connection layer and a fresh gateway per
test, wired without any network access.
"""

import os

os.environ.setdefault("WAGATE_ENV", "testing")

import random
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

from wagate.commands.registry import build_command_table
from wagate.core.exceptions import DownloadError, GatewayConnectionError
from wagate.features.scheduler import FeatureScheduler
from wagate.gateway import Gateway
from wagate.relays.ai_chat import AIChatRelay
from wagate.relays.endpoints import EndpointDescriptor
from wagate.relays.media import MediaDownloadRelay
from wagate.routing.router import EventRouter
from wagate.routing.status import StatusReactor
from wagate.routing.view_once import ViewOnceCapture
from wagate.sessions.blob_store import BlobStore
from wagate.sessions.manager import ConnectionManager, FixedBackoff
from wagate.sessions.resolver import CredentialResolver, TenantPaths
from wagate.sessions.store import SessionStore
from wagate.sessions.verification import VerificationRegistry
from wagate.whatsapp.connection import Connection, ConnectionFactory

BOT_JID = "254700000001:7@s.whatsapp.net"
OWNER_NUMBER = "254711111111"
STRANGER_JID = "254799999999@s.whatsapp.net"


class FakeConnection(Connection):
    """Records every outbound call instead of talking to a sidecar."""

    def __init__(self, tenant_id: str, auth_state=None, version=None, print_qr=False):
        super().__init__(tenant_id)
        self.auth_state = auth_state
        self.version = version
        self.print_qr = print_qr
        self.sent: list[tuple[str, dict, dict]] = []
        self.presence: list[tuple[str, str | None]] = []
        self.read: list[list[dict]] = []
        self.connect_calls = 0
        self.closed = False
        self.fail_connect = False
        self.fail_send = False
        self.media = b"\x89PNG-fake-media"
        self._counter = 0

    async def connect(self) -> None:
        self.connect_calls += 1
        if self.fail_connect:
            raise GatewayConnectionError(self.tenant_id, "sidecar unreachable")

    async def close(self) -> None:
        self.closed = True

    async def _send(self, jid, content, options):
        if self.fail_send:
            raise RuntimeError("send failed")
        self._counter += 1
        self.sent.append((jid, content, options))
        return {"remoteJid": jid, "fromMe": True, "id": f"GW{self._counter:04d}{id(self)}"}

    async def read_messages(self, keys):
        self.read.append(keys)

    async def send_presence_update(self, presence, jid=None):
        self.presence.append((presence, jid))

    async def download_media(self, message):
        return self.media

    async def open(self, user_id: str = BOT_JID) -> None:
        await self.events.emit("connection.update", {"connection": "open", "user": {"id": user_id}})

    async def drop(self, status_code: int | None = 428) -> None:
        await self.events.emit(
            "connection.update",
            {"connection": "close", "lastDisconnect": {"error": {"output": {"statusCode": status_code}}}},
        )

    def texts(self) -> list[str]:
        return [content.get("text") for _, content, _ in self.sent if "text" in content]


class FakeFactory(ConnectionFactory):
    def __init__(self):
        self.created: list[FakeConnection] = []
        self.fail_next_connect = 0
        self.fail_next_create = 0

    def create(self, tenant_id, auth_state, version, print_qr=False):
        if self.fail_next_create:
            self.fail_next_create -= 1
            raise OSError("sidecar socket unavailable")
        connection = FakeConnection(tenant_id, auth_state, version, print_qr)
        if self.fail_next_connect:
            connection.fail_connect = True
            self.fail_next_connect -= 1
        self.created.append(connection)
        return connection


class FakeBlobStore(BlobStore):
    def __init__(self, data: bytes = b'{"me": {"id": "254700000001@s.whatsapp.net"}}'):
        self.data = data
        self.calls: list[tuple[str, str]] = []
        self.error: Exception | None = None

    async def fetch(self, blob_id, decryption_key):
        self.calls.append((blob_id, decryption_key))
        if self.error:
            raise self.error
        return self.data


def text_message(
    text: str,
    sender: str = STRANGER_JID,
    from_me: bool = False,
    msg_id: str = "IN001",
    extended: bool = False,
) -> dict[str, Any]:
    """A ``messages.upsert`` record carrying text."""
    content = {"extendedTextMessage": {"text": text}} if extended else {"conversation": text}
    return {
        "key": {"remoteJid": sender, "fromMe": from_me, "id": msg_id},
        "message": content,
        "pushName": "Tester",
    }


def json_transport(routes: dict[str, Any], calls: list[str] | None = None) -> httpx.MockTransport:
    """MockTransport answering by URL prefix; values are (status, json) or an Exception."""

    def handler(request: httpx.Request) -> httpx.Response:
        url = str(request.url)
        if calls is not None:
            calls.append(url)
        for prefix, answer in routes.items():
            if url.startswith(prefix):
                if isinstance(answer, Exception):
                    raise answer
                status_code, payload = answer
                return httpx.Response(status_code, json=payload)
        return httpx.Response(404, json={"error": "not found"})

    return httpx.MockTransport(handler)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def factory():
    return FakeFactory()


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def ai_endpoints():
    return [
        EndpointDescriptor("https://ai-one.test/chat?q={query}", "reply"),
        EndpointDescriptor("https://ai-two.test/chat?q={query}", "data.answer"),
    ]


@pytest.fixture
def gateway(tmp_path, factory, blob_store, ai_endpoints):
    """A fully wired gateway over fakes; a fresh registry per test."""
    paths = TenantPaths(tmp_path / "sessions")
    paths.ensure_root()
    sessions = SessionStore()
    features = FeatureScheduler(
        sessions,
        defaults={"deepseek": True},
        always_online_interval=3600,
        auto_presence_interval=3600,
        presence_pulse=0,
        rng=random.Random(7),
    )
    media = MediaDownloadRelay(
        EndpointDescriptor("https://search.test/yt?query={query}", "results"),
        [EndpointDescriptor("https://mp3.test/convert?url={url}", "result.downloadUrl")],
        [EndpointDescriptor("https://mp4.test/convert?url={url}", "url")],
        transport=json_transport({"https://search.test/": (200, {"results": []})}),
    )
    commands = build_command_table(features, media)
    router = EventRouter(
        commands=commands,
        features=features,
        ai_chat=AIChatRelay(ai_endpoints, transport=json_transport({})),
        status=StatusReactor(delay=0, rng=random.Random(3)),
        view_once=ViewOnceCapture(),
        owner_number=OWNER_NUMBER,
    )
    manager = ConnectionManager(
        paths=paths,
        sessions=sessions,
        factory=factory,
        features=features,
        version_provider=AsyncMock(return_value=[2, 3000, 1]),
        on_messages=router.on_messages_upsert,
        backoff=FixedBackoff(0),
        channel_jid="120363000000000000@newsletter",
        channel_name="Test Channel",
    )
    return Gateway(
        paths=paths,
        sessions=sessions,
        verifications=VerificationRegistry("0029TESTCHANNEL"),
        features=features,
        resolver=CredentialResolver(paths, blob_store),
        manager=manager,
        router=router,
        commands=commands,
        api_key="test-sidecar-key",
    )


@pytest.fixture
def connection():
    """A standalone open connection for router and handler tests."""
    conn = FakeConnection("default")
    conn.user = {"id": BOT_JID}
    return conn


@pytest.fixture
def download_error():
    return DownloadError("blob gone")
