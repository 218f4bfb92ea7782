"""Protocol connection abstraction.

The WhatsApp Web protocol itself lives outside this process. A ``Connection``
is the handle the gateway holds for one tenant: an event stream plus the few
outbound operations the handlers need.
"""

import enum
import uuid
from abc import ABC, abstractmethod
from collections import OrderedDict, deque
from collections.abc import Awaitable, Callable
from typing import Any

from wagate.core.logging import log
from wagate.whatsapp.messages import InboundMessage, is_broadcast_jid, is_group_jid

Listener = Callable[[Any], Awaitable[None]]

SENT_ID_HISTORY = 512
CHAT_INDEX_SIZE = 1000


class ConnectionState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class DisconnectReason(enum.IntEnum):
    """Close status codes reported by Baileys."""

    CONNECTION_CLOSED = 428
    CONNECTION_LOST = 408
    CONNECTION_REPLACED = 440
    LOGGED_OUT = 401
    BAD_SESSION = 500
    RESTART_REQUIRED = 515
    MULTIDEVICE_MISMATCH = 411
    FORBIDDEN = 403
    UNAVAILABLE_SERVICE = 503

    @classmethod
    def is_terminal(cls, status_code: int | None) -> bool:
        return status_code == cls.LOGGED_OUT


class EventEmitter:
    """Minimal async event emitter.

    Listeners run in registration order and each one is awaited before the
    next, so a ``creds.update`` flush completes before the following update is
    handled. A failing listener is logged and never breaks the emit.
    """

    def __init__(self):
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> None:
        self._listeners.setdefault(event, []).append(listener)

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def remove_all(self) -> None:
        self._listeners.clear()

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, []))

    async def emit(self, event: str, data: Any = None) -> int:
        listeners = list(self._listeners.get(event, []))
        for listener in listeners:
            try:
                await listener(data)
            except Exception:
                log.exception(f"Listener for {event} failed")
        return len(listeners)


class Connection(ABC):
    """Live handle to one tenant's protocol session."""

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        self.connection_id = uuid.uuid4().hex
        self.events = EventEmitter()
        self.user: dict[str, Any] | None = None
        self.chats: OrderedDict[str, InboundMessage] = OrderedDict()
        self._sent_ids: deque[str] = deque(maxlen=SENT_ID_HISTORY)
        self.events.on("connection.update", self._track_user)

    async def _track_user(self, update: dict[str, Any]) -> None:
        if update and update.get("user"):
            self.user = update["user"]

    @property
    def user_id(self) -> str | None:
        return (self.user or {}).get("id")

    @abstractmethod
    async def connect(self) -> None:
        """Start the handshake. Progress is reported via ``connection.update``."""

    @abstractmethod
    async def close(self) -> None:
        """End the session without logging out."""

    @abstractmethod
    async def _send(self, jid: str, content: dict[str, Any], options: dict[str, Any]) -> dict[str, Any]:
        """Deliver one message and return its key."""

    @abstractmethod
    async def read_messages(self, keys: list[dict[str, Any]]) -> None:
        """Send read receipts."""

    @abstractmethod
    async def send_presence_update(self, presence: str, jid: str | None = None) -> None:
        """``available``, ``unavailable``, ``composing``, ``recording`` or ``paused``."""

    @abstractmethod
    async def download_media(self, message: dict[str, Any]) -> bytes:
        """Download and decrypt the media carried by a message record."""

    async def send_message(self, jid: str, content: dict[str, Any], **options) -> dict[str, Any]:
        key = await self._send(jid, content, options) or {}
        if key.get("id"):
            self._sent_ids.append(key["id"])
        return key

    def was_sent_by_gateway(self, message_id: str | None) -> bool:
        return bool(message_id) and message_id in self._sent_ids

    def record_chat(self, message: InboundMessage) -> None:
        """Remember the latest message per chat for the presence tasks."""
        jid = message.remote_jid
        if not jid or is_broadcast_jid(jid):
            return
        self.chats[jid] = message
        self.chats.move_to_end(jid)
        while len(self.chats) > CHAT_INDEX_SIZE:
            self.chats.popitem(last=False)

    def private_chats_awaiting_reply(self) -> list[str]:
        """Non-group chats whose latest message did not come from the bot."""
        return [
            jid for jid, message in self.chats.items()
            if not is_group_jid(jid) and not message.from_me
        ]


class ConnectionFactory(ABC):
    """Builds unconnected ``Connection`` objects for the manager."""

    @abstractmethod
    def create(
        self,
        tenant_id: str,
        auth_state,
        version: list[int],
        print_qr: bool = False,
    ) -> Connection:
        """Return a connection that has not started its handshake yet."""
