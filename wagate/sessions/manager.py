"""Connection manager: one protocol connection per tenant and its state machine.

CONNECTING → OPEN on a successful handshake, OPEN → CLOSED when the transport
drops. A close with the logged-out code is terminal; any other close schedules
exactly one new ``start`` through the backoff policy.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from wagate.core.exceptions import GatewayConnectionError
from wagate.core.logging import log
from wagate.features.scheduler import FeatureScheduler
from wagate.sessions.auth_state import MultiFileAuthState
from wagate.sessions.resolver import TenantPaths
from wagate.sessions.store import SessionStore
from wagate.whatsapp.connection import Connection, ConnectionFactory, ConnectionState, DisconnectReason


class BackoffPolicy(ABC):
    @abstractmethod
    def delay(self, attempt: int) -> float:
        """Seconds to wait before reconnect attempt number ``attempt`` (1-based)."""


class FixedBackoff(BackoffPolicy):
    """Same delay for every attempt; ``0`` retries immediately."""

    def __init__(self, seconds: float = 10.0):
        self.seconds = seconds

    def delay(self, attempt: int) -> float:
        return self.seconds


@dataclass
class TenantRecord:
    tenant_id: str
    state: ConnectionState = ConnectionState.CLOSED
    connection: Connection | None = None
    auth_state: MultiFileAuthState | None = None
    attempts: int = 0
    opened_once: bool = False
    logged_out: bool = False
    qr: str | None = None
    last_disconnect: int | None = None
    reconnect_task: asyncio.Task | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


def disconnect_status(update: dict[str, Any]) -> int | None:
    """Pull the status code out of ``lastDisconnect`` in either sidecar shape."""
    last = update.get("lastDisconnect") or {}
    code = last.get("statusCode")
    if code is None:
        code = (((last.get("error") or {}).get("output") or {}).get("statusCode"))
    try:
        return int(code) if code is not None else None
    except (TypeError, ValueError):
        return None


class ConnectionManager:
    def __init__(
        self,
        paths: TenantPaths,
        sessions: SessionStore,
        factory: ConnectionFactory,
        features: FeatureScheduler,
        version_provider: Callable[[], Awaitable[list[int]]],
        on_messages: Callable[[Connection, Any], Awaitable[None]] | None = None,
        backoff: BackoffPolicy | None = None,
        max_attempts: int = 0,
        channel_jid: str = "",
        channel_name: str = "",
    ):
        self.paths = paths
        self.sessions = sessions
        self.factory = factory
        self.features = features
        self.version_provider = version_provider
        self.on_messages = on_messages
        self.backoff = backoff or FixedBackoff()
        self.max_attempts = max_attempts
        self.channel_jid = channel_jid
        self.channel_name = channel_name
        self._records: dict[str, TenantRecord] = {}

    def record(self, tenant_id: str) -> TenantRecord:
        if tenant_id not in self._records:
            self._records[tenant_id] = TenantRecord(tenant_id)
        return self._records[tenant_id]

    def state(self, tenant_id: str) -> ConnectionState:
        record = self._records.get(tenant_id)
        return record.state if record else ConnectionState.CLOSED

    # --- lifecycle -----------------------------------------------------

    async def start(self, tenant_id: str, use_interactive_pairing: bool = False) -> ConnectionState:
        """Open (or reopen) the tenant's connection. Never raises on transport errors."""
        record = self.record(tenant_id)
        pending = record.reconnect_task
        if pending and pending is not asyncio.current_task() and not pending.done():
            pending.cancel()
        record.reconnect_task = None

        async with record.lock:
            await self._teardown(record)
            if record.auth_state:
                # A flush from the previous connection may still be running
                await record.auth_state.wait_idle()

            slot = self.paths.ensure_slot(tenant_id)
            auth_state = await MultiFileAuthState.load(slot)
            version = await self.version_provider()

            connection = self.factory.create(tenant_id, auth_state, version, print_qr=use_interactive_pairing)
            self._wire(record, connection, auth_state)

            record.connection = connection
            record.auth_state = auth_state
            record.state = ConnectionState.CONNECTING
            record.logged_out = False
            record.qr = None
            self.sessions.put(tenant_id, connection)

            with log.contextualize(tenant=tenant_id):
                log.info(f"Starting connection (registered={auth_state.is_registered}, version={version})")
                try:
                    await connection.connect()
                except GatewayConnectionError as e:
                    log.error(f"Connection start failed: {e.message}")
                    await self._closed(record, connection, None)
                except Exception:
                    await self._teardown(record)
                    raise

            return record.state

    def _wire(self, record: TenantRecord, connection: Connection, auth_state: MultiFileAuthState) -> None:
        # Credential listeners go first so no rotation can be lost to early traffic
        async def on_creds(delta):
            await auth_state.apply_creds_update(delta)

        async def on_keys(data):
            await auth_state.apply_keys_update(data)

        async def on_update(update):
            await self._on_connection_update(record, connection, update or {})

        async def on_upsert(batch):
            if self.on_messages and record.connection is connection:
                await self.on_messages(connection, batch)

        connection.events.on("creds.update", on_creds)
        connection.events.on("keys.update", on_keys)
        connection.events.on("connection.update", on_update)
        connection.events.on("messages.upsert", on_upsert)

    async def _teardown(self, record: TenantRecord) -> None:
        """Release the tenant's current connection. Caller holds the record lock."""
        connection = record.connection
        if connection is None:
            return
        await self.features.suspend(record.tenant_id)
        if record.auth_state:
            await record.auth_state.wait_idle()
        self.sessions.remove(record.tenant_id, connection)
        record.connection = None
        record.state = ConnectionState.CLOSED
        connection.events.remove_all()
        await connection.close()
        log.info(f"Tore down previous connection for tenant {record.tenant_id}")

    async def _on_connection_update(self, record: TenantRecord, connection: Connection, update: dict) -> None:
        if record.connection is not connection:
            log.debug(f"Ignoring update from superseded connection of {record.tenant_id}")
            return

        if update.get("qr"):
            record.qr = update["qr"]
            log.info(f"Pairing QR available for tenant {record.tenant_id}")

        status = update.get("connection")
        if status == "connecting":
            record.state = ConnectionState.CONNECTING
        elif status == "open":
            await self._opened(record, connection)
        elif status == "close":
            async with record.lock:
                await self._closed(record, connection, disconnect_status(update))

    async def _opened(self, record: TenantRecord, connection: Connection) -> None:
        first_open = not record.opened_once
        record.state = ConnectionState.OPEN
        record.attempts = 0
        record.opened_once = True
        record.qr = None
        log.info(f"Connection open for tenant {record.tenant_id} as {connection.user_id}")

        await self.send_welcome(connection, first_open)
        started = self.features.resume(record.tenant_id)
        if started:
            log.info(f"Resumed features for {record.tenant_id}: {', '.join(started)}")

    async def _closed(self, record: TenantRecord, connection: Connection, status_code: int | None) -> None:
        """Handle OPEN/CONNECTING → CLOSED. Caller holds the record lock."""
        if record.connection is not connection:
            return

        record.state = ConnectionState.CLOSED
        record.last_disconnect = status_code
        await self.features.suspend(record.tenant_id)
        self.sessions.remove(record.tenant_id, connection)
        record.connection = None
        connection.events.remove_all()

        if DisconnectReason.is_terminal(status_code):
            record.logged_out = True
            log.warning(f"Tenant {record.tenant_id} logged out; a new session ID is required")
            return

        self._schedule_reconnect(record, status_code)

    def _schedule_reconnect(self, record: TenantRecord, status_code: int | None) -> None:
        record.attempts += 1
        if self.max_attempts and record.attempts > self.max_attempts:
            log.error(f"Tenant {record.tenant_id} gave up after {self.max_attempts} reconnect attempts")
            return

        delay = self.backoff.delay(record.attempts)
        log.warning(
            f"Tenant {record.tenant_id} is down (status={status_code}), "
            f"reconnect #{record.attempts} in {delay}s"
        )
        record.reconnect_task = asyncio.create_task(
            self._reconnect(record.tenant_id, delay),
            name=f"reconnect:{record.tenant_id}",
        )

    async def _reconnect(self, tenant_id: str, delay: float) -> None:
        if delay:
            await asyncio.sleep(delay)
        try:
            await self.start(tenant_id, False)
        except Exception:
            log.exception(f"Reconnect failed for tenant {tenant_id}")
            record = self.record(tenant_id)
            async with record.lock:
                # Skip when another start or reconnect has taken over meanwhile
                if record.connection is None and record.reconnect_task is None and not record.logged_out:
                    self._schedule_reconnect(record, record.last_disconnect)

    async def send_welcome(self, connection: Connection, first_open: bool) -> None:
        if not connection.user_id:
            return
        if first_open:
            content = {
                "text": "*Hello 👋 your session is Live*\n> *Powered by wa-session-gateway*",
                "contextInfo": {
                    "forwardingScore": 999,
                    "isForwarded": True,
                    "forwardedNewsletterMessageInfo": {
                        "newsletterJid": self.channel_jid,
                        "newsletterName": self.channel_name,
                        "serverMessageId": 143,
                    },
                },
            }
        else:
            content = {"text": "♻️ *Reconnected* - session is live again"}
        try:
            await connection.send_message(connection.user_id, content)
        except Exception as e:
            log.error(f"Welcome message failed for tenant {connection.tenant_id}: {e}")

    async def shutdown(self) -> None:
        for record in self._records.values():
            if record.reconnect_task and not record.reconnect_task.done():
                record.reconnect_task.cancel()
        for record in list(self._records.values()):
            async with record.lock:
                await self._teardown(record)
        await self.features.shutdown()

    def status(self, tenant_id: str) -> dict[str, Any]:
        record = self._records.get(tenant_id)
        connection = self.sessions.get(tenant_id)
        return {
            "tenant": tenant_id,
            "state": (record.state if record else ConnectionState.CLOSED).value,
            "connected": bool(record and record.state == ConnectionState.OPEN),
            "user": connection.user_id if connection else None,
            "qr": record.qr if record else None,
            "attempts": record.attempts if record else 0,
            "loggedOut": bool(record and record.logged_out),
            "features": self.features.enabled_features(tenant_id),
        }
