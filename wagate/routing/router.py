"""Event router: classify each inbound message and run its handler chains.

Status reaction, command text and view-once capture are independent chains.
Each runs behind its own error boundary so one failing never suppresses the
others, and none of them can raise out of the event subscription.
"""

import asyncio
from collections.abc import Awaitable
from typing import Any

from wagate.commands.base import CommandContext
from wagate.commands.registry import CommandTable
from wagate.core.logging import log
from wagate.features.scheduler import AI_CHAT, FeatureScheduler
from wagate.relays.ai_chat import AIChatRelay
from wagate.routing.status import StatusReactor
from wagate.routing.view_once import ViewOnceCapture
from wagate.whatsapp.connection import Connection
from wagate.whatsapp.messages import InboundMessage, jid_user, number_to_jid


def batch_messages(batch: Any) -> list[dict[str, Any]]:
    """``messages.upsert`` payloads come as ``{messages, type}`` or a bare list."""
    if isinstance(batch, dict):
        messages = batch.get("messages") or []
    elif isinstance(batch, list):
        messages = batch
    else:
        messages = []
    return [m for m in messages if isinstance(m, dict)]


class EventRouter:
    def __init__(
        self,
        commands: CommandTable,
        features: FeatureScheduler,
        ai_chat: AIChatRelay,
        status: StatusReactor,
        view_once: ViewOnceCapture,
        owner_number: str = "",
        ignore_groups: bool = True,
        max_concurrent_batches: int = 16,
    ):
        self.commands = commands
        self.features = features
        self.ai_chat = ai_chat
        self.status = status
        self.view_once = view_once
        # Accepts a bare number, "+254 7..." or a full JID
        self.owner_number = "".join(ch for ch in jid_user(owner_number) if ch.isdigit())
        self.ignore_groups = ignore_groups
        self._semaphore = asyncio.Semaphore(max_concurrent_batches)
        self._tasks: set[asyncio.Task] = set()

    @property
    def owner_jid(self) -> str | None:
        return number_to_jid(self.owner_number) or None

    def is_privileged(self, connection: Connection, message: InboundMessage) -> bool:
        """The bot's own identity or the configured owner."""
        if message.from_me:
            return True
        sender = jid_user(message.sender)
        if not sender:
            return False
        if sender == jid_user(connection.user_id):
            return True
        return bool(self.owner_number) and sender == self.owner_number

    async def on_messages_upsert(self, connection: Connection, batch: Any) -> None:
        """Event subscription entry point: dispatch in the background."""
        task = asyncio.create_task(self._bounded(connection, batch))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _bounded(self, connection: Connection, batch: Any) -> None:
        async with self._semaphore:
            try:
                await self.dispatch(connection, batch)
            except Exception:
                log.exception(f"Batch dispatch failed for tenant {connection.tenant_id}")

    async def drain(self) -> None:
        """Wait for in-flight batches (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def dispatch(self, connection: Connection, batch: Any) -> None:
        chains: list[Awaitable[None]] = []
        for raw in batch_messages(batch):
            message = InboundMessage(raw)
            if not message.message or connection.was_sent_by_gateway(message.id):
                continue
            if self.ignore_groups and message.is_group:
                continue

            connection.record_chat(message)
            self.view_once.remember(message)
            chains.extend(self.classify(connection, message))

        if chains:
            await asyncio.gather(*chains)

    def classify(self, connection: Connection, message: InboundMessage) -> list[Awaitable[None]]:
        chains = []
        if message.is_status:
            chains.append(self._guard("status", connection, self.status.handle(connection, message)))
            return chains

        privileged = self.is_privileged(connection, message)
        view_once_trigger = privileged and self.view_once.target(message) is not None
        if view_once_trigger:
            chains.append(self._guard(
                "view-once", connection, self.view_once.handle(connection, message, self.owner_jid)
            ))

        if message.text and not view_once_trigger:
            chains.append(self._guard("command", connection, self.handle_text(connection, message, privileged)))
        return chains

    async def handle_text(self, connection: Connection, message: InboundMessage, privileged: bool) -> None:
        matched = self.commands.match(message.text)
        if matched is not None:
            command, args = matched
            if command.privileged and not privileged:
                log.debug(f"Dropped privileged command {command.name!r} from {message.sender}")
                return
            ctx = CommandContext(connection=connection, message=message, args=args, privileged=privileged)
            log.info(f"Command {command.name!r} from {message.sender}")
            await command.execute(ctx)
            return

        if not privileged or not self.features.is_enabled(connection.tenant_id, AI_CHAT):
            return
        ctx = CommandContext(connection=connection, message=message, privileged=True)
        await self.ai_chat.handle(ctx, message.text.strip())

    async def _guard(self, chain: str, connection: Connection, work: Awaitable[Any]) -> None:
        with log.contextualize(tenant=connection.tenant_id):
            try:
                await work
            except Exception as e:
                log.error(f"{chain} handler failed: {e}")
