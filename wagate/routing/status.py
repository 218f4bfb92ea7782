"""Status broadcast auto-view and reaction"""

import asyncio
import random

from wagate.core.logging import log
from wagate.whatsapp.connection import Connection
from wagate.whatsapp.messages import STATUS_BROADCAST, InboundMessage

DEFAULT_EMOJIS = ("🔥", "💯", "💎", "⚡", "✅", "💙", "👀", "🌟", "😎")


class StatusReactor:
    """Mark a status as seen, pause, then react with a random emoji.

    The pause keeps the bot from showing up as the first viewer.
    """

    def __init__(
        self,
        emojis: list[str] | tuple[str, ...] = DEFAULT_EMOJIS,
        delay: float = 1.0,
        rng: random.Random | None = None,
    ):
        self.emojis = list(emojis) or list(DEFAULT_EMOJIS)
        self.delay = delay
        self.rng = rng or random.Random()

    async def handle(self, connection: Connection, message: InboundMessage) -> str | None:
        if not message.content:
            return None

        await connection.read_messages([message.key])
        await asyncio.sleep(self.delay)

        emoji = self.rng.choice(self.emojis)
        status_jids = [jid for jid in (message.participant, connection.user_id) if jid]
        await connection.send_message(
            STATUS_BROADCAST,
            {"react": {"text": emoji, "key": message.key}},
            statusJidList=status_jids,
        )
        log.debug(f"Reacted {emoji} to status from {message.participant}")
        return emoji
