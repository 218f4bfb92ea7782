"""Base command class and execution context"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from wagate.whatsapp.connection import Connection
from wagate.whatsapp.messages import InboundMessage


@dataclass
class CommandContext:
    """Everything a handler needs for one inbound message."""

    connection: Connection
    message: InboundMessage
    args: str = ""
    privileged: bool = False

    @property
    def tenant_id(self) -> str:
        return self.connection.tenant_id

    @property
    def chat(self) -> str:
        return self.message.remote_jid

    async def reply(self, text: str, **extra: Any) -> dict[str, Any]:
        """Send a text back to the chat, quoting the trigger."""
        content = {"text": text, **extra}
        return await self.connection.send_message(self.chat, content, quoted=self.message.raw)

    async def send(self, content: dict[str, Any]) -> dict[str, Any]:
        return await self.connection.send_message(self.chat, content, quoted=self.message.raw)

    async def react(self, emoji: str) -> dict[str, Any]:
        return await self.connection.send_message(
            self.chat, {"react": {"text": emoji, "key": self.message.key}}
        )


class BaseCommand(ABC):
    """Abstract base class for text commands."""

    name: str = ""
    description: str = ""
    # Only the bot itself and the configured owner may run privileged commands
    privileged: bool = False

    @abstractmethod
    async def execute(self, ctx: CommandContext) -> None:
        """Run the command. Sends are awaited so failures surface here."""
