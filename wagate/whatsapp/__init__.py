"""WhatsApp protocol connection layer"""

from wagate.whatsapp.connection import (
    Connection,
    ConnectionFactory,
    ConnectionState,
    DisconnectReason,
    EventEmitter,
)
from wagate.whatsapp.messages import InboundMessage

__all__ = [
    "Connection",
    "ConnectionFactory",
    "ConnectionState",
    "DisconnectReason",
    "EventEmitter",
    "InboundMessage",
]
