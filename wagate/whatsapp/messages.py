"""Helpers over Baileys ``WAMessage`` payloads (protobuf JSON form)."""

import unicodedata
from dataclasses import dataclass, field
from typing import Any

STATUS_BROADCAST = "status@broadcast"
USER_SERVER = "s.whatsapp.net"

WRAPPER_TYPES = (
    "ephemeralMessage",
    "viewOnceMessage",
    "viewOnceMessageV2",
    "viewOnceMessageV2Extension",
    "documentWithCaptionMessage",
    "editedMessage",
)
VIEW_ONCE_WRAPPERS = ("viewOnceMessage", "viewOnceMessageV2", "viewOnceMessageV2Extension")
MEDIA_TYPES = ("imageMessage", "videoMessage", "audioMessage")
IGNORED_TYPES = ("senderKeyDistributionMessage", "messageContextInfo")


def jid_user(jid: str | None) -> str:
    """``2547xxxxxxx:12@s.whatsapp.net`` → ``2547xxxxxxx``."""
    if not jid:
        return ""
    user = jid.split("@", 1)[0]
    return user.split(":", 1)[0]


def jid_normalized_user(jid: str | None) -> str:
    """Strip the device suffix, keeping the server part."""
    if not jid:
        return ""
    user, _, server = jid.partition("@")
    user = user.split(":", 1)[0]
    if server == "c.us":
        server = USER_SERVER
    return f"{user}@{server or USER_SERVER}"


def number_to_jid(number: str) -> str:
    digits = "".join(ch for ch in number if ch.isdigit())
    return f"{digits}@{USER_SERVER}" if digits else ""


def is_group_jid(jid: str | None) -> bool:
    return bool(jid) and jid.endswith("@g.us")


def is_broadcast_jid(jid: str | None) -> bool:
    return bool(jid) and jid.endswith("@broadcast")


def get_content_type(message: dict[str, Any] | None) -> str | None:
    if not message:
        return None
    for key, value in message.items():
        if key not in IGNORED_TYPES and value is not None:
            return key
    return None


def normalize_content(message: dict[str, Any] | None) -> dict[str, Any] | None:
    """Unwrap ephemeral/view-once/document wrappers down to the real content."""
    for _ in range(5):
        content_type = get_content_type(message)
        if content_type not in WRAPPER_TYPES:
            return message
        message = (message.get(content_type) or {}).get("message")
    return message


def is_view_once(message: dict[str, Any] | None) -> bool:
    """True for view-once wrapped media or media flagged ``viewOnce``."""
    if not message:
        return False
    if get_content_type(message) == "ephemeralMessage":
        message = (message.get("ephemeralMessage") or {}).get("message")
        if not message:
            return False
    if any(message.get(w) for w in VIEW_ONCE_WRAPPERS):
        return True
    content = normalize_content(message) or {}
    return any((content.get(t) or {}).get("viewOnce") for t in MEDIA_TYPES)


def extract_media(message: dict[str, Any] | None) -> tuple[str, dict[str, Any]] | None:
    """Return ``(media_type, media_payload)`` for image/video/audio content."""
    content = normalize_content(message) or {}
    for media_type in MEDIA_TYPES:
        if content.get(media_type):
            return media_type, content[media_type]
    return None


def is_emoji_only(text: str | None) -> bool:
    """A short text made of emoji (plus joiners, selectors and skin tones)."""
    if not text:
        return False
    stripped = "".join(text.split())
    if not stripped or len(stripped) > 16:
        return False
    for ch in stripped:
        if ch in ("\u200d", "\ufe0f", "\ufe0e", "\u20e3"):
            continue
        if 0x1F3FB <= ord(ch) <= 0x1F3FF:
            continue
        if unicodedata.category(ch) != "So":
            return False
    return True


@dataclass
class InboundMessage:
    """Read-only view over one ``messages.upsert`` record."""

    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> dict[str, Any]:
        return self.raw.get("key") or {}

    @property
    def id(self) -> str | None:
        return self.key.get("id")

    @property
    def remote_jid(self) -> str:
        return self.key.get("remoteJid") or ""

    @property
    def from_me(self) -> bool:
        return bool(self.key.get("fromMe"))

    @property
    def participant(self) -> str | None:
        return self.key.get("participant") or self.raw.get("participant")

    @property
    def sender(self) -> str:
        """JID of the author (participant in groups/status, chat otherwise)."""
        return self.participant or self.remote_jid

    @property
    def push_name(self) -> str:
        return self.raw.get("pushName") or ""

    @property
    def message(self) -> dict[str, Any] | None:
        return self.raw.get("message")

    @property
    def content(self) -> dict[str, Any] | None:
        return normalize_content(self.message)

    @property
    def content_type(self) -> str | None:
        return get_content_type(self.content)

    @property
    def is_status(self) -> bool:
        return self.remote_jid == STATUS_BROADCAST

    @property
    def is_group(self) -> bool:
        return is_group_jid(self.remote_jid)

    @property
    def text(self) -> str | None:
        content = self.content or {}
        if content.get("conversation"):
            return content["conversation"]
        extended = content.get("extendedTextMessage") or {}
        return extended.get("text")

    @property
    def context_info(self) -> dict[str, Any]:
        content = self.content or {}
        content_type = get_content_type(content)
        payload = content.get(content_type) if content_type else None
        if isinstance(payload, dict):
            return payload.get("contextInfo") or {}
        return {}

    @property
    def quoted_message(self) -> dict[str, Any] | None:
        return self.context_info.get("quotedMessage")

    @property
    def reaction(self) -> dict[str, Any] | None:
        return (self.content or {}).get("reactionMessage")

    @property
    def is_view_once(self) -> bool:
        return is_view_once(self.message)
