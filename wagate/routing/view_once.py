"""View-once media capture for privileged identities.

Two triggers:
  * an emoji-only reply quoting a view-once message → copy goes to the bot's own chat
  * a reaction on a view-once message → copy goes to the owner
A reaction carries only the target key, so recently seen view-once messages
are cached by id.
"""

from collections import OrderedDict
from typing import Any

from wagate.core.logging import log
from wagate.whatsapp.connection import Connection
from wagate.whatsapp.messages import (
    InboundMessage,
    extract_media,
    is_emoji_only,
    is_view_once,
    jid_normalized_user,
)

MEDIA_FIELDS = {
    "imageMessage": "image",
    "videoMessage": "video",
    "audioMessage": "audio",
}


class ViewOnceCache:
    """Bounded id → message record cache."""

    def __init__(self, max_size: int = 256):
        self.max_size = max_size
        self._items: OrderedDict[str, dict[str, Any]] = OrderedDict()

    def put(self, message: InboundMessage) -> None:
        if not message.id:
            return
        self._items[message.id] = message.raw
        self._items.move_to_end(message.id)
        while len(self._items) > self.max_size:
            self._items.popitem(last=False)

    def get(self, message_id: str | None) -> dict[str, Any] | None:
        return self._items.get(message_id) if message_id else None

    def __len__(self) -> int:
        return len(self._items)


class ViewOnceCapture:
    def __init__(self, cache: ViewOnceCache | None = None):
        self.cache = cache or ViewOnceCache()

    def remember(self, message: InboundMessage) -> None:
        if message.is_view_once:
            self.cache.put(message)

    def target(self, message: InboundMessage) -> tuple[dict[str, Any], str] | None:
        """Resolve the view-once record a trigger points at, and the trigger kind."""
        reaction = message.reaction
        if reaction is not None:
            if not reaction.get("text"):
                return None
            target_key = reaction.get("key") or {}
            record = self.cache.get(target_key.get("id"))
            return (record, "reaction") if record else None

        if not is_emoji_only(message.text):
            return None
        quoted = message.quoted_message
        if not is_view_once(quoted):
            return None
        info = message.context_info
        record = {
            "key": {
                "remoteJid": message.remote_jid,
                "id": info.get("stanzaId"),
                "participant": info.get("participant"),
                "fromMe": False,
            },
            "message": quoted,
        }
        return record, "reply"

    async def handle(
        self,
        connection: Connection,
        message: InboundMessage,
        owner_jid: str | None = None,
    ) -> str | None:
        """Re-deliver the media. Returns the destination JID when sent."""
        found = self.target(message)
        if found is None:
            return None
        record, trigger = found

        media = extract_media(record.get("message"))
        if media is None:
            log.debug("View-once target carries no downloadable media")
            return None
        media_type, payload = media

        own_jid = jid_normalized_user(connection.user_id)
        destination = own_jid if trigger == "reply" or not owner_jid else owner_jid
        if not destination:
            return None

        data = await connection.download_media(record)
        field = MEDIA_FIELDS[media_type]
        content: dict[str, Any] = {field: data, "mimetype": payload.get("mimetype")}
        if field != "audio":
            content["caption"] = payload.get("caption") or "🔓 View-once media"
        else:
            content["ptt"] = bool(payload.get("ptt"))
        await connection.send_message(destination, content)
        log.info(f"View-once {field} from {message.remote_jid} delivered to {destination}")
        return destination
