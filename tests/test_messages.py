"""Message payload helpers"""

import pytest

from wagate.whatsapp.messages import (
    InboundMessage,
    extract_media,
    is_emoji_only,
    is_view_once,
    jid_normalized_user,
    jid_user,
    number_to_jid,
)


@pytest.mark.parametrize(
    "jid, user",
    [
        ("254700000001:12@s.whatsapp.net", "254700000001"),
        ("254700000001@s.whatsapp.net", "254700000001"),
        ("254700000001", "254700000001"),
        (None, ""),
    ],
)
def test_jid_user(jid, user):
    assert jid_user(jid) == user


def test_jid_normalization():
    assert jid_normalized_user("254700000001:3@s.whatsapp.net") == "254700000001@s.whatsapp.net"
    assert jid_normalized_user("254700000001@c.us") == "254700000001@s.whatsapp.net"
    assert number_to_jid("+254 700 000001") == "254700000001@s.whatsapp.net"
    assert number_to_jid("") == ""


@pytest.mark.parametrize("text", ["😂", "👍🏽", "❤️", "👨‍👩‍👧", " 🔥 🔥 "])
def test_emoji_only(text):
    assert is_emoji_only(text)


@pytest.mark.parametrize("text", ["", None, "ok", "😂 lol", "1"])
def test_not_emoji_only(text):
    assert not is_emoji_only(text)


def test_view_once_detection():
    wrapped = {"viewOnceMessageV2": {"message": {"imageMessage": {"mimetype": "image/jpeg"}}}}
    flagged = {"ephemeralMessage": {"message": {"videoMessage": {"viewOnce": True}}}}
    plain = {"imageMessage": {"mimetype": "image/jpeg"}}

    assert is_view_once(wrapped)
    assert is_view_once(flagged)
    assert not is_view_once(plain)
    assert not is_view_once(None)
    assert extract_media(wrapped) == ("imageMessage", {"mimetype": "image/jpeg"})


def test_inbound_message_views():
    message = InboundMessage({
        "key": {"remoteJid": "status@broadcast", "fromMe": False, "id": "X", "participant": "1@s.whatsapp.net"},
        "message": {"ephemeralMessage": {"message": {"extendedTextMessage": {"text": "hi", "contextInfo": {"stanzaId": "Q"}}}}},
        "pushName": "Amina",
    })

    assert message.is_status
    assert message.sender == "1@s.whatsapp.net"
    assert message.text == "hi"
    assert message.content_type == "extendedTextMessage"
    assert message.context_info == {"stanzaId": "Q"}
    assert message.push_name == "Amina"
