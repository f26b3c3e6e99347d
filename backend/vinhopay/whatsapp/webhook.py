"""Extract the first text message from a WhatsApp Cloud API webhook payload."""
from typing import Optional

from vinhopay.schemas.message import InboundMessage


def parse_webhook_payload(payload: dict) -> Optional[InboundMessage]:
    """
    Payload shape: entry[0].changes[0].value.messages[0].

    Returns None for status callbacks and other non-message notifications.
    Non-text messages (images, audio) become an empty text so the sender
    still gets the current prompt back.
    """
    try:
        value = payload["entry"][0]["changes"][0]["value"]
        msg = value["messages"][0]
    except (KeyError, IndexError, TypeError):
        return None

    sender = msg.get("from")
    if not sender:
        return None

    text = ""
    if msg.get("type") == "text":
        text = ((msg.get("text") or {}).get("body") or "").strip()

    return InboundMessage(sender_phone=sender, text=text, message_id=msg.get("id"))
