"""
WhatsApp Cloud API client - outbound text only.

One attempt per message. A failure is logged with the provider's error
detail and reported as False; it never raises into the conversation engine,
whose transition has already committed.
"""
import logging
from typing import Callable, Iterable

import requests

from vinhopay.core.audit import mask_phone
from vinhopay.core.config import settings
from vinhopay.schemas.message import OutboundMessage

logger = logging.getLogger(__name__)

Sender = Callable[[str, str], bool]


def _messages_url() -> str:
    return f"https://graph.facebook.com/{settings.WA_API_VERSION}/{settings.WA_PHONE_NUMBER_ID}/messages"


def send_whatsapp_text(to: str, body: str) -> bool:
    """
    Send a text message.

    Args:
        to: Recipient phone in WhatsApp format (digits, country code first)
        body: Message text

    Returns:
        True if the provider accepted it, False otherwise
    """
    if not settings.WA_TOKEN or not settings.WA_PHONE_NUMBER_ID:
        logger.error("[WhatsApp] WA_TOKEN / WA_PHONE_NUMBER_ID not configured, message dropped")
        return False

    try:
        response = requests.post(
            _messages_url(),
            json={
                "messaging_product": "whatsapp",
                "to": to,
                "type": "text",
                "text": {"body": body},
            },
            headers={
                "Authorization": f"Bearer {settings.WA_TOKEN}",
                "Content-Type": "application/json",
            },
            timeout=settings.WA_SEND_TIMEOUT_SECONDS,
        )
    except requests.RequestException as e:
        logger.error(f"[WhatsApp] Send to {mask_phone(to)} failed: {type(e).__name__}: {e}")
        return False

    if not response.ok:
        try:
            error = response.json().get("error", {})
        except ValueError:
            error = {}
        logger.error(
            f"[WhatsApp] Send to {mask_phone(to)} rejected: status={response.status_code} "
            f"message={error.get('message')} type={error.get('type')} code={error.get('code')} "
            f"error_subcode={error.get('error_subcode')} fbtrace_id={error.get('fbtrace_id')}"
        )
        return False

    return True


def deliver_all(outbound: Iterable[OutboundMessage], sender: Sender = send_whatsapp_text) -> int:
    """Deliver in order; returns how many were accepted."""
    delivered = 0
    for message in outbound:
        if sender(message.target_phone, message.body):
            delivered += 1
    return delivered
