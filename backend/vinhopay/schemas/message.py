from pydantic import BaseModel
from typing import Optional


class InboundMessage(BaseModel):
    """One text message received from the transport."""
    sender_phone: str
    text: str = ""
    # Provider id (WhatsApp "wamid"), used to drop redeliveries
    message_id: Optional[str] = None


class OutboundMessage(BaseModel):
    """One text message to deliver after the transaction commits."""
    target_phone: str
    body: str
