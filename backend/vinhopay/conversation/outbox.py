"""Outbound messages collected during one transition, delivered after commit."""
from typing import List

from vinhopay.schemas.message import OutboundMessage


class Outbox:
    def __init__(self):
        self.messages: List[OutboundMessage] = []

    def send(self, phone: str, body: str):
        self.messages.append(OutboundMessage(target_phone=phone, body=body))
