"""
Provider message ids already handled.

WhatsApp delivers webhooks at-least-once. The row is inserted in the same
transaction as the transition it triggered, so a rolled back transition also
forgets the id and a redelivery is processed again.
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from vinhopay.db.base import Base


class ProcessedMessage(Base):
    __tablename__ = "processed_messages"

    id = Column(Integer, primary_key=True, index=True)
    provider_message_id = Column(String(128), unique=True, nullable=False)
    phone = Column(String(32), nullable=False)
    received_at = Column(DateTime(timezone=True), server_default=func.now())
