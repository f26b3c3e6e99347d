from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from vinhopay.db.base import Base


class Restaurant(Base):
    """Partner restaurant. Provisioned externally; read-only to the conversation engine."""
    __tablename__ = "restaurants"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    contact_name = Column(String(255), nullable=True)
    phone_whatsapp = Column(String(32), unique=True, nullable=False, index=True)
    neighborhood = Column(String(128), nullable=True)
    city = Column(String(128), nullable=True)
    state = Column(String(64), nullable=True)
    is_partner = Column(Boolean, nullable=False, default=True)
    accepts_cork_waiver = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
