"""
User - a customer identified by phone number.

``active_reservation_id`` / ``active_feedback_id`` are plain integer columns,
not foreign keys: the user only indexes into the workflow tables and every
read re-validates the target (see services.reservation_service and
services.feedback_service).
"""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func

from vinhopay.conversation.states import CustomerStage
from vinhopay.db.base import Base


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(32), unique=True, nullable=False, index=True)
    name = Column(String(60), nullable=True)
    stage = Column(String(32), nullable=False, default=CustomerStage.ASKED_NAME.value)
    active_reservation_id = Column(Integer, nullable=True)
    active_feedback_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    # Compare-and-set: a flush against a row another handler already changed
    # raises StaleDataError
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    @property
    def current_stage(self) -> CustomerStage | None:
        """Parsed stage; None for unknown / legacy values."""
        return CustomerStage.parse(self.stage)

    def __repr__(self):
        return f"<User id={self.id} stage={self.stage}>"
