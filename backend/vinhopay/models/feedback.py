"""
Feedback - post-visit questionnaire for one CONFIRMED reservation.

Lifecycle:
    1. Inserted PENDING when the restaurant confirms (send_at = visit + offset)
    2. Claimed by the dispatcher once due -> IN_PROGRESS / ASK_WINE
    3. Answered step by step by the customer -> DONE
"""
from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Text, CheckConstraint, Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from vinhopay.conversation.states import FeedbackStatus, FeedbackStep
from vinhopay.db.base import Base


class Feedback(Base):
    __tablename__ = "feedbacks"
    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_feedbacks_rating_range"),
        # "oldest due PENDING feedback"
        Index("ix_feedbacks_status_send_at", "status", "send_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(
        Integer, ForeignKey("reservations.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False)
    status = Column(String(32), nullable=False, default=FeedbackStatus.PENDING.value)
    step = Column(String(32), nullable=True)
    # Local wall-clock time (settings.APP_TIMEZONE), same as reservation date/time
    send_at = Column(DateTime, nullable=False)

    wine = Column(Text, nullable=True)
    dish = Column(Text, nullable=True)
    rating = Column(Integer, nullable=True)
    comment = Column(Text, nullable=True)

    asked_at = Column(DateTime, nullable=True)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    reservation = relationship("Reservation")
    user = relationship("User")
    restaurant = relationship("Restaurant")

    @property
    def current_status(self) -> FeedbackStatus | None:
        return FeedbackStatus.parse(self.status)

    @property
    def current_step(self) -> FeedbackStep | None:
        return FeedbackStep.parse(self.step)

    def __repr__(self):
        return f"<Feedback id={self.id} status={self.status} step={self.step}>"
