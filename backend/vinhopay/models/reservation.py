"""
Reservation - one customer request to one restaurant.

Status flow (monotonic):
    DRAFT -> PENDING_RESTAURANT -> CONFIRMED | REJECTED
    DRAFT | PENDING_RESTAURANT -> CANCELLED

Restaurant answer sub-state (restaurant_response_status), forward only:
    NULL -> AWAITING_REASON | RESOLVED
    AWAITING_REASON -> AWAITING_REASON_TEXT | RESOLVED
    AWAITING_REASON_TEXT -> RESOLVED
"""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Time, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from vinhopay.conversation.states import (
    RESERVATION_TRANSITIONS,
    RESPONSE_TRANSITIONS,
    LIVE_RESERVATION_STATUSES,
    ReservationStatus,
    ReservationStep,
    ResponseStatus,
)
from vinhopay.core.exceptions import InvalidTransition
from vinhopay.db.base import Base


class Reservation(Base):
    __tablename__ = "reservations"
    __table_args__ = (
        # "latest pending reservation per restaurant"
        Index("ix_reservations_restaurant_status_created", "restaurant_id", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    restaurant_id = Column(Integer, ForeignKey("restaurants.id"), nullable=False)
    status = Column(String(32), nullable=False, default=ReservationStatus.DRAFT.value)
    step = Column(String(32), nullable=True, default=ReservationStep.ASK_PARTY_SIZE.value)

    party_size = Column(Integer, nullable=True)
    # Filled one question at a time, then assembled into reserved_date
    reserved_year = Column(Integer, nullable=True)
    reserved_month = Column(Integer, nullable=True)
    reserved_day = Column(Integer, nullable=True)
    reserved_date = Column(Date, nullable=True)
    reserved_time = Column(Time, nullable=True)

    restaurant_response_status = Column(String(32), nullable=True)
    rejection_reason_code = Column(String(16), nullable=True)
    rejection_reason = Column(String(255), nullable=True)
    restaurant_responded_at = Column(DateTime, nullable=True)  # local wall clock

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    user = relationship("User")
    restaurant = relationship("Restaurant")

    @property
    def current_status(self) -> ReservationStatus | None:
        return ReservationStatus.parse(self.status)

    @property
    def current_step(self) -> ReservationStep | None:
        return ReservationStep.parse(self.step)

    @property
    def response_status(self) -> ResponseStatus | None:
        return ResponseStatus.parse(self.restaurant_response_status)

    @property
    def is_live(self) -> bool:
        return self.current_status in LIVE_RESERVATION_STATUSES

    def transition_to(self, target: ReservationStatus):
        current = self.current_status
        if current is None or target not in RESERVATION_TRANSITIONS[current]:
            raise InvalidTransition("Reservation", self.id, self.status, target.value)
        self.status = target.value
        if target != ReservationStatus.DRAFT:
            self.step = ReservationStep.DONE.value

    def set_response_status(self, target: ResponseStatus):
        current = self.response_status
        if self.restaurant_response_status is not None and current is None:
            raise InvalidTransition("Reservation", self.id, self.restaurant_response_status, target.value)
        if target not in RESPONSE_TRANSITIONS[current]:
            raise InvalidTransition("Reservation", self.id, self.restaurant_response_status, target.value)
        self.restaurant_response_status = target.value

    def __repr__(self):
        return f"<Reservation id={self.id} status={self.status} step={self.step}>"
