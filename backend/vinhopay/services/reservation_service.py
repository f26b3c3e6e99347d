"""
Reservations: typed accessors used by the customer and restaurant machines.

Nothing here commits; the router commits once per inbound message so a
transition is all-or-nothing.
"""
import logging
from datetime import date, datetime, time
from typing import List

from sqlalchemy.orm import Session

from vinhopay.conversation.states import (
    LIVE_RESERVATION_STATUSES,
    RejectionReason,
    ReservationStatus,
    ReservationStep,
    ResponseStatus,
)
from vinhopay.core.audit import AuditLog
from vinhopay.models.reservation import Reservation
from vinhopay.models.restaurant import Restaurant
from vinhopay.models.user import User

logger = logging.getLogger(__name__)

# Sub-states in which the restaurant still owes an answer
_ADDRESSABLE_RESPONSES = (
    ResponseStatus.AWAITING_REASON.value,
    ResponseStatus.AWAITING_REASON_TEXT.value,
)


def _change_status(reservation: Reservation, target: ReservationStatus):
    previous = reservation.status
    reservation.transition_to(target)
    AuditLog.log_reservation("status", reservation.id, {"from": previous, "to": target.value})


def get_active_reservation(
    db: Session, user: User, expected: ReservationStatus = ReservationStatus.DRAFT
) -> Reservation | None:
    """
    Resolve User.active_reservation_id.

    Returns None unless the row exists, belongs to this user and is in the
    expected status - the caller then self-heals.
    """
    if not user.active_reservation_id:
        return None
    reservation = (
        db.query(Reservation)
        .filter(Reservation.id == user.active_reservation_id, Reservation.user_id == user.id)
        .first()
    )
    if reservation is None or reservation.current_status != expected:
        logger.warning(
            f"[RESERVATIONS] Dangling active reservation ref: user={user.id}, "
            f"ref={user.active_reservation_id}, found={reservation!r}"
        )
        return None
    return reservation


def get_live_reservations(db: Session, user_id: int) -> List[Reservation]:
    """DRAFT / PENDING_RESTAURANT reservations of a user, newest first."""
    return (
        db.query(Reservation)
        .filter(
            Reservation.user_id == user_id,
            Reservation.status.in_([s.value for s in LIVE_RESERVATION_STATUSES]),
        )
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        .all()
    )


def create_draft(db: Session, user: User, restaurant: Restaurant) -> Reservation:
    reservation = Reservation(
        user_id=user.id,
        restaurant_id=restaurant.id,
        status=ReservationStatus.DRAFT.value,
        step=ReservationStep.ASK_PARTY_SIZE.value,
    )
    db.add(reservation)
    db.flush()
    AuditLog.log_reservation("created", reservation.id, {"user_id": user.id, "restaurant_id": restaurant.id})
    return reservation


def set_party_size(reservation: Reservation, party_size: int):
    reservation.party_size = party_size
    reservation.step = ReservationStep.ASK_MONTH.value


def set_month(reservation: Reservation, year: int, month: int):
    reservation.reserved_year = year
    reservation.reserved_month = month
    reservation.step = ReservationStep.ASK_DAY.value


def set_day(reservation: Reservation, day: int):
    reservation.reserved_day = day
    reservation.reserved_date = date(reservation.reserved_year, reservation.reserved_month, day)
    reservation.step = ReservationStep.ASK_TIME.value


def set_time(reservation: Reservation, reserved_time: time):
    reservation.reserved_time = reserved_time
    reservation.step = ReservationStep.CONFIRM.value


def submit_to_restaurant(reservation: Reservation):
    _change_status(reservation, ReservationStatus.PENDING_RESTAURANT)


def cancel(reservation: Reservation):
    _change_status(reservation, ReservationStatus.CANCELLED)


def find_addressable_for_restaurant(db: Session, restaurant_id: int) -> Reservation | None:
    """
    The one reservation a restaurant message refers to: newest
    PENDING_RESTAURANT whose answer is not resolved yet.
    """
    return (
        db.query(Reservation)
        .filter(
            Reservation.restaurant_id == restaurant_id,
            Reservation.status == ReservationStatus.PENDING_RESTAURANT.value,
            (Reservation.restaurant_response_status.is_(None))
            | (Reservation.restaurant_response_status.in_(_ADDRESSABLE_RESPONSES)),
        )
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        .first()
    )


def find_latest_submitted_for_restaurant(db: Session, restaurant_id: int) -> Reservation | None:
    """Newest reservation that ever reached the restaurant (anything but DRAFT)."""
    return (
        db.query(Reservation)
        .filter(
            Reservation.restaurant_id == restaurant_id,
            Reservation.status != ReservationStatus.DRAFT.value,
        )
        .order_by(Reservation.created_at.desc(), Reservation.id.desc())
        .first()
    )


def await_reason(reservation: Reservation):
    reservation.set_response_status(ResponseStatus.AWAITING_REASON)
    AuditLog.log_reservation("response", reservation.id, {"to": ResponseStatus.AWAITING_REASON.value})


def await_reason_text(reservation: Reservation):
    reservation.set_response_status(ResponseStatus.AWAITING_REASON_TEXT)
    AuditLog.log_reservation("response", reservation.id, {"to": ResponseStatus.AWAITING_REASON_TEXT.value})


def confirm_by_restaurant(reservation: Reservation, now: datetime):
    reservation.set_response_status(ResponseStatus.RESOLVED)
    _change_status(reservation, ReservationStatus.CONFIRMED)
    reservation.restaurant_responded_at = now


def reject_by_restaurant(reservation: Reservation, code: RejectionReason, reason: str, now: datetime):
    reservation.set_response_status(ResponseStatus.RESOLVED)
    _change_status(reservation, ReservationStatus.REJECTED)
    reservation.rejection_reason_code = code.value
    reservation.rejection_reason = reason
    reservation.restaurant_responded_at = now
