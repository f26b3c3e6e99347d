"""
Restaurant stage machine - the partner's confirm/reject sub-dialog.

A restaurant message always refers to ONE reservation: the newest
PENDING_RESTAURANT one whose answer is still open. Its
restaurant_response_status is the state of this machine:

    (none)               1 -> confirm            0 -> reason menu
    AWAITING_REASON      1 -> "Lotado"           2 -> "Horário indisponível"
                         3 -> ask free text
    AWAITING_REASON_TEXT text (>= 3 chars) -> reject with that text
    RESOLVED             anything -> "already answered"

Anything not in TRANSITIONS falls through to the state's FALLBACK (re-show
the menu, or read the text as the free-form reason).
"""
import logging
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from sqlalchemy.orm import Session

from vinhopay.conversation import messages
from vinhopay.conversation.outbox import Outbox
from vinhopay.conversation.parsing import Rejected, parse_reason_text
from vinhopay.conversation.states import CustomerStage, RejectionReason, ResponseStatus
from vinhopay.models.reservation import Reservation
from vinhopay.models.restaurant import Restaurant
from vinhopay.services import feedback_service, reservation_service, user_service

logger = logging.getLogger(__name__)


class RestaurantInput(Enum):
    """Normalized input class of a restaurant message."""
    ZERO = "0"
    ONE = "1"
    TWO = "2"
    THREE = "3"
    TEXT = "text"


def classify(text: str) -> RestaurantInput:
    stripped = (text or "").strip()
    for option in (RestaurantInput.ZERO, RestaurantInput.ONE, RestaurantInput.TWO, RestaurantInput.THREE):
        if stripped == option.value:
            return option
    return RestaurantInput.TEXT


ResponseHandler = Callable[[Session, Restaurant, Reservation, str, datetime, Outbox], None]


# ============================================================================
# CUSTOMER SIDE EFFECTS
# ============================================================================

def _release_customer(reservation: Reservation, outbox: Outbox, body: str):
    """Tell the customer and free them for a new reservation."""
    user = reservation.user
    if user.active_reservation_id == reservation.id:
        user_service.set_active_reservation(user, None)
        if user.current_stage == CustomerStage.WAIT_RESTAURANT:
            user_service.set_stage(user, CustomerStage.ACTIVE)
    outbox.send(user.phone, body)


def _reject(
    restaurant: Restaurant,
    reservation: Reservation,
    code: RejectionReason,
    reason: str,
    now: datetime,
    outbox: Outbox,
):
    reservation_service.reject_by_restaurant(reservation, code, reason, now)
    logger.info(f"[RESTAURANT] Reservation {reservation.id} rejected by {restaurant.id}: {code.value}")
    _release_customer(reservation, outbox, messages.customer_rejected(restaurant.name, reason))
    outbox.send(restaurant.phone_whatsapp, messages.RESTAURANT_REJECTED_ACK)


# ============================================================================
# TRANSITIONS
# ============================================================================

def _confirm(db, restaurant, reservation, text, now, outbox):
    reservation_service.confirm_by_restaurant(reservation, now)
    feedback = feedback_service.create_for_reservation(db, reservation)
    logger.info(
        f"[RESTAURANT] Reservation {reservation.id} confirmed by {restaurant.id}; "
        f"feedback {feedback.id} due at {feedback.send_at}"
    )
    _release_customer(
        reservation,
        outbox,
        messages.customer_confirmed(restaurant.name, reservation.reserved_date, reservation.reserved_time),
    )
    outbox.send(restaurant.phone_whatsapp, messages.RESTAURANT_CONFIRMED_ACK)


def _ask_reason(db, restaurant, reservation, text, now, outbox):
    reservation_service.await_reason(reservation)
    outbox.send(restaurant.phone_whatsapp, messages.restaurant_reason_menu())


def _reject_full(db, restaurant, reservation, text, now, outbox):
    _reject(restaurant, reservation, RejectionReason.FULL, messages.REASON_FULL, now, outbox)


def _reject_schedule(db, restaurant, reservation, text, now, outbox):
    _reject(restaurant, reservation, RejectionReason.SCHEDULE, messages.REASON_SCHEDULE, now, outbox)


def _ask_reason_text(db, restaurant, reservation, text, now, outbox):
    reservation_service.await_reason_text(reservation)
    outbox.send(restaurant.phone_whatsapp, messages.RESTAURANT_ASK_REASON_TEXT)


def _take_reason_text(db, restaurant, reservation, text, now, outbox):
    result = parse_reason_text(text)
    if isinstance(result, Rejected):
        outbox.send(restaurant.phone_whatsapp, messages.RESTAURANT_ASK_REASON_TEXT)
        return
    _reject(restaurant, reservation, RejectionReason.OTHER, result.value, now, outbox)


def _show_confirm_menu(db, restaurant, reservation, text, now, outbox):
    outbox.send(
        restaurant.phone_whatsapp,
        messages.restaurant_confirm_menu(
            reservation.user.name, reservation.reserved_date, reservation.reserved_time
        ),
    )


def _show_reason_menu(db, restaurant, reservation, text, now, outbox):
    outbox.send(restaurant.phone_whatsapp, messages.restaurant_reason_menu())


TRANSITIONS: Dict[Tuple[Optional[ResponseStatus], RestaurantInput], ResponseHandler] = {
    (None, RestaurantInput.ONE): _confirm,
    (None, RestaurantInput.ZERO): _ask_reason,
    (ResponseStatus.AWAITING_REASON, RestaurantInput.ONE): _reject_full,
    (ResponseStatus.AWAITING_REASON, RestaurantInput.TWO): _reject_schedule,
    (ResponseStatus.AWAITING_REASON, RestaurantInput.THREE): _ask_reason_text,
}

FALLBACK: Dict[Optional[ResponseStatus], ResponseHandler] = {
    None: _show_confirm_menu,
    ResponseStatus.AWAITING_REASON: _show_reason_menu,
    ResponseStatus.AWAITING_REASON_TEXT: _take_reason_text,
}


def handle_restaurant_message(db: Session, restaurant: Restaurant, text: str, now: datetime, outbox: Outbox):
    reservation = reservation_service.find_addressable_for_restaurant(db, restaurant.id)
    if reservation is None:
        latest = reservation_service.find_latest_submitted_for_restaurant(db, restaurant.id)
        if latest is not None and latest.response_status == ResponseStatus.RESOLVED:
            outbox.send(restaurant.phone_whatsapp, messages.RESTAURANT_ALREADY_ANSWERED)
        else:
            outbox.send(restaurant.phone_whatsapp, messages.RESTAURANT_NOTHING_PENDING)
        return

    state = reservation.response_status
    handler = TRANSITIONS.get((state, classify(text))) or FALLBACK[state]
    logger.info(
        f"[RESTAURANT] restaurant={restaurant.id} reservation={reservation.id} "
        f"state={state.value if state else None} handler={handler.__name__}"
    )
    handler(db, restaurant, reservation, text, now, outbox)
