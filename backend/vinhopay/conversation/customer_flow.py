"""
Customer stage machine.

Flow:
    ASKED_NAME -> CHOOSE_RESTAURANT -> ASK_PARTY_SIZE -> ASK_MONTH -> ASK_DAY
    -> ASK_TIME -> CONFIRM -> WAIT_RESTAURANT
    ACTIVE -> CHOOSE_RESTAURANT (menu)

Rules:
- Bad input never changes state: the handler re-prompts and returns.
- Every stage that reads the active reservation re-validates it; a missing,
  foreign or no-longer-DRAFT reservation restarts at CHOOSE_RESTAURANT.
- Unknown stage values behave like ACTIVE.
"""
import logging
from datetime import datetime
from typing import Callable, Dict

from sqlalchemy.orm import Session

from vinhopay.conversation import messages
from vinhopay.conversation.outbox import Outbox
from vinhopay.conversation.parsing import (
    Rejected,
    normalize_name,
    parse_day,
    parse_menu_choice,
    parse_month,
    parse_party_size,
    parse_time_hhmm,
    parse_yes_no,
    resolve_year,
)
from vinhopay.conversation.states import CustomerStage, ReservationStatus
from vinhopay.models.reservation import Reservation
from vinhopay.models.user import User
from vinhopay.services import reservation_service, restaurant_service, user_service

logger = logging.getLogger(__name__)

StageHandler = Callable[[Session, User, str, datetime, Outbox], None]


# ============================================================================
# SHARED STEPS
# ============================================================================

def show_restaurant_menu(db: Session, user: User, outbox: Outbox):
    """Send the partner menu and move to CHOOSE_RESTAURANT (ACTIVE if empty)."""
    restaurants = restaurant_service.get_partner_restaurants(db)
    if not restaurants:
        user_service.set_stage(user, CustomerStage.ACTIVE)
        outbox.send(user.phone, messages.NO_RESTAURANTS)
        return
    user_service.set_stage(user, CustomerStage.CHOOSE_RESTAURANT)
    outbox.send(user.phone, messages.restaurant_menu(restaurants))


def restart(db: Session, user: User, outbox: Outbox):
    """Self-heal a dangling active reservation reference."""
    logger.info(f"[CUSTOMER] Restarting user {user.id} from stage {user.stage}")
    user_service.set_active_reservation(user, None)
    outbox.send(user.phone, messages.RESTART)
    show_restaurant_menu(db, user, outbox)


def _draft_or_restart(db: Session, user: User, outbox: Outbox) -> Reservation | None:
    reservation = reservation_service.get_active_reservation(db, user, ReservationStatus.DRAFT)
    if reservation is None:
        restart(db, user, outbox)
    return reservation


# ============================================================================
# STAGE HANDLERS
# ============================================================================

def _handle_asked_name(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    result = normalize_name(text)
    if isinstance(result, Rejected):
        outbox.send(user.phone, messages.ASK_NAME_AGAIN)
        return

    name = result.value
    user_service.set_name(user, name)
    restaurants = restaurant_service.get_partner_restaurants(db)
    if not restaurants:
        user_service.set_stage(user, CustomerStage.ACTIVE)
        outbox.send(user.phone, messages.welcome_no_restaurants(name))
        return

    user_service.set_stage(user, CustomerStage.CHOOSE_RESTAURANT)
    outbox.send(user.phone, messages.welcome(name))
    outbox.send(user.phone, messages.restaurant_menu(restaurants))


def _handle_choose_restaurant(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    restaurants = restaurant_service.get_partner_restaurants(db)
    if not restaurants:
        user_service.set_stage(user, CustomerStage.ACTIVE)
        outbox.send(user.phone, messages.NO_RESTAURANTS)
        return

    result = parse_menu_choice(text, len(restaurants))
    if isinstance(result, Rejected):
        if result.reason == "not_a_number":
            outbox.send(user.phone, messages.CHOICE_NOT_A_NUMBER)
        else:
            outbox.send(user.phone, messages.CHOICE_OUT_OF_RANGE)
        return

    # One live reservation per user: a request already with a restaurant wins,
    # leftover drafts are cancelled.
    for live in reservation_service.get_live_reservations(db, user.id):
        if live.current_status == ReservationStatus.PENDING_RESTAURANT:
            logger.info(f"[CUSTOMER] User {user.id} already waiting on reservation {live.id}")
            user_service.set_active_reservation(user, live.id)
            user_service.set_stage(user, CustomerStage.WAIT_RESTAURANT)
            outbox.send(user.phone, messages.WAITING_RESTAURANT)
            return
        reservation_service.cancel(live)

    selected = restaurants[result.value - 1]
    reservation = reservation_service.create_draft(db, user, selected)
    user_service.set_active_reservation(user, reservation.id)
    user_service.set_stage(user, CustomerStage.ASK_PARTY_SIZE)
    outbox.send(user.phone, messages.restaurant_chosen(selected.name))


def _handle_party_size(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    reservation = _draft_or_restart(db, user, outbox)
    if reservation is None:
        return

    result = parse_party_size(text)
    if isinstance(result, Rejected):
        outbox.send(user.phone, messages.ASK_PARTY_SIZE_AGAIN)
        return

    reservation_service.set_party_size(reservation, result.value)
    user_service.set_stage(user, CustomerStage.ASK_MONTH)
    outbox.send(user.phone, messages.month_menu())


def _handle_month(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    reservation = _draft_or_restart(db, user, outbox)
    if reservation is None:
        return

    result = parse_month(text)
    if isinstance(result, Rejected):
        outbox.send(user.phone, messages.MONTH_INVALID)
        outbox.send(user.phone, messages.month_menu())
        return

    month = result.value
    reservation_service.set_month(reservation, resolve_year(month, now.date()), month)
    user_service.set_stage(user, CustomerStage.ASK_DAY)
    outbox.send(user.phone, messages.ASK_DAY)


def _handle_day(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    reservation = _draft_or_restart(db, user, outbox)
    if reservation is None:
        return

    if not reservation.reserved_year or not reservation.reserved_month:
        # Draft lost its month (admin edit / legacy row): ask again
        user_service.set_stage(user, CustomerStage.ASK_MONTH)
        outbox.send(user.phone, messages.month_menu())
        return

    result = parse_day(text, reservation.reserved_year, reservation.reserved_month)
    if isinstance(result, Rejected):
        outbox.send(user.phone, messages.DAY_INVALID)
        return

    reservation_service.set_day(reservation, result.value)
    user_service.set_stage(user, CustomerStage.ASK_TIME)
    outbox.send(user.phone, messages.ASK_TIME)


def _handle_time(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    reservation = _draft_or_restart(db, user, outbox)
    if reservation is None:
        return

    result = parse_time_hhmm(text)
    if isinstance(result, Rejected):
        outbox.send(user.phone, messages.TIME_INVALID)
        return

    reservation_service.set_time(reservation, result.value)
    user_service.set_stage(user, CustomerStage.CONFIRM)
    restaurant = restaurant_service.get_restaurant_by_id(db, reservation.restaurant_id)
    outbox.send(
        user.phone,
        messages.confirm_summary(
            restaurant.name if restaurant else "Restaurante",
            reservation.party_size,
            reservation.reserved_date,
            reservation.reserved_time,
        ),
    )


def _handle_confirm(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    reservation = _draft_or_restart(db, user, outbox)
    if reservation is None:
        return

    result = parse_yes_no(text)
    if isinstance(result, Rejected):
        outbox.send(user.phone, messages.CONFIRM_AGAIN)
        return

    if not result.value:
        reservation_service.cancel(reservation)
        user_service.set_active_reservation(user, None)
        outbox.send(user.phone, messages.CANCELLED)
        show_restaurant_menu(db, user, outbox)
        return

    if reservation.reserved_date is None or reservation.reserved_time is None or not reservation.party_size:
        logger.warning(f"[CUSTOMER] Incomplete draft {reservation.id} at CONFIRM, restarting")
        reservation_service.cancel(reservation)
        restart(db, user, outbox)
        return

    reservation_service.submit_to_restaurant(reservation)
    user_service.set_stage(user, CustomerStage.WAIT_RESTAURANT)

    restaurant = restaurant_service.get_restaurant_by_id(db, reservation.restaurant_id)
    outbox.send(
        restaurant.phone_whatsapp,
        messages.restaurant_request(
            user.name,
            user.phone,
            reservation.party_size,
            reservation.reserved_date,
            reservation.reserved_time,
        ),
    )
    outbox.send(user.phone, messages.sent_to_restaurant(restaurant.name))
    logger.info(f"[CUSTOMER] Reservation {reservation.id} sent to restaurant {restaurant.id}")


def _handle_wait_restaurant(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    reservation = reservation_service.get_active_reservation(db, user, ReservationStatus.PENDING_RESTAURANT)
    if reservation is None:
        restart(db, user, outbox)
        return
    outbox.send(user.phone, messages.WAITING_RESTAURANT)


def _handle_active(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    show_restaurant_menu(db, user, outbox)


STAGE_HANDLERS: Dict[CustomerStage, StageHandler] = {
    CustomerStage.ASKED_NAME: _handle_asked_name,
    CustomerStage.CHOOSE_RESTAURANT: _handle_choose_restaurant,
    CustomerStage.ASK_PARTY_SIZE: _handle_party_size,
    CustomerStage.ASK_MONTH: _handle_month,
    CustomerStage.ASK_DAY: _handle_day,
    CustomerStage.ASK_TIME: _handle_time,
    CustomerStage.CONFIRM: _handle_confirm,
    CustomerStage.WAIT_RESTAURANT: _handle_wait_restaurant,
    CustomerStage.ACTIVE: _handle_active,
}


def handle_customer_message(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    stage = user.current_stage
    handler = STAGE_HANDLERS.get(stage)
    if handler is None:
        logger.warning(f"[CUSTOMER] Unknown stage {user.stage!r} for user {user.id}, falling back to ACTIVE")
        handler = _handle_active
    handler(db, user, text, now, outbox)
