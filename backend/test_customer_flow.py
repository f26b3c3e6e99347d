"""
Customer stage machine, driven end to end through process_inbound().
"""
from datetime import date, time

from conftest import (
    BISTRO_PHONE,
    CUSTOMER,
    OTHER_CUSTOMER,
    bodies_for,
    fetch_reservations,
    fetch_user,
)
from vinhopay.conversation import messages
from vinhopay.conversation.states import CustomerStage, ReservationStatus


def _advance(chat, *texts, phone=CUSTOMER):
    replies = []
    for text in texts:
        replies = chat(phone, text)
    return replies


# ============================================================================
# HAPPY PATH
# ============================================================================

def test_first_message_creates_user_and_asks_name(chat, db, restaurants):
    replies = chat(CUSTOMER, "oi")

    assert bodies_for(replies, CUSTOMER) == [messages.GREETING]
    user = fetch_user(db, CUSTOMER)
    assert user.current_stage == CustomerStage.ASKED_NAME
    assert user.name is None


def test_name_then_menu(chat, db, restaurants):
    chat(CUSTOMER, "oi")
    replies = chat(CUSTOMER, "  Ana  ")

    body = bodies_for(replies, CUSTOMER)
    assert body[0] == messages.welcome("Ana")
    assert "1) Bistrô da Vila" in body[1]
    assert "2) Cantina Bella Uva" in body[1]
    assert "Adega Fechada" not in body[1]
    user = fetch_user(db, CUSTOMER)
    assert user.name == "Ana"
    assert user.current_stage == CustomerStage.CHOOSE_RESTAURANT


def test_booking_reaches_restaurant(book, db, restaurants):
    replies = book()

    assert [r.target_phone for r in replies] == [BISTRO_PHONE, CUSTOMER]
    request = replies[0].body
    assert "Cliente: Ana" in request
    assert "👥 Pessoas: 4" in request
    assert "📅 Data: 25/12/2025" in request
    assert "⏰ Horário: 20:00" in request
    assert replies[1].body == messages.sent_to_restaurant("Bistrô da Vila")

    user = fetch_user(db, CUSTOMER)
    assert user.current_stage == CustomerStage.WAIT_RESTAURANT
    [reservation] = fetch_reservations(db, user.id)
    assert user.active_reservation_id == reservation.id
    assert reservation.current_status == ReservationStatus.PENDING_RESTAURANT
    assert reservation.restaurant_id == restaurants["bistro"].id
    assert reservation.party_size == 4
    assert reservation.reserved_date == date(2025, 12, 25)
    assert reservation.reserved_time == time(20, 0)
    assert reservation.restaurant_response_status is None


def test_month_before_current_month_books_next_year(chat, db, restaurants):
    _advance(chat, "oi", "Ana", "2", "2", "3", "15", "19:30")

    user = fetch_user(db, CUSTOMER)
    assert user.current_stage == CustomerStage.CONFIRM
    [reservation] = fetch_reservations(db, user.id)
    assert reservation.reserved_date == date(2026, 3, 15)
    assert reservation.restaurant_id == restaurants["cantina"].id


def test_waiting_customer_is_told_to_wait(book, chat, restaurants):
    book()
    replies = chat(CUSTOMER, "e aí?")
    assert bodies_for(replies, CUSTOMER) == [messages.WAITING_RESTAURANT]


# ============================================================================
# INVALID INPUT NEVER MOVES THE STATE
# ============================================================================

def _assert_reprompt(chat, db, text, expected_bodies, stage):
    before = fetch_user(db, CUSTOMER)
    version = before.version
    replies = chat(CUSTOMER, text)
    assert bodies_for(replies, CUSTOMER) == expected_bodies
    after = fetch_user(db, CUSTOMER)
    assert after.current_stage == stage
    assert after.version == version


def test_invalid_inputs_reprompt_without_state_change(chat, db, restaurants):
    chat(CUSTOMER, "oi")
    _assert_reprompt(chat, db, " ", [messages.ASK_NAME_AGAIN], CustomerStage.ASKED_NAME)

    chat(CUSTOMER, "Ana")
    _assert_reprompt(chat, db, "o primeiro", [messages.CHOICE_NOT_A_NUMBER], CustomerStage.CHOOSE_RESTAURANT)
    _assert_reprompt(chat, db, "9", [messages.CHOICE_OUT_OF_RANGE], CustomerStage.CHOOSE_RESTAURANT)

    chat(CUSTOMER, "1")
    _assert_reprompt(chat, db, "muitos", [messages.ASK_PARTY_SIZE_AGAIN], CustomerStage.ASK_PARTY_SIZE)
    _assert_reprompt(chat, db, "51", [messages.ASK_PARTY_SIZE_AGAIN], CustomerStage.ASK_PARTY_SIZE)

    chat(CUSTOMER, "4")
    _assert_reprompt(
        chat, db, "13", [messages.MONTH_INVALID, messages.month_menu()], CustomerStage.ASK_MONTH
    )

    chat(CUSTOMER, "2")
    _assert_reprompt(chat, db, "30", [messages.DAY_INVALID], CustomerStage.ASK_DAY)

    chat(CUSTOMER, "28")
    _assert_reprompt(chat, db, "19h", [messages.TIME_INVALID], CustomerStage.ASK_TIME)

    chat(CUSTOMER, "19:00")
    _assert_reprompt(chat, db, "talvez", [messages.CONFIRM_AGAIN], CustomerStage.CONFIRM)


# ============================================================================
# CANCEL / SELF-HEALING
# ============================================================================

def test_cancel_at_confirm_returns_to_menu(chat, db, restaurants):
    replies = _advance(chat, "oi", "Ana", "1", "4", "12", "25", "20:00", "0")

    body = bodies_for(replies, CUSTOMER)
    assert body[0] == messages.CANCELLED
    assert "1) Bistrô da Vila" in body[1]
    assert not bodies_for(replies, BISTRO_PHONE)

    user = fetch_user(db, CUSTOMER)
    assert user.current_stage == CustomerStage.CHOOSE_RESTAURANT
    assert user.active_reservation_id is None
    [reservation] = fetch_reservations(db, user.id)
    assert reservation.current_status == ReservationStatus.CANCELLED


def test_reservation_cancelled_behind_the_engine_restarts(chat, db, restaurants):
    _advance(chat, "oi", "Ana", "1", "4", "12", "25")
    user = fetch_user(db, CUSTOMER)
    [reservation] = fetch_reservations(db, user.id)
    reservation.status = ReservationStatus.CANCELLED.value
    db.commit()

    replies = chat(CUSTOMER, "20:00")

    body = bodies_for(replies, CUSTOMER)
    assert body[0] == messages.RESTART
    assert "1) Bistrô da Vila" in body[1]
    user = fetch_user(db, CUSTOMER)
    assert user.current_stage == CustomerStage.CHOOSE_RESTAURANT
    assert user.active_reservation_id is None


def test_reference_to_someone_elses_reservation_restarts(chat, db, restaurants):
    _advance(chat, "oi", "Bruno", "1", phone=OTHER_CUSTOMER)
    _advance(chat, "oi", "Ana", "1", "4")
    other = fetch_user(db, OTHER_CUSTOMER)
    [foreign] = fetch_reservations(db, other.id)
    user = fetch_user(db, CUSTOMER)
    user.active_reservation_id = foreign.id
    db.commit()

    replies = chat(CUSTOMER, "12")

    assert bodies_for(replies, CUSTOMER)[0] == messages.RESTART
    assert fetch_user(db, CUSTOMER).current_stage == CustomerStage.CHOOSE_RESTAURANT
    # The other customer's draft is untouched
    [foreign] = fetch_reservations(db, other.id)
    assert foreign.current_status == ReservationStatus.DRAFT
    assert foreign.reserved_month is None


def test_missing_reference_at_wait_restaurant_restarts(chat, db, restaurants):
    _advance(chat, "oi", "Ana")
    user = fetch_user(db, CUSTOMER)
    user.stage = CustomerStage.WAIT_RESTAURANT.value
    db.commit()

    replies = chat(CUSTOMER, "oi")
    assert bodies_for(replies, CUSTOMER)[0] == messages.RESTART
    assert fetch_user(db, CUSTOMER).current_stage == CustomerStage.CHOOSE_RESTAURANT


def test_unknown_stage_behaves_like_active(chat, db, restaurants):
    _advance(chat, "oi", "Ana")
    user = fetch_user(db, CUSTOMER)
    user.stage = "ASK_WINE_PAIRING"
    db.commit()

    replies = chat(CUSTOMER, "oi")

    assert "1) Bistrô da Vila" in bodies_for(replies, CUSTOMER)[0]
    assert fetch_user(db, CUSTOMER).current_stage == CustomerStage.CHOOSE_RESTAURANT


def test_no_partner_restaurants(chat, db):
    chat(CUSTOMER, "oi")
    replies = chat(CUSTOMER, "Ana")

    assert bodies_for(replies, CUSTOMER) == [messages.welcome_no_restaurants("Ana")]
    assert fetch_user(db, CUSTOMER).current_stage == CustomerStage.ACTIVE

    replies = chat(CUSTOMER, "1")
    assert bodies_for(replies, CUSTOMER) == [messages.NO_RESTAURANTS]


# ============================================================================
# ONE LIVE RESERVATION PER CUSTOMER
# ============================================================================

def test_pending_reservation_blocks_a_second_one(book, chat, db, restaurants):
    book()
    # Admin override drops the customer back to ACTIVE while the request is pending
    user = fetch_user(db, CUSTOMER)
    pending_id = user.active_reservation_id
    user.stage = CustomerStage.ACTIVE.value
    user.active_reservation_id = None
    db.commit()

    chat(CUSTOMER, "oi")
    replies = chat(CUSTOMER, "2")

    assert bodies_for(replies, CUSTOMER) == [messages.WAITING_RESTAURANT]
    user = fetch_user(db, CUSTOMER)
    assert user.current_stage == CustomerStage.WAIT_RESTAURANT
    assert user.active_reservation_id == pending_id
    live = [r for r in fetch_reservations(db, user.id) if r.is_live]
    assert [r.id for r in live] == [pending_id]


def test_leftover_draft_is_cancelled_on_new_choice(chat, db, restaurants):
    _advance(chat, "oi", "Ana", "1", "4")
    user = fetch_user(db, CUSTOMER)
    user.stage = CustomerStage.ACTIVE.value
    db.commit()

    _advance(chat, "oi", "2")

    user = fetch_user(db, CUSTOMER)
    first, second = fetch_reservations(db, user.id)
    assert first.current_status == ReservationStatus.CANCELLED
    assert second.current_status == ReservationStatus.DRAFT
    assert user.active_reservation_id == second.id
    assert user.current_stage == CustomerStage.ASK_PARTY_SIZE
