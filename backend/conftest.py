"""
Shared fixtures: a temp-file SQLite database per test, two partner
restaurants and a ``chat`` helper that pushes one text message through the
full transactional entry point (lock, handler, commit).
"""
import sys
import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import NullPool

sys.path.insert(0, os.path.dirname(__file__))

from vinhopay.conversation.locks import PhoneLockRegistry
from vinhopay.conversation.router import process_inbound
from vinhopay.db.init_db import init_db
from vinhopay.models.reservation import Reservation
from vinhopay.models.restaurant import Restaurant
from vinhopay.models.user import User
from vinhopay.schemas.message import InboundMessage

CUSTOMER = "5511999990000"
OTHER_CUSTOMER = "5511999991111"
BISTRO_PHONE = "5511988880001"
CANTINA_PHONE = "5511988880002"

# Monday 10/11/2025, 12:00 local time
NOW = datetime(2025, 11, 10, 12, 0)

# Happy path up to (and including) the customer's confirmation, booking the
# first restaurant for 4 people on 25/12/2025 at 20:00
BOOKING_SCRIPT = ("oi", "Ana", "1", "4", "12", "25", "20:00", "1")


@pytest.fixture
def engine(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
        poolclass=NullPool,
    )
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def restaurants(engine):
    """Two partners plus one non-partner that must never show up in menus."""
    Session = sessionmaker(bind=engine, expire_on_commit=False)
    session = Session()
    rows = [
        Restaurant(name="Cantina Bella Uva", phone_whatsapp=CANTINA_PHONE, neighborhood="Bixiga", city="São Paulo"),
        Restaurant(name="Bistrô da Vila", phone_whatsapp=BISTRO_PHONE, neighborhood="Vila Madalena", city="São Paulo"),
        Restaurant(name="Adega Fechada", phone_whatsapp="5511988880009", is_partner=False),
    ]
    session.add_all(rows)
    session.commit()
    session.close()
    # Menu order (by name): 1) Bistrô da Vila, 2) Cantina Bella Uva
    return {"bistro": rows[1], "cantina": rows[0], "closed": rows[2]}


@pytest.fixture
def chat(session_factory):
    """send(phone, text, now=NOW, message_id=None) -> list[OutboundMessage]"""
    locks = PhoneLockRegistry()

    def send(phone, text, now=NOW, message_id=None):
        message = InboundMessage(sender_phone=phone, text=text, message_id=message_id)
        return process_inbound(message, now=now, session_factory=session_factory, locks=locks)

    return send


@pytest.fixture
def book(chat):
    """Run BOOKING_SCRIPT for a phone; returns every reply of the last step."""

    def run(phone=CUSTOMER, script=BOOKING_SCRIPT):
        replies = []
        for text in script:
            replies = chat(phone, text)
        return replies

    return run


def bodies_for(replies, phone):
    return [r.body for r in replies if r.target_phone == phone]


def fetch_user(db, phone):
    """Fresh read of a customer (other sessions committed in between)."""
    db.expire_all()
    return db.query(User).filter(User.phone == phone).one()


def fetch_reservations(db, user_id):
    db.expire_all()
    return db.query(Reservation).filter(Reservation.user_id == user_id).order_by(Reservation.id).all()
