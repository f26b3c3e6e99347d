"""
Due-feedback dispatcher: claiming, batching, busy customers, partial failure,
concurrent writers.
"""
import threading
from datetime import date, datetime, time, timedelta

import pytest

from vinhopay.agent.feedback_dispatcher import claim_due_feedback, dispatch_due_feedback
from vinhopay.conversation.locks import PhoneLockRegistry
from vinhopay.conversation.states import CustomerStage, FeedbackStatus, FeedbackStep, ReservationStatus
from vinhopay.models.feedback import Feedback
from vinhopay.models.reservation import Reservation
from vinhopay.models.user import User
from vinhopay.services import feedback_service

RUN_AT = datetime(2025, 12, 1, 12, 0)


def _seed_due(session, restaurant, count, first_send_at=datetime(2025, 11, 30, 22, 0), stage=CustomerStage.ACTIVE):
    """One customer + confirmed reservation + PENDING feedback per row, 1 minute apart."""
    ids = []
    for i in range(count):
        user = User(phone=f"55119000000{i:02d}", name=f"Cliente {i}", stage=stage.value)
        session.add(user)
        session.flush()
        reservation = Reservation(
            user_id=user.id,
            restaurant_id=restaurant.id,
            status=ReservationStatus.CONFIRMED.value,
            party_size=2,
            reserved_date=date(2025, 11, 30),
            reserved_time=time(19, 0),
        )
        session.add(reservation)
        session.flush()
        feedback = Feedback(
            reservation_id=reservation.id,
            user_id=user.id,
            restaurant_id=restaurant.id,
            status=FeedbackStatus.PENDING.value,
            send_at=first_send_at + timedelta(minutes=i),
        )
        session.add(feedback)
        session.flush()
        ids.append(feedback.id)
    session.commit()
    return ids


class Recorder:
    def __init__(self, result=True):
        self.sent = []
        self.result = result

    def __call__(self, to, body):
        self.sent.append((to, body))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


def _dispatch(session_factory, sender, **kwargs):
    return dispatch_due_feedback(
        now=RUN_AT, sender=sender, session_factory=session_factory, locks=PhoneLockRegistry(), **kwargs
    )


def _statuses(db):
    db.expire_all()
    return {f.id: f.status for f in db.query(Feedback).all()}


# ============================================================================
# CLAIM
# ============================================================================

def test_interleaved_claims_never_overlap(session_factory, db, restaurants):
    ids = _seed_due(db, restaurants["bistro"], 3)

    first = session_factory()
    second = session_factory()
    try:
        seen_by_first = [f.id for f in feedback_service.select_due_candidates(first, RUN_AT, 10)]
        seen_by_second = [f.id for f in feedback_service.select_due_candidates(second, RUN_AT, 10)]
        assert seen_by_first == seen_by_second == ids

        won_first = feedback_service.claim(first, ids[:2], RUN_AT)
        first.commit()
        won_second = feedback_service.claim(second, seen_by_second, RUN_AT)
        second.commit()
    finally:
        first.close()
        second.close()

    assert won_first == ids[:2]
    assert won_second == ids[2:]
    assert set(won_first) | set(won_second) == set(ids)
    assert not set(won_first) & set(won_second)
    assert set(_statuses(db).values()) == {FeedbackStatus.IN_PROGRESS.value}


def test_concurrent_claim_runs_split_the_rows(session_factory, db, restaurants, monkeypatch):
    ids = _seed_due(db, restaurants["bistro"], 3)
    both_selected = threading.Barrier(2, timeout=5)
    original_select = feedback_service.select_due_candidates

    def select_then_wait(session, now, limit):
        candidates = original_select(session, now, limit)
        both_selected.wait()
        return candidates

    monkeypatch.setattr(feedback_service, "select_due_candidates", select_then_wait)
    won = []
    errors = []

    def run():
        session = session_factory()
        try:
            won.append(claim_due_feedback(session, RUN_AT, 50))
        except Exception as e:
            errors.append(e)
        finally:
            session.close()

    threads = [threading.Thread(target=run) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    first, second = won
    assert set(first) | set(second) == set(ids)
    assert not set(first) & set(second)


def test_claim_respects_batch_size_and_due_order(session_factory, db, restaurants):
    ids = _seed_due(db, restaurants["bistro"], 5)

    session = session_factory()
    try:
        won = claim_due_feedback(session, RUN_AT, batch_size=2)
    finally:
        session.close()

    assert won == ids[:2]
    statuses = _statuses(db)
    assert [statuses[i] for i in ids] == ["IN_PROGRESS", "IN_PROGRESS", "PENDING", "PENDING", "PENDING"]


def test_rows_not_yet_due_are_left_alone(session_factory, db, restaurants):
    _seed_due(db, restaurants["bistro"], 2, first_send_at=RUN_AT + timedelta(hours=1))

    result = _dispatch(session_factory, Recorder())

    assert (result.claimed, result.dispatched, result.skipped) == (0, 0, 0)
    assert set(_statuses(db).values()) == {"PENDING"}


# ============================================================================
# DISPATCH
# ============================================================================

def test_dispatch_starts_each_conversation_once(session_factory, db, restaurants):
    ids = _seed_due(db, restaurants["bistro"], 3)
    sender = Recorder()

    result = _dispatch(session_factory, sender)
    again = _dispatch(session_factory, sender)

    assert (result.claimed, result.dispatched, result.skipped) == (3, 3, 0)
    assert again.claimed == 0
    assert [to for to, _ in sender.sent] == ["5511900000000", "5511900000001", "5511900000002"]

    db.expire_all()
    for feedback_id in ids:
        feedback = db.get(Feedback, feedback_id)
        user = db.get(User, feedback.user_id)
        assert feedback.current_step == FeedbackStep.ASK_WINE
        assert feedback.asked_at == RUN_AT
        assert user.current_stage == CustomerStage.FEEDBACK
        assert user.active_feedback_id == feedback_id


@pytest.mark.parametrize("stage", [CustomerStage.ASK_MONTH, CustomerStage.WAIT_RESTAURANT, CustomerStage.FEEDBACK])
def test_busy_customer_row_is_not_claimed(session_factory, db, restaurants, stage):
    [feedback_id] = _seed_due(db, restaurants["bistro"], 1, stage=stage)
    sender = Recorder()

    result = _dispatch(session_factory, sender)

    assert (result.claimed, result.dispatched, result.skipped) == (0, 0, 0)
    assert sender.sent == []
    db.expire_all()
    feedback = db.get(Feedback, feedback_id)
    assert feedback.current_status == FeedbackStatus.PENDING
    assert feedback.step is None
    assert db.get(User, feedback.user_id).current_stage == stage


def test_busy_customer_does_not_hold_back_later_rows(session_factory, db, restaurants):
    [busy_row] = _seed_due(db, restaurants["bistro"], 1, stage=CustomerStage.ASK_MONTH)
    idle = User(phone="5511977770000", name="Bruna", stage=CustomerStage.ACTIVE.value)
    db.add(idle)
    db.flush()
    visit = Reservation(
        user_id=idle.id,
        restaurant_id=restaurants["cantina"].id,
        status=ReservationStatus.CONFIRMED.value,
        party_size=4,
        reserved_date=date(2025, 11, 30),
        reserved_time=time(20, 0),
    )
    db.add(visit)
    db.flush()
    idle_row = Feedback(
        reservation_id=visit.id,
        user_id=idle.id,
        restaurant_id=restaurants["cantina"].id,
        status=FeedbackStatus.PENDING.value,
        send_at=datetime(2025, 11, 30, 23, 30),
    )
    db.add(idle_row)
    db.commit()
    sender = Recorder()

    result = _dispatch(session_factory, sender, batch_size=1)

    assert (result.claimed, result.dispatched, result.skipped) == (1, 1, 0)
    assert [to for to, _ in sender.sent] == ["5511977770000"]
    assert "Cantina Bella Uva" in sender.sent[0][1]
    statuses = _statuses(db)
    assert statuses[busy_row] == "PENDING"
    assert statuses[idle_row.id] == "IN_PROGRESS"


def test_customer_with_live_reservation_is_busy(session_factory, db, restaurants):
    [feedback_id] = _seed_due(db, restaurants["bistro"], 1)
    customer = db.get(User, db.get(Feedback, feedback_id).user_id)
    request = Reservation(
        user_id=customer.id,
        restaurant_id=restaurants["cantina"].id,
        status=ReservationStatus.PENDING_RESTAURANT.value,
        party_size=2,
        reserved_date=date(2025, 12, 5),
        reserved_time=time(21, 0),
    )
    db.add(request)
    db.flush()
    customer.active_reservation_id = request.id
    db.commit()

    assert feedback_service.customer_is_busy(db, customer)
    result = _dispatch(session_factory, Recorder())

    assert result.claimed == 0
    assert _statuses(db)[feedback_id] == "PENDING"


def test_stale_customer_write_puts_row_back_in_queue(session_factory, db, restaurants, monkeypatch):
    [feedback_id] = _seed_due(db, restaurants["bistro"], 1)
    original_mark_asked = feedback_service.mark_asked

    def mark_asked_while_customer_changes(feedback, now):
        original_mark_asked(feedback, now)
        rival = session_factory()
        try:
            rival.get(User, feedback.user_id).name = "Cliente Renomeado"
            rival.commit()
        finally:
            rival.close()

    monkeypatch.setattr(feedback_service, "mark_asked", mark_asked_while_customer_changes)
    sender = Recorder()

    result = _dispatch(session_factory, sender)

    assert (result.claimed, result.dispatched, result.skipped) == (1, 0, 1)
    assert sender.sent == []
    db.expire_all()
    feedback = db.get(Feedback, feedback_id)
    customer = db.get(User, feedback.user_id)
    assert feedback.current_status == FeedbackStatus.PENDING
    assert feedback.asked_at is None
    assert customer.name == "Cliente Renomeado"
    assert customer.current_stage == CustomerStage.ACTIVE
    assert customer.active_feedback_id is None

    monkeypatch.setattr(feedback_service, "mark_asked", original_mark_asked)
    retry = _dispatch(session_factory, sender)

    assert (retry.claimed, retry.dispatched, retry.skipped) == (1, 1, 0)
    assert [to for to, _ in sender.sent] == [customer.phone]


def test_customer_without_phone_is_skipped_not_fatal(session_factory, db, restaurants):
    ids = _seed_due(db, restaurants["bistro"], 3)
    broken = db.get(User, db.get(Feedback, ids[1]).user_id)
    broken.phone = ""
    db.commit()
    sender = Recorder()

    result = _dispatch(session_factory, sender)

    assert (result.claimed, result.dispatched, result.skipped) == (3, 2, 1)
    assert [to for to, _ in sender.sent] == ["5511900000000", "5511900000002"]


@pytest.mark.parametrize("outcome", [False, RuntimeError("graph api down")])
def test_delivery_failure_does_not_undo_dispatch(session_factory, db, restaurants, outcome):
    ids = _seed_due(db, restaurants["bistro"], 2)
    sender = Recorder(result=outcome)

    result = _dispatch(session_factory, sender)

    assert (result.claimed, result.dispatched, result.skipped) == (2, 2, 0)
    assert len(sender.sent) == 2
    db.expire_all()
    for feedback_id in ids:
        user = db.get(User, db.get(Feedback, feedback_id).user_id)
        assert user.current_stage == CustomerStage.FEEDBACK
