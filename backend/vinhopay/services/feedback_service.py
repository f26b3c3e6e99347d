"""
Feedback rows: creation at confirmation time, due-row claiming, answers.

CLAIM SEMANTICS:
    select_due_candidates() is a locking read (FOR UPDATE SKIP LOCKED on
    PostgreSQL) and claim() flips each candidate with a conditional UPDATE
    that only matches while the row is still PENDING. Together they give one
    claimer per row even on stores without row locks (SQLite in tests): the
    second UPDATE simply matches nothing.

    Rows of busy customers (see customer_is_busy) are never selected; they
    stay PENDING until the customer is free.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Sequence

from sqlalchemy import exists, or_, update
from sqlalchemy.orm import Session, aliased

from vinhopay.conversation.states import (
    DRAFT_STAGES,
    LIVE_RESERVATION_STATUSES,
    CustomerStage,
    FeedbackStatus,
    FeedbackStep,
)
from vinhopay.core.audit import AuditLog
from vinhopay.core.config import settings
from vinhopay.models.feedback import Feedback
from vinhopay.models.reservation import Reservation
from vinhopay.models.user import User

logger = logging.getLogger(__name__)

# Stages in which a customer is answering something else
BUSY_STAGES = DRAFT_STAGES | {CustomerStage.WAIT_RESTAURANT, CustomerStage.FEEDBACK}


def feedback_send_at(reservation: Reservation) -> datetime:
    """Estimated end of the visit: reserved date+time plus a fixed offset."""
    visit = datetime.combine(reservation.reserved_date, reservation.reserved_time)
    return visit + timedelta(hours=settings.FEEDBACK_DELAY_HOURS)


def get_feedback_for_reservation(db: Session, reservation_id: int) -> Feedback | None:
    return db.query(Feedback).filter(Feedback.reservation_id == reservation_id).first()


def create_for_reservation(db: Session, reservation: Reservation) -> Feedback:
    """
    Schedule the post-visit questionnaire. Idempotent: returns the existing
    row when the reservation already has one.
    """
    existing = get_feedback_for_reservation(db, reservation.id)
    if existing:
        logger.info(f"[FEEDBACK] Reservation {reservation.id} already has feedback {existing.id}")
        return existing

    feedback = Feedback(
        reservation_id=reservation.id,
        user_id=reservation.user_id,
        restaurant_id=reservation.restaurant_id,
        status=FeedbackStatus.PENDING.value,
        send_at=feedback_send_at(reservation),
    )
    db.add(feedback)
    db.flush()
    AuditLog.log_feedback("created", feedback.id, {"reservation_id": reservation.id, "send_at": feedback.send_at})
    return feedback


def get_active_feedback(db: Session, user: User) -> Feedback | None:
    """
    Resolve User.active_feedback_id; None unless it exists, belongs to the
    user and is IN_PROGRESS.
    """
    if not user.active_feedback_id:
        return None
    feedback = (
        db.query(Feedback)
        .filter(Feedback.id == user.active_feedback_id, Feedback.user_id == user.id)
        .first()
    )
    if feedback is None or feedback.current_status != FeedbackStatus.IN_PROGRESS:
        logger.warning(
            f"[FEEDBACK] Dangling active feedback ref: user={user.id}, "
            f"ref={user.active_feedback_id}, found={feedback!r}"
        )
        return None
    return feedback


def _customer_busy_clause():
    """SQL form of "customer is answering something else", correlated to User."""
    live_reservation = exists().where(
        Reservation.id == User.active_reservation_id,
        Reservation.user_id == User.id,
        Reservation.status.in_([s.value for s in LIVE_RESERVATION_STATUSES]),
    )
    other_feedback = aliased(Feedback)
    open_feedback = exists().where(
        other_feedback.id == User.active_feedback_id,
        other_feedback.user_id == User.id,
        other_feedback.status == FeedbackStatus.IN_PROGRESS.value,
    )
    return or_(
        User.stage.in_([s.value for s in BUSY_STAGES]),
        live_reservation,
        open_feedback,
    )


def customer_is_busy(db: Session, user: User) -> bool:
    return db.query(User.id).filter(User.id == user.id, _customer_busy_clause()).first() is not None


def select_due_candidates(db: Session, now: datetime, limit: int) -> List[Feedback]:
    """
    Oldest due PENDING rows whose customer is free, skipping rows another
    transaction has locked. Busy customers are filtered here, before the
    limit, so their rows cannot fill every batch.
    """
    return (
        db.query(Feedback)
        .join(User, User.id == Feedback.user_id)
        .filter(
            Feedback.status == FeedbackStatus.PENDING.value,
            Feedback.send_at <= now,
            ~_customer_busy_clause(),
        )
        .order_by(Feedback.send_at.asc(), Feedback.id.asc())
        .limit(limit)
        .with_for_update(skip_locked=True, of=Feedback)
        .all()
    )


def claim(db: Session, feedback_ids: Sequence[int], now: datetime) -> List[int]:
    """
    Flip candidates PENDING -> IN_PROGRESS. Returns the ids this caller won.
    """
    won = []
    for feedback_id in feedback_ids:
        result = db.execute(
            update(Feedback)
            .where(Feedback.id == feedback_id, Feedback.status == FeedbackStatus.PENDING.value)
            .values(
                status=FeedbackStatus.IN_PROGRESS.value,
                step=FeedbackStep.ASK_WINE.value,
                started_at=now,
                version=Feedback.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            won.append(feedback_id)
        else:
            logger.info(f"[FEEDBACK] Claim miss on feedback {feedback_id} (taken by another run)")
    return won


def release(feedback: Feedback):
    """Give a claimed row back to the queue; it is picked up again next run."""
    feedback.status = FeedbackStatus.PENDING.value
    feedback.step = None
    feedback.started_at = None
    AuditLog.log_feedback("released", feedback.id)


def release_unattached(db: Session, feedback_id: int) -> bool:
    """
    Requeue a claimed row that never reached its customer. Matches only while
    the row is IN_PROGRESS, unasked and not referenced by any user, so a
    conversation that did start is never reset.
    """
    attached = exists().where(User.active_feedback_id == feedback_id)
    result = db.execute(
        update(Feedback)
        .where(
            Feedback.id == feedback_id,
            Feedback.status == FeedbackStatus.IN_PROGRESS.value,
            Feedback.asked_at.is_(None),
            ~attached,
        )
        .values(
            status=FeedbackStatus.PENDING.value,
            step=None,
            started_at=None,
            version=Feedback.version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    AuditLog.log_feedback("released", feedback_id)
    return True


def mark_asked(feedback: Feedback, now: datetime):
    feedback.asked_at = now


def record_answer(feedback: Feedback, step: FeedbackStep, value):
    if step == FeedbackStep.ASK_WINE:
        feedback.wine = value
    elif step == FeedbackStep.ASK_DISH:
        feedback.dish = value
    elif step == FeedbackStep.ASK_RATING:
        if value is not None and not 1 <= value <= 5:
            raise ValueError(f"rating out of range: {value}")
        feedback.rating = value
    elif step == FeedbackStep.ASK_COMMENT:
        feedback.comment = value


def complete(feedback: Feedback, now: datetime):
    feedback.status = FeedbackStatus.DONE.value
    feedback.step = FeedbackStep.DONE.value
    feedback.completed_at = now
    AuditLog.log_feedback("done", feedback.id, {"rating": feedback.rating})
