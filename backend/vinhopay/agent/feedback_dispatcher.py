"""
Proactive Agent - Due-Feedback Dispatcher.

Runs independently of inbound traffic. Each run:

1. CLAIM (one transaction): lock up to FEEDBACK_BATCH_SIZE due PENDING
   feedback rows of free customers (oldest send_at first, skipping rows another run has
   locked) and flip them to IN_PROGRESS / ASK_WINE. Commit.
2. DISPATCH (one transaction per claimed row): point the customer at the
   feedback (active_feedback_id, stage FEEDBACK), commit, then send the
   opening question.

A failure on one row is logged and skipped; it never aborts the batch, and a
row that never reached its customer is put back to PENDING. Rows whose
customer is in the middle of another conversation are not claimed at all;
one that became busy between claim and dispatch is released back to PENDING.

After the opening question the conversation continues through the normal
inbound path (conversation.feedback_flow).
"""
import logging
import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from vinhopay.conversation import messages
from vinhopay.conversation.locks import PhoneLockRegistry, phone_locks
from vinhopay.conversation.states import CustomerStage, FeedbackStatus
from vinhopay.core.audit import AuditLog, mask_phone
from vinhopay.core.clock import local_now
from vinhopay.core.config import settings
from vinhopay.db.session import SessionLocal
from vinhopay.models.feedback import Feedback
from vinhopay.models.user import User
from vinhopay.services import feedback_service, restaurant_service, user_service
from vinhopay.whatsapp.client import Sender, send_whatsapp_text

logger = logging.getLogger(__name__)

@dataclass
class DispatchResult:
    claimed: int = 0
    dispatched: int = 0
    skipped: int = 0


def claim_due_feedback(db: Session, now: datetime, batch_size: int) -> List[int]:
    """Claim transaction. Returns the ids this run owns, oldest first."""
    candidates = feedback_service.select_due_candidates(db, now, batch_size)
    won = feedback_service.claim(db, [f.id for f in candidates], now)
    db.commit()
    for feedback_id in won:
        AuditLog.log_feedback("claimed", feedback_id)
    return won


def _start_conversation(db: Session, feedback_id: int, now: datetime) -> Optional[tuple]:
    """
    Attach one claimed feedback to its customer. Returns (phone, opening text)
    or None when the row was skipped.
    """
    feedback = db.query(Feedback).filter(Feedback.id == feedback_id).first()
    if feedback is None or feedback.current_status != FeedbackStatus.IN_PROGRESS:
        logger.warning(f"[Dispatcher] Feedback {feedback_id} vanished or changed after claim")
        return None

    user = user_service.get_user_by_id(db, feedback.user_id)
    if user is None or not user.phone:
        logger.error(f"[Dispatcher] Feedback {feedback_id}: customer missing or without phone, skipped")
        return None

    if feedback_service.customer_is_busy(db, user):
        logger.info(
            f"[Dispatcher] Customer {user.id} busy in stage {user.stage}, "
            f"feedback {feedback_id} released for a later run"
        )
        feedback_service.release(feedback)
        db.commit()
        return None

    restaurant = restaurant_service.get_restaurant_by_id(db, feedback.restaurant_id)
    restaurant_name = restaurant.name if restaurant else "restaurante"

    user_service.set_active_feedback(user, feedback.id)
    user_service.set_stage(user, CustomerStage.FEEDBACK)
    feedback_service.mark_asked(feedback, now)
    db.commit()
    return user.phone, messages.feedback_opening(user.name, restaurant_name)


def _requeue(db: Session, feedback_id: int):
    """Put a claimed row that failed before reaching its customer back to PENDING."""
    try:
        if feedback_service.release_unattached(db, feedback_id):
            db.commit()
            logger.info(f"[Dispatcher] Feedback {feedback_id} back to PENDING for a later run")
        else:
            db.rollback()
    except Exception as e:
        db.rollback()
        logger.error(f"[Dispatcher] Feedback {feedback_id} could not be requeued: {type(e).__name__}: {e}")


def dispatch_due_feedback(
    now: Optional[datetime] = None,
    batch_size: Optional[int] = None,
    sender: Sender = send_whatsapp_text,
    session_factory: Callable[[], Session] = SessionLocal,
    locks: PhoneLockRegistry = phone_locks,
) -> DispatchResult:
    """
    Main dispatcher function. Called periodically by the background task and
    by the admin endpoint.
    """
    now = now or local_now()
    batch_size = batch_size or settings.FEEDBACK_BATCH_SIZE
    result = DispatchResult()

    db = session_factory()
    try:
        claimed = claim_due_feedback(db, now, batch_size)
    except Exception:
        db.rollback()
        db.close()
        raise
    result.claimed = len(claimed)

    try:
        for feedback_id in claimed:
            try:
                phone = db.query(User.phone).join(Feedback, Feedback.user_id == User.id).filter(
                    Feedback.id == feedback_id
                ).scalar()
                # Same lock as inbound messages from this customer
                with locks.lock(phone or f"feedback:{feedback_id}"):
                    started = _start_conversation(db, feedback_id, now)
            except StaleDataError:
                db.rollback()
                logger.warning(f"[Dispatcher] Customer changed concurrently, feedback {feedback_id} not started")
                _requeue(db, feedback_id)
                started = None
            except Exception as e:
                db.rollback()
                logger.error(f"[Dispatcher] Feedback {feedback_id} failed: {type(e).__name__}: {e}", exc_info=True)
                _requeue(db, feedback_id)
                started = None

            if started is None:
                result.skipped += 1
                continue

            to, body = started
            try:
                delivered = sender(to, body)
            except Exception as e:
                logger.error(f"[Dispatcher] Sender error for {mask_phone(to)}: {type(e).__name__}: {e}")
                delivered = False
            if not delivered:
                logger.warning(f"[Dispatcher] Opening question to {mask_phone(to)} not delivered")
            result.dispatched += 1
    finally:
        db.close()

    if result.claimed:
        logger.info(
            f"[Dispatcher] claimed={result.claimed} dispatched={result.dispatched} skipped={result.skipped}"
        )
    else:
        logger.debug("[Dispatcher] No due feedback")
    return result


# ============================================================================
# BACKGROUND TASK - runs in the asyncio loop alongside FastAPI
# ============================================================================

_scheduler_running = False


async def _feedback_scheduler_loop():
    """Run the dispatcher every FEEDBACK_SCAN_INTERVAL_SECONDS."""
    global _scheduler_running
    _scheduler_running = True

    logger.info(f"[Dispatcher] Scheduler started. Interval: {settings.FEEDBACK_SCAN_INTERVAL_SECONDS}s")

    # Initial delay to let server fully start
    await asyncio.sleep(10)

    while _scheduler_running:
        try:
            # Sync DB + HTTP work runs in the thread pool
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, dispatch_due_feedback)
        except Exception as e:
            logger.error(f"[Dispatcher] Scheduler error: {e}", exc_info=True)

        await asyncio.sleep(settings.FEEDBACK_SCAN_INTERVAL_SECONDS)


def start_feedback_scheduler():
    """Start the background dispatcher. Called from FastAPI lifespan."""
    try:
        asyncio.create_task(_feedback_scheduler_loop())
        logger.info("[Dispatcher] Feedback scheduler initialized")
    except RuntimeError as e:
        logger.error(f"[Dispatcher] Failed to start scheduler: {e}")


def stop_feedback_scheduler():
    """Stop the scheduler gracefully. Called from FastAPI shutdown."""
    global _scheduler_running
    _scheduler_running = False
    logger.info("[Dispatcher] Scheduler stopped")
