"""
Conversation router - one inbound text message in, outbound messages out.

ARCHITECTURE:
1. Resolve the sender: restaurant phone or customer phone (disjoint spaces)
2. Load the actor's persisted state (no in-memory session)
3. Run the matching stage machine; it mutates entities and fills an Outbox
4. Commit once; the caller delivers the Outbox after the commit

CONCURRENCY:
- process_inbound() holds a per-phone lock for the whole handler
- users/reservations/feedbacks carry a version column, so a concurrent
  writer in another process makes our flush fail with StaleDataError
- losers roll back and are dropped; the sender's next message re-syncs
"""
import logging
from datetime import datetime
from typing import Callable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from vinhopay.conversation import messages
from vinhopay.conversation.customer_flow import handle_customer_message
from vinhopay.conversation.feedback_flow import handle_feedback_message
from vinhopay.conversation.locks import PhoneLockRegistry, phone_locks
from vinhopay.conversation.outbox import Outbox
from vinhopay.conversation.restaurant_flow import handle_restaurant_message
from vinhopay.conversation.states import CustomerStage
from vinhopay.core.audit import AuditLog, mask_phone
from vinhopay.core.clock import local_now
from vinhopay.db.session import SessionLocal
from vinhopay.models.processed_message import ProcessedMessage
from vinhopay.schemas.message import InboundMessage, OutboundMessage
from vinhopay.services import restaurant_service, user_service

logger = logging.getLogger(__name__)


def handle_inbound(db: Session, message: InboundMessage, now: datetime) -> List[OutboundMessage]:
    """Route one message to its stage machine. Does not commit."""
    outbox = Outbox()
    phone = message.sender_phone
    text = (message.text or "").strip()

    restaurant = restaurant_service.get_restaurant_by_phone(db, phone)
    if restaurant is not None:
        logger.info(f"[ROUTER] Restaurant message from {mask_phone(phone)} (restaurant {restaurant.id})")
        handle_restaurant_message(db, restaurant, text, now, outbox)
        return outbox.messages

    user = user_service.get_user_by_phone(db, phone)
    if user is None:
        logger.info(f"[ROUTER] New customer {mask_phone(phone)}")
        user_service.create_user(db, phone)
        outbox.send(phone, messages.GREETING)
        return outbox.messages

    logger.info(f"[ROUTER] Customer {user.id} stage={user.stage}")
    if user.current_stage == CustomerStage.FEEDBACK:
        handle_feedback_message(db, user, text, now, outbox)
    else:
        handle_customer_message(db, user, text, now, outbox)
    return outbox.messages


def _already_processed(db: Session, message: InboundMessage) -> bool:
    """Record the provider id; True if it was seen before."""
    if not message.message_id:
        return False
    seen = (
        db.query(ProcessedMessage.id)
        .filter(ProcessedMessage.provider_message_id == message.message_id)
        .first()
    )
    if seen:
        return True
    db.add(ProcessedMessage(provider_message_id=message.message_id, phone=message.sender_phone))
    db.flush()
    return False


def process_inbound(
    message: InboundMessage,
    now: Optional[datetime] = None,
    session_factory: Callable[[], Session] = SessionLocal,
    locks: PhoneLockRegistry = phone_locks,
) -> List[OutboundMessage]:
    """
    Transactional entry point used by the webhook.

    Returns the messages to deliver; an empty list for duplicates and for
    handlers that lost a concurrent compare-and-set. Storage errors propagate.
    """
    with locks.lock(message.sender_phone):
        db = session_factory()
        try:
            if _already_processed(db, message):
                logger.info(f"[ROUTER] Duplicate delivery {message.message_id} dropped")
                db.rollback()
                return []
            replies = handle_inbound(db, message, now or local_now())
            db.commit()
            return replies
        except (StaleDataError, IntegrityError) as e:
            db.rollback()
            AuditLog.log_conflict(message.sender_phone, f"{type(e).__name__}: {e}")
            logger.warning(f"[ROUTER] Concurrent update for {mask_phone(message.sender_phone)}, dropped")
            return []
        except SQLAlchemyError:
            db.rollback()
            logger.error("[ROUTER] Storage error while handling message", exc_info=True)
            raise
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
