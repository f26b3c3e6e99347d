"""Users: lookup, creation and stage bookkeeping. Callers own the transaction."""
import logging
from typing import List

from sqlalchemy.orm import Session

from vinhopay.conversation.states import CustomerStage
from vinhopay.core.audit import AuditLog
from vinhopay.models.user import User

logger = logging.getLogger(__name__)


def get_user_by_phone(db: Session, phone: str) -> User | None:
    return db.query(User).filter(User.phone == phone).first()


def get_user_by_id(db: Session, user_id: int) -> User | None:
    return db.query(User).filter(User.id == user_id).first()


def create_user(db: Session, phone: str) -> User:
    """
    Insert a new customer in ASKED_NAME.

    Two first messages from the same phone in different processes can race;
    the unique constraint on phone rejects the loser at flush time.
    """
    user = User(phone=phone, stage=CustomerStage.ASKED_NAME.value)
    db.add(user)
    db.flush()
    AuditLog.log_stage_change(phone, None, CustomerStage.ASKED_NAME.value)
    return user


def set_stage(user: User, stage: CustomerStage):
    if user.stage != stage.value:
        AuditLog.log_stage_change(user.phone, user.stage, stage.value)
    user.stage = stage.value


def set_name(user: User, name: str):
    user.name = name


def set_active_reservation(user: User, reservation_id: int | None):
    user.active_reservation_id = reservation_id


def set_active_feedback(user: User, feedback_id: int | None):
    user.active_feedback_id = feedback_id


def list_users(db: Session, limit: int = 200) -> List[User]:
    return db.query(User).order_by(User.created_at.desc(), User.id.desc()).limit(limit).all()


def admin_set_name(db: Session, phone: str, name: str) -> User | None:
    """
    Administrative override: bypasses the state machine.

    Only name and stage change; the active references are left alone and the
    next inbound message re-validates them.
    """
    user = get_user_by_phone(db, phone)
    if not user:
        return None
    changes = {"name": name, "stage": CustomerStage.ACTIVE.value, "previous_stage": user.stage}
    user.name = name
    user.stage = CustomerStage.ACTIVE.value
    AuditLog.log_admin_override(phone, changes)
    logger.info(f"[USERS] Admin override for user {user.id}: stage {changes['previous_stage']} -> ACTIVE")
    return user
