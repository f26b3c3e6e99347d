"""
Admin surface. Bypasses the state machine on purpose; the engine treats
whatever it finds on the next inbound message as valid.
"""
import logging
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from vinhopay.agent.feedback_dispatcher import dispatch_due_feedback
from vinhopay.api.deps import get_db, require_admin
from vinhopay.core.exceptions import BusinessError
from vinhopay.schemas.user import DispatchResponse, SetNameRequest, UserResponse
from vinhopay.services import user_service

logger = logging.getLogger(__name__)
router = APIRouter(dependencies=[Depends(require_admin)])


@router.get("/users", response_model=list[UserResponse])
def list_users(limit: int = 200, db: Session = Depends(get_db)):
    """Users, newest first."""
    return user_service.list_users(db, limit=limit)


@router.post("/admin/set-name", response_model=UserResponse)
def set_name(data: SetNameRequest, db: Session = Depends(get_db)):
    user = user_service.admin_set_name(db, data.phone, data.name)
    if not user:
        raise BusinessError.not_found("User", f"phone={data.phone}")
    db.commit()
    db.refresh(user)
    return user


@router.post("/admin/dispatch-feedback", response_model=DispatchResponse)
def dispatch_feedback():
    """Run the due-feedback dispatcher now."""
    try:
        result = dispatch_due_feedback()
    except Exception as e:
        raise BusinessError.server_error(e)
    logger.info(f"[ADMIN] Manual dispatch: {result}")
    return DispatchResponse(claimed=result.claimed, dispatched=result.dispatched, skipped=result.skipped)
