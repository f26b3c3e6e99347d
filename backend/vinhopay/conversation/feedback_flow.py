"""
Feedback stage machine: ASK_WINE -> ASK_DISH -> ASK_RATING -> ASK_COMMENT -> DONE.

``0`` skips any step. Only the rating is validated (1-5); every other step
takes free text. A row found in a step outside the sequence restarts at
ASK_WINE without recording the message, so no answer lands in the wrong
field.
"""
import logging
from datetime import datetime

from sqlalchemy.orm import Session

from vinhopay.conversation import messages
from vinhopay.conversation.outbox import Outbox
from vinhopay.conversation.parsing import Rejected, parse_optional_text, parse_rating
from vinhopay.conversation.states import CustomerStage, FeedbackStep, next_feedback_step
from vinhopay.models.user import User
from vinhopay.services import feedback_service, user_service

logger = logging.getLogger(__name__)

PROMPTS = {
    FeedbackStep.ASK_WINE: messages.FEEDBACK_ASK_WINE,
    FeedbackStep.ASK_DISH: messages.FEEDBACK_ASK_DISH,
    FeedbackStep.ASK_RATING: messages.FEEDBACK_ASK_RATING,
    FeedbackStep.ASK_COMMENT: messages.FEEDBACK_ASK_COMMENT,
}


def _leave_feedback(user: User):
    user_service.set_active_feedback(user, None)
    user_service.set_stage(user, CustomerStage.ACTIVE)


def handle_feedback_message(db: Session, user: User, text: str, now: datetime, outbox: Outbox):
    feedback = feedback_service.get_active_feedback(db, user)
    if feedback is None:
        _leave_feedback(user)
        outbox.send(user.phone, messages.FEEDBACK_LOST)
        return

    step = feedback.current_step
    if step not in PROMPTS:
        logger.warning(f"[FEEDBACK] Feedback {feedback.id} in unexpected step {feedback.step!r}, restarting at ASK_WINE")
        feedback.step = FeedbackStep.ASK_WINE.value
        outbox.send(user.phone, messages.FEEDBACK_ASK_WINE)
        return

    if step == FeedbackStep.ASK_RATING:
        result = parse_rating(text)
        if isinstance(result, Rejected):
            outbox.send(user.phone, messages.FEEDBACK_RATING_INVALID)
            return
    else:
        result = parse_optional_text(text)
        if isinstance(result, Rejected):
            outbox.send(user.phone, messages.FEEDBACK_TEXT_EMPTY)
            return

    feedback_service.record_answer(feedback, step, result.value)
    following = next_feedback_step(step)

    if following == FeedbackStep.DONE:
        feedback_service.complete(feedback, now)
        _leave_feedback(user)
        outbox.send(user.phone, messages.FEEDBACK_THANKS)
        logger.info(f"[FEEDBACK] Feedback {feedback.id} completed by user {user.id}")
        return

    feedback.step = following.value
    outbox.send(user.phone, PROMPTS[following])
