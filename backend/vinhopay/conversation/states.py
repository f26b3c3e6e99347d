"""
Conversation states - closed sets per actor.

Stage/step/status values are persisted as plain strings. Every read goes
through ``parse()`` so a typo or a legacy value coming from the database (or
from an admin override) is detected instead of silently matching nothing.
"""
from enum import Enum
from typing import Optional, Type, TypeVar

E = TypeVar("E", bound="PersistedEnum")


class PersistedEnum(str, Enum):
    """String enum that tolerates unknown persisted values."""

    @classmethod
    def parse(cls: Type[E], value: Optional[str]) -> Optional[E]:
        if value is None:
            return None
        try:
            return cls(value)
        except ValueError:
            return None

    def __str__(self) -> str:
        return self.value


class CustomerStage(PersistedEnum):
    """User.stage - top-level state of a customer conversation."""
    ASKED_NAME = "ASKED_NAME"
    ACTIVE = "ACTIVE"
    CHOOSE_RESTAURANT = "CHOOSE_RESTAURANT"
    ASK_PARTY_SIZE = "ASK_PARTY_SIZE"
    ASK_MONTH = "ASK_MONTH"
    ASK_DAY = "ASK_DAY"
    ASK_TIME = "ASK_TIME"
    CONFIRM = "CONFIRM"
    WAIT_RESTAURANT = "WAIT_RESTAURANT"
    FEEDBACK = "FEEDBACK"


# Stages that read User.active_reservation_id (reservation must be DRAFT)
DRAFT_STAGES = frozenset({
    CustomerStage.ASK_PARTY_SIZE,
    CustomerStage.ASK_MONTH,
    CustomerStage.ASK_DAY,
    CustomerStage.ASK_TIME,
    CustomerStage.CONFIRM,
})


class ReservationStatus(PersistedEnum):
    DRAFT = "DRAFT"
    PENDING_RESTAURANT = "PENDING_RESTAURANT"
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


LIVE_RESERVATION_STATUSES = frozenset({
    ReservationStatus.DRAFT,
    ReservationStatus.PENDING_RESTAURANT,
})

# Monotonic: anything not listed here is illegal
RESERVATION_TRANSITIONS = {
    ReservationStatus.DRAFT: frozenset({
        ReservationStatus.PENDING_RESTAURANT,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.PENDING_RESTAURANT: frozenset({
        ReservationStatus.CONFIRMED,
        ReservationStatus.REJECTED,
        ReservationStatus.CANCELLED,
    }),
    ReservationStatus.CONFIRMED: frozenset(),
    ReservationStatus.REJECTED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
}


class ReservationStep(PersistedEnum):
    """Reservation.step - customer-side sub-state while DRAFT."""
    ASK_PARTY_SIZE = "ASK_PARTY_SIZE"
    ASK_MONTH = "ASK_MONTH"
    ASK_DAY = "ASK_DAY"
    ASK_TIME = "ASK_TIME"
    CONFIRM = "CONFIRM"
    DONE = "DONE"


class ResponseStatus(PersistedEnum):
    """Reservation.restaurant_response_status. NULL in the DB means not answered yet."""
    AWAITING_REASON = "AWAITING_REASON"
    AWAITING_REASON_TEXT = "AWAITING_REASON_TEXT"
    RESOLVED = "RESOLVED"


# None = nothing answered yet
RESPONSE_TRANSITIONS = {
    None: frozenset({ResponseStatus.AWAITING_REASON, ResponseStatus.RESOLVED}),
    ResponseStatus.AWAITING_REASON: frozenset({
        ResponseStatus.AWAITING_REASON_TEXT,
        ResponseStatus.RESOLVED,
    }),
    ResponseStatus.AWAITING_REASON_TEXT: frozenset({ResponseStatus.RESOLVED}),
    ResponseStatus.RESOLVED: frozenset(),
}


class RejectionReason(PersistedEnum):
    FULL = "FULL"
    SCHEDULE = "SCHEDULE"
    OTHER = "OTHER"


class FeedbackStatus(PersistedEnum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class FeedbackStep(PersistedEnum):
    ASK_WINE = "ASK_WINE"
    ASK_DISH = "ASK_DISH"
    ASK_RATING = "ASK_RATING"
    ASK_COMMENT = "ASK_COMMENT"
    DONE = "DONE"


FEEDBACK_SEQUENCE = (
    FeedbackStep.ASK_WINE,
    FeedbackStep.ASK_DISH,
    FeedbackStep.ASK_RATING,
    FeedbackStep.ASK_COMMENT,
    FeedbackStep.DONE,
)


def next_feedback_step(step: FeedbackStep) -> FeedbackStep:
    index = FEEDBACK_SEQUENCE.index(step)
    return FEEDBACK_SEQUENCE[min(index + 1, len(FEEDBACK_SEQUENCE) - 1)]
