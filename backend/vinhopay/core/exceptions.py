"""
Error types.

HTTP side: generic messages externally, detailed logging internally.
Conversation side: the state machines never raise for bad user input (the
parsers return rejections instead). ``InvalidTransition`` signals a
programming error - an attempt to move a record backwards along its
lifecycle - and is allowed to propagate so the transaction rolls back.
"""
from fastapi import HTTPException, status
import logging

logger = logging.getLogger(__name__)


class InvalidTransition(ValueError):
    """Illegal status / sub-state move on a persisted record."""

    def __init__(self, entity: str, entity_id, current, target):
        self.entity = entity
        self.entity_id = entity_id
        self.current = current
        self.target = target
        super().__init__(f"{entity} {entity_id}: illegal transition {current} -> {target}")


class BusinessError:
    """HTTP exceptions with safe (non-leaky) messages."""

    @staticmethod
    def not_found(resource: str = "Resource", reason: str = "") -> HTTPException:
        """
        Generic 404 that doesn't confirm resource existence.

        Example:
            if not user:
                raise BusinessError.not_found("User", f"phone={phone}")
        """
        if reason:
            logger.warning(f"Not found: {resource} - {reason}")

        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Resource not found",
        )

    @staticmethod
    def forbidden(reason: str = "") -> HTTPException:
        """Generic 403 for admin password failures."""
        logger.warning(f"Forbidden access: {reason}")
        return HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Access denied",
        )

    @staticmethod
    def server_error(original_error: Exception = None) -> HTTPException:
        """Generic 500 - logs actual error internally, hides from caller."""
        if original_error:
            logger.error(
                f"Internal server error: {type(original_error).__name__}: {str(original_error)}",
                exc_info=True
            )
        else:
            logger.error("Internal server error occurred", exc_info=True)

        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="An internal error occurred. Please try again later.",
        )
