"""
Audit logging for conversation and workflow events.

One JSON line per event on the ``audit`` logger so every stage change,
reservation status change and feedback claim can be reconstructed later
without an in-memory session.

Phone numbers are logged masked (last 4 digits only).
"""
import logging
import json
from datetime import datetime
from typing import Any, Optional, Dict

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


def mask_phone(phone: Optional[str]) -> str:
    if not phone:
        return "-"
    return f"***{phone[-4:]}"


def _emit(entry: Dict[str, Any], level: int = logging.INFO):
    entry = {"timestamp": datetime.utcnow().isoformat(), **entry}
    audit_logger.log(level, json.dumps(entry, default=str))


class AuditLog:
    """Central audit logging for conversation events."""

    @staticmethod
    def log_stage_change(phone: str, from_stage: Optional[str], to_stage: str):
        """
        Log a customer stage transition.

        Usage:
            AuditLog.log_stage_change("5511999990000", "ASK_TIME", "CONFIRM")
        """
        if from_stage == to_stage:
            return
        _emit({
            "event_type": "user.stage",
            "phone": mask_phone(phone),
            "from": from_stage,
            "to": to_stage,
        })

    @staticmethod
    def log_reservation(
        action: str,  # "created", "status", "response"
        reservation_id: int,
        changes: Optional[Dict[str, Any]] = None,
    ):
        """
        Log reservation lifecycle events.

        Usage:
            AuditLog.log_reservation("status", 12, {"from": "DRAFT", "to": "PENDING_RESTAURANT"})
        """
        entry = {
            "event_type": f"reservation.{action}",
            "reservation_id": reservation_id,
        }
        if changes:
            entry["changes"] = changes
        _emit(entry)

    @staticmethod
    def log_feedback(action: str, feedback_id: int, details: Optional[Dict[str, Any]] = None):
        """
        Log feedback lifecycle events (created, claimed, released, step, done).
        """
        entry = {
            "event_type": f"feedback.{action}",
            "feedback_id": feedback_id,
        }
        if details:
            entry["details"] = details
        _emit(entry)

    @staticmethod
    def log_conflict(phone: str, reason: str):
        """
        Log a dropped handler invocation (a concurrent writer won).

        Usage:
            AuditLog.log_conflict("5511999990000", "StaleDataError on users")
        """
        _emit({
            "event_severity": "WARNING",
            "event_type": "conversation.conflict",
            "phone": mask_phone(phone),
            "reason": reason,
        }, level=logging.WARNING)

    @staticmethod
    def log_admin_override(phone: str, changes: Dict[str, Any]):
        """
        Log a change made outside the state machine (admin endpoints).
        """
        _emit({
            "event_type": "admin.override",
            "phone": mask_phone(phone),
            "changes": changes,
        })
