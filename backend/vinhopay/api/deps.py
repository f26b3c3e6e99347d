"""FastAPI dependencies: DB session and admin password check."""
import secrets
from typing import Generator, Optional

from fastapi import Query
from sqlalchemy.orm import Session

from vinhopay.core.config import settings
from vinhopay.core.exceptions import BusinessError
from vinhopay.db.session import SessionLocal


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_admin(password: Optional[str] = Query(None, alias="pass")) -> None:
    """
    Admin endpoints take ?pass=... (same as the dashboard links already in use).
    Locked entirely while ADMIN_PASS is unset.
    """
    if not settings.ADMIN_PASS:
        raise BusinessError.forbidden("ADMIN_PASS not configured")
    if not password or not secrets.compare_digest(password, settings.ADMIN_PASS):
        raise BusinessError.forbidden("invalid admin password")
