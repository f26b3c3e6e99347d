"""Application configuration.

Environment variables override all defaults.
ADMIN_PASS must be set for the admin endpoints to accept anything.
"""

import os
from pathlib import Path
from typing import Optional


# Load .env for local development (safe no-op if not installed)
try:
    from dotenv import load_dotenv  # type: ignore

    _BACKEND_DIR = Path(__file__).resolve().parents[2]
    load_dotenv(dotenv_path=_BACKEND_DIR / ".env", override=False)
except ImportError:
    pass


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", "off"}


class Settings:
    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./vinhopay.db")

    # WhatsApp Cloud API (Must be set via .env, never in code)
    WA_TOKEN: str = os.getenv("WA_TOKEN", "")
    WA_PHONE_NUMBER_ID: str = os.getenv("WA_PHONE_NUMBER_ID", "")
    WA_VERIFY_TOKEN: str = os.getenv("WA_VERIFY_TOKEN", "")
    WA_API_VERSION: str = os.getenv("WA_API_VERSION", "v20.0")
    WA_SEND_TIMEOUT_SECONDS: float = float(os.getenv("WA_SEND_TIMEOUT_SECONDS", "10"))

    # Admin endpoints (/users, /admin/*). Unset means locked.
    ADMIN_PASS: Optional[str] = os.getenv("ADMIN_PASS") or None

    # Wall clock used for "current month" and feedback due times.
    # Reservation date/time are stored as local naive values in this zone.
    APP_TIMEZONE: str = os.getenv("APP_TIMEZONE", "America/Sao_Paulo")

    # Post-visit feedback
    FEEDBACK_DELAY_HOURS: int = int(os.getenv("FEEDBACK_DELAY_HOURS", "3"))
    FEEDBACK_BATCH_SIZE: int = int(os.getenv("FEEDBACK_BATCH_SIZE", "50"))
    FEEDBACK_SCAN_INTERVAL_SECONDS: int = int(os.getenv("FEEDBACK_SCAN_INTERVAL_SECONDS", "300"))
    FEEDBACK_SCHEDULER_ENABLED: bool = _env_bool("FEEDBACK_SCHEDULER_ENABLED", "1")

    # Conversation limits
    MAX_PARTY_SIZE: int = 50
    NAME_MIN_LENGTH: int = 2
    NAME_MAX_LENGTH: int = 60
    REASON_MIN_LENGTH: int = 3

    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()


settings = Settings()
