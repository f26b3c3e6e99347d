"""Wall clock in the restaurants' timezone.

Reservation dates/times and feedback due times are naive local values, so
everything that compares against them goes through ``local_now()``.
"""
from datetime import datetime
from zoneinfo import ZoneInfo

from vinhopay.core.config import settings


def local_now() -> datetime:
    return datetime.now(ZoneInfo(settings.APP_TIMEZONE)).replace(tzinfo=None)
