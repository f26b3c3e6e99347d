"""
Input parsing - pure functions, no DB, no I/O.

Every parser is total: it returns ``Parsed(value)`` or ``Rejected(reason)``
and never raises, so each stage handler is a simple branch on the result.
"""
import calendar
import re
from dataclasses import dataclass
from datetime import date, time
from typing import Any, Optional, Union

from vinhopay.core.config import settings

SKIP = "0"

_INT_RE = re.compile(r"^\d{1,4}$")
_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")


@dataclass(frozen=True)
class Parsed:
    value: Any = None


@dataclass(frozen=True)
class Rejected:
    reason: str


ParseResult = Union[Parsed, Rejected]


def normalize_text(raw: Optional[str]) -> str:
    """Trim and collapse internal whitespace."""
    return " ".join((raw or "").split())


def normalize_name(raw: Optional[str]) -> ParseResult:
    name = normalize_text(raw)
    if not name:
        return Rejected("empty")
    if len(name) < settings.NAME_MIN_LENGTH or len(name) > settings.NAME_MAX_LENGTH:
        return Rejected("length")
    return Parsed(name)


def parse_int(raw: Optional[str]) -> ParseResult:
    text = (raw or "").strip()
    if not _INT_RE.match(text):
        return Rejected("not_a_number")
    return Parsed(int(text))


def parse_int_in_range(raw: Optional[str], low: int, high: int) -> ParseResult:
    result = parse_int(raw)
    if isinstance(result, Rejected):
        return result
    if result.value < low or result.value > high:
        return Rejected("out_of_range")
    return result


def parse_menu_choice(raw: Optional[str], option_count: int) -> ParseResult:
    """1-based index into a numbered menu of ``option_count`` entries."""
    return parse_int_in_range(raw, 1, option_count)


def parse_party_size(raw: Optional[str]) -> ParseResult:
    return parse_int_in_range(raw, 1, settings.MAX_PARTY_SIZE)


def parse_month(raw: Optional[str]) -> ParseResult:
    return parse_int_in_range(raw, 1, 12)


def resolve_year(month: int, today: date) -> int:
    """A month already behind us this year means next year."""
    return today.year + 1 if month < today.month else today.year


def is_valid_day(year: int, month: int, day: int) -> bool:
    if not 1 <= month <= 12:
        return False
    return 1 <= day <= calendar.monthrange(year, month)[1]


def parse_day(raw: Optional[str], year: int, month: int) -> ParseResult:
    result = parse_int_in_range(raw, 1, 31)
    if isinstance(result, Rejected):
        return result
    if not is_valid_day(year, month, result.value):
        return Rejected("not_in_month")
    return Parsed(result.value)


def parse_time_hhmm(raw: Optional[str]) -> ParseResult:
    match = _TIME_RE.match((raw or "").strip())
    if not match:
        return Rejected("format")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        return Rejected("out_of_range")
    return Parsed(time(hour, minute))


def parse_yes_no(raw: Optional[str]) -> ParseResult:
    """``1`` -> True, ``0`` -> False."""
    text = (raw or "").strip()
    if text == "1":
        return Parsed(True)
    if text == "0":
        return Parsed(False)
    return Rejected("expected_0_or_1")


def parse_rating(raw: Optional[str]) -> ParseResult:
    """``0`` skips (None); otherwise an integer 1-5."""
    text = (raw or "").strip()
    if text == SKIP:
        return Parsed(None)
    return parse_int_in_range(text, 1, 5)


def parse_optional_text(raw: Optional[str]) -> ParseResult:
    """Free-text answer; ``0`` skips (None)."""
    text = normalize_text(raw)
    if text == SKIP:
        return Parsed(None)
    if not text:
        return Rejected("empty")
    return Parsed(text)


def parse_reason_text(raw: Optional[str]) -> ParseResult:
    text = normalize_text(raw)
    if len(text) < settings.REASON_MIN_LENGTH:
        return Rejected("too_short")
    return Parsed(text[:255])
