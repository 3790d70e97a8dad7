from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from ..core.constants import SATURDAY
from ..core.exceptions import ValidationError


def parse_iso_date(value: str) -> date:
    """Parse YYYY-MM-DD string into date."""
    return datetime.strptime(value, "%Y-%m-%d").date()


def coerce_date(value: Any, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if not text:
        raise ValidationError(f"{field_name} is required")
    try:
        # accept full ISO timestamps from the browser, keep the calendar date
        return parse_iso_date(text[:10])
    except ValueError:
        raise ValidationError(f"{field_name} must be a date (YYYY-MM-DD)")


def optional_date(value: Any, field_name: str) -> Optional[date]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return coerce_date(value, field_name)


def now_utc() -> datetime:
    """Current UTC time as a naive datetime (stored that way in the DB).

    Note: Wrapped so tests can patch/mock easier.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def is_saturday(day: date) -> bool:
    return day.weekday() == SATURDAY


def week_start(day: date) -> date:
    """Monday of the calendar week containing ``day``."""
    return day - timedelta(days=day.weekday())


def week_end(day: date) -> date:
    """Sunday of the calendar week containing ``day``."""
    return week_start(day) + timedelta(days=6)


def week_key(day: date) -> str:
    return week_start(day).strftime("%Y-%m-%d")


def month_bounds(year: int, month: int) -> tuple[date, date]:
    first = date(year, month, 1)
    if month == 12:
        nxt = date(year + 1, 1, 1)
    else:
        nxt = date(year, month + 1, 1)
    return first, nxt - timedelta(days=1)


def iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def parse_year_month(value: Any) -> tuple[int, int]:
    """Split ``YYYY-MM`` into ``(year, month)``."""
    text = str(value or "").strip()
    if not text:
        raise ValidationError("Month parameter is required (format: YYYY-MM)")
    try:
        parsed = datetime.strptime(text, "%Y-%m")
    except ValueError:
        raise ValidationError("Invalid month format. Use YYYY-MM")
    return parsed.year, parsed.month
