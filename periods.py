import re
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import InvalidArgument

DAY_FORMAT = "%Y-%m-%d"
DAY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


@dataclass(frozen=True)
class Period:
    slug: str
    start: datetime
    end: datetime


def local_now() -> datetime:
    settings = get_settings()
    return datetime.now(ZoneInfo(settings.timezone)).replace(tzinfo=None)


def local_today() -> date:
    return local_now().date()


def day_start(day: date) -> datetime:
    return datetime.combine(day, time.min)


def day_end(day: date) -> datetime:
    return datetime.combine(day, time.max)


def month_start(year: int, month: int) -> date:
    return date(year, month, 1)


def month_end(year: int, month: int) -> date:
    if month == 12:
        return date(year + 1, 1, 1) - date.resolution
    return date(year, month + 1, 1) - date.resolution


def month_period(year: int, month: int) -> Period:
    """Inclusive window from the first to the last instant of a calendar month."""
    if not 1 <= month <= 12:
        raise InvalidArgument(f"Month must be between 1 and 12, got {month}")
    try:
        first = month_start(year, month)
        last = month_end(year, month)
    except (ValueError, OverflowError) as exc:
        raise InvalidArgument(f"Invalid year: {year}") from exc
    return Period(f"{year:04d}-{month:02d}", day_start(first), day_end(last))


def parse_day(value: Optional[str]) -> Optional[date]:
    if value is None or not value.strip():
        return None
    literal = value.strip()
    if not DAY_PATTERN.match(literal):
        raise InvalidArgument(f"Invalid date {value!r}, expected YYYY-MM-DD")
    try:
        return datetime.strptime(literal, DAY_FORMAT).date()
    except ValueError as exc:
        raise InvalidArgument(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc
