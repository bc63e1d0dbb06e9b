"""Time and currency helpers shared by the engine and the UI."""

import logging
import math
import re
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

# 52 weeks / 12 months
WEEKS_PER_MONTH = 4.33
DEFAULT_WORK_DAYS_PER_MONTH = 22
DEFAULT_STANDARD_MINUTES = 8 * 60
MINUTES_PER_DAY = 24 * 60

TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])$')


def calculate_work_days_per_month(work_days: Iterable[int]) -> float:
    """Average number of workdays in a month for the given weekday set."""
    work_days = list(work_days or [])
    if not work_days:
        return DEFAULT_WORK_DAYS_PER_MONTH
    return len(work_days) * WEEKS_PER_MONTH


def parse_time_to_minutes(time_str: str) -> int:
    """Parse "HH:MM" into minutes after midnight. Returns 0 when unparseable."""
    if not time_str or not isinstance(time_str, str):
        return 0
    match = TIME_PATTERN.match(time_str.strip())
    if not match:
        logger.warning("Invalid time string: %r", time_str)
        return 0
    return int(match.group(1)) * 60 + int(match.group(2))


def is_valid_time(time_str) -> bool:
    return isinstance(time_str, str) and bool(TIME_PATTERN.match(time_str))


def get_standard_work_minutes(start_time: str, end_time: str) -> int:
    """Minutes between two clock times. An end before the start spans midnight."""
    if not is_valid_time(start_time) or not is_valid_time(end_time):
        return DEFAULT_STANDARD_MINUTES

    start = parse_time_to_minutes(start_time)
    end = parse_time_to_minutes(end_time)
    if end < start:
        end += MINUTES_PER_DAY
    return end - start


def weekday_ordinal(day: Union[date, datetime]) -> int:
    """Weekday as 0=Sunday ... 6=Saturday."""
    return day.isoweekday() % 7


def is_workday(work_days: Iterable[int], day: Union[date, datetime, None] = None) -> bool:
    """Check whether the day's weekday is in the configured set."""
    work_days = list(work_days or [])
    if not work_days:
        return False
    if day is None:
        day = datetime.now()
    return weekday_ordinal(day) in work_days


def round_half_up(value: float, digits: int = 0) -> float:
    """Round like a cashier: halves go away from zero."""
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_cents(amount: float) -> float:
    return round_half_up(amount, 2)


def format_time(minutes: float) -> str:
    """Format minutes as "8h 05m"."""
    minutes = max(0, int(minutes or 0))
    return f"{minutes // 60}h {minutes % 60:02d}m"


def format_time_hhmm(minutes: float) -> str:
    """Format minutes as "8:05"."""
    minutes = max(0, int(minutes or 0))
    return f"{minutes // 60}:{minutes % 60:02d}"


def format_currency(amount: float, precision: int = 2) -> str:
    """Format amount as currency."""
    if not isinstance(precision, int) or precision < 0:
        precision = 2
    try:
        return f"${amount:,.{precision}f}"
    except (TypeError, ValueError):
        logger.error("Cannot format amount %r", amount)
        return f"${0:,.{precision}f}"


def safe_parse_number(value, default: float = 0, integer: bool = False) -> float:
    """Parse a user-supplied number, falling back to default for junk, NaN and infinities."""
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)):
        if math.isnan(value) or math.isinf(value):
            return default
        return int(round_half_up(value)) if integer else value

    if not isinstance(value, str) or not value.strip():
        return default

    text = value.strip()
    try:
        number = int(float(text)) if integer else float(text)
    except (ValueError, OverflowError):
        return default

    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return default
    return number


def today_string(now: Optional[datetime] = None) -> str:
    """Calendar day key, YYYY-MM-DD."""
    return (now or datetime.now()).strftime('%Y-%m-%d')


def format_status_line(income: float, worked_minutes: int, working: bool,
                       precision: int = 2, blur: bool = False) -> str:
    """One-line status such as "Working | $102.56 (4:00)"."""
    status = "Working" if working else "Off"
    elapsed = format_time_hhmm(worked_minutes)
    if blur:
        return f"{status} | *** ({elapsed})"
    return f"{status} | {format_currency(income, precision)} ({elapsed})"
