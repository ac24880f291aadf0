from __future__ import annotations

from datetime import date, datetime, time, timedelta
from typing import Optional, Tuple

from .errors import ValidationError
from .models import DifferentialFlags, HoursBreakdown

NIGHT_START_HOUR = 22
NIGHT_END_HOUR = 5
SEGMENT = timedelta(minutes=30)


def is_night(moment: datetime) -> bool:
    hour = moment.hour + moment.minute / 60
    return hour >= NIGHT_START_HOUR or hour < NIGHT_END_HOUR


def night_hours(start: datetime, end: datetime) -> float:
    """Hours of the interval inside the 22:00-05:00 window.

    The interval is walked in 30 minute steps from ``start``; a step counts
    when its starting wall-clock time is in the window, clipped at ``end``.
    """
    total = 0.0
    cursor = start
    while cursor < end:
        step_end = min(cursor + SEGMENT, end)
        if is_night(cursor):
            total += (step_end - cursor).total_seconds() / 3600
        cursor += SEGMENT
    return round(total, 2)


def net_hours(start: datetime, end: datetime, break_minutes: int = 0) -> float:
    return (end - start).total_seconds() / 3600 - break_minutes / 60


def compute_hours(
    start: datetime,
    end: datetime,
    break_minutes: int = 0,
    flags: Optional[DifferentialFlags] = None,
) -> HoursBreakdown:
    if end <= start:
        raise ValidationError("End must be after start")
    if break_minutes < 0:
        raise ValidationError("Break must not be negative")
    flags = flags or DifferentialFlags()

    total = round(max(net_hours(start, end, break_minutes), 0.0), 2)
    return HoursBreakdown(
        total=total,
        h50=0.0 if flags.extra100 else total,
        h100=total if flags.extra100 else 0.0,
        h_night=night_hours(start, end),
    )


def parse_clock(value: str | time) -> time:
    if isinstance(value, time):
        return value
    try:
        return datetime.strptime(str(value).strip(), "%H:%M").time()
    except ValueError:
        raise ValidationError(f"Invalid time {value!r} (expected HH:MM)")


def interval_for_day(
    day: date,
    start: str | time,
    end: str | time,
    *,
    allow_overnight: bool = False,
) -> Tuple[datetime, datetime]:
    """Build a start/end pair from wall-clock times on ``day``.

    With ``allow_overnight`` an end at or before the start rolls into the next day.
    """
    start_at = datetime.combine(day, parse_clock(start))
    end_at = datetime.combine(day, parse_clock(end))
    if allow_overnight and end_at <= start_at:
        end_at += timedelta(days=1)
    return start_at, end_at


def format_hours(value: float) -> str:
    if not value or value <= 0:
        return "0h"
    hours = int(value)
    minutes = round((value - hours) * 60)
    if minutes == 60:
        hours, minutes = hours + 1, 0
    if not minutes:
        return f"{hours}h"
    return f"{hours}h{minutes:02d}m"
