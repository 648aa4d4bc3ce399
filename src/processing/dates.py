"""Resolve relative date phrases ("yesterday", "last 3 days") into intervals."""

import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta

_LAST_N_DAYS = re.compile(r"\b(?:last|past)\s+(\d+)\s+days?\b")


@dataclass(frozen=True)
class DateRange:
    """Closed interval [start, end]."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


def _start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min, tzinfo=moment.tzinfo)


def _end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max, tzinfo=moment.tzinfo)


def _month_start(year: int, month: int, like: datetime) -> datetime:
    # month may be 0 (December of the previous year) or 13 (January of the next)
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return datetime(year, month, 1, tzinfo=like.tzinfo)


def resolve_date_range(phrase: str | None, now: datetime) -> DateRange | None:
    """Map a date phrase to a concrete interval relative to ``now``.

    Weeks run Sunday through Saturday. ``last N days`` ends at ``now`` itself
    rather than the end of the day. Returns None for anything unrecognised,
    which callers treat as "no date constraint".
    """
    if not phrase:
        return None
    lowered = phrase.lower()

    if "today" in lowered:
        return DateRange(_start_of_day(now), _end_of_day(now))

    if "yesterday" in lowered:
        day = now - timedelta(days=1)
        return DateRange(_start_of_day(day), _end_of_day(day))

    if "last week" in lowered or "this week" in lowered:
        offset = -1 if "last week" in lowered else 0
        days_since_sunday = (now.weekday() + 1) % 7
        start = _start_of_day(now - timedelta(days=days_since_sunday - 7 * offset))
        end = _end_of_day(start + timedelta(days=6))
        return DateRange(start, end)

    if "last month" in lowered or "this month" in lowered:
        offset = -1 if "last month" in lowered else 0
        start = _month_start(now.year, now.month + offset, now)
        next_start = _month_start(now.year, now.month + offset + 1, now)
        return DateRange(start, _end_of_day(next_start - timedelta(days=1)))

    match = _LAST_N_DAYS.search(lowered)
    if match:
        return DateRange(now - timedelta(days=int(match.group(1))), now)

    return None
