# booking_engine/services/recurring_service.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from enum import Enum
from typing import List, Optional, Sequence
from zoneinfo import ZoneInfo

from dateutil.relativedelta import relativedelta

from booking_engine.errors import RecurringWindowExceeded
from booking_engine.models.event_type import EventType, PeriodType
from booking_engine.services.interval_service import ensure_utc

MIN_RECURRING_OCCURRENCES = 2


class RecurringFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"  # every `interval` days


def _step(wall: datetime, frequency: RecurringFrequency, interval: int, i: int) -> datetime:
    if frequency == RecurringFrequency.WEEKLY:
        return wall + timedelta(days=7 * interval * i)
    if frequency == RecurringFrequency.BIWEEKLY:
        return wall + timedelta(days=14 * interval * i)
    if frequency == RecurringFrequency.MONTHLY:
        # relativedelta clamps the 31st to shorter months
        return wall + relativedelta(months=interval * i)
    # DAILY and CUSTOM both step in days
    return wall + timedelta(days=interval * i)


def expand_recurring_dates(
    start: datetime,
    frequency: str,
    interval: int = 1,
    count: int = 1,
    timezone: Optional[str] = None,
) -> List[datetime]:
    """
    Expand a recurring request into `count` occurrence start instants (UTC).

    Occurrence i is always derived from `start` (never from occurrence i-1),
    so monthly clamping on the 31st does not drift and the same inputs always
    give the same list.

    With `timezone`, steps are taken on that zone's wall clock: a weekly
    10:00 meeting stays at 10:00 local across a DST change. Without it the
    steps are exact UTC offsets.
    """
    if count < 1:
        raise ValueError("count must be at least 1")
    if interval < 1:
        raise ValueError("interval must be at least 1")
    try:
        freq = RecurringFrequency(str(frequency).lower())
    except ValueError:
        raise ValueError(f"Unsupported recurring frequency: {frequency!r}")

    start_utc = ensure_utc(start)
    tz = ZoneInfo(timezone) if timezone else dt_timezone.utc
    wall = start_utc.astimezone(tz).replace(tzinfo=None)

    dates: List[datetime] = []
    for i in range(count):
        if i == 0:
            dates.append(start_utc)
            continue
        local = _step(wall, freq, interval, i).replace(tzinfo=tz)
        dates.append(local.astimezone(dt_timezone.utc))

    return dates


@dataclass(frozen=True)
class BookingWindow:
    """Bounds on how far ahead (or in which range) an event type can be booked."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def contains(self, instant: datetime) -> bool:
        if self.start is not None and instant < self.start:
            return False
        if self.end is not None and instant > self.end:
            return False
        return True


def booking_window(
    event_type: EventType,
    now: datetime,
    default_days: int = 30,
) -> BookingWindow:
    period = event_type.period_type or PeriodType.ROLLING.value

    if period == PeriodType.UNLIMITED.value:
        return BookingWindow()

    if period == PeriodType.RANGE.value:
        return BookingWindow(
            start=ensure_utc(event_type.period_start_date) if event_type.period_start_date else None,
            end=ensure_utc(event_type.period_end_date) if event_type.period_end_date else None,
        )

    days = event_type.period_days or default_days
    return BookingWindow(end=ensure_utc(now) + timedelta(days=days))


def ensure_within_booking_window(
    occurrences: Sequence[datetime],
    window: BookingWindow,
) -> None:
    """
    Reject a recurring series whose last occurrence falls outside the window.

    Partial series are never created, so the whole request fails.
    """
    if not occurrences:
        return
    last = occurrences[-1]
    if not window.contains(last):
        raise RecurringWindowExceeded(
            "The last occurrence of this series is outside the booking window",
            last_occurrence=last.isoformat(),
            window_end=window.end.isoformat() if window.end else None,
        )
