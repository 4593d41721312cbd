# booking_engine/services/conflict_service.py
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Sequence

from booking_engine.models.booking import Booking
from booking_engine.services.interval_service import (
    BusyTime,
    TimeSlot,
    ensure_utc,
    overlaps,
)


def meets_minimum_notice(
    slot: TimeSlot,
    minimum_notice: int,
    now: datetime,
) -> bool:
    """A slot starting exactly at now + minimum_notice is accepted."""
    return slot.start >= now + timedelta(minutes=minimum_notice or 0)


def is_slot_available(
    slot: TimeSlot,
    merged_busy: Sequence[BusyTime],
    buffer_before: int = 0,
    buffer_after: int = 0,
    minimum_notice: int = 0,
    now: Optional[datetime] = None,
) -> bool:
    """
    Decide whether `slot` survives against a merged busy set.

    This is the one check used both when listing slots and when a booking is
    committed.

    - The slot is widened by `buffer_before` / `buffer_after` minutes and
      rejected if the widened interval overlaps any busy interval (half-open).
    - When `now` is given, slots starting before now + minimum_notice are
      rejected. Notice is measured on the unbuffered start.
    """
    if now is not None and not meets_minimum_notice(slot, minimum_notice, now):
        return False

    expanded_start = slot.start - timedelta(minutes=buffer_before or 0)
    expanded_end = slot.end + timedelta(minutes=buffer_after or 0)

    for busy in merged_busy:
        if overlaps(expanded_start, expanded_end, busy.start, busy.end):
            return False

    return True


def booking_busy_times(bookings: Iterable[Booking]) -> List[BusyTime]:
    """
    Turn existing bookings into busy intervals.

    Each booking blocks its own buffers too, so a 10:00–10:30 booking with a
    15 minute after-buffer keeps the host busy until 10:45.
    """
    busy: List[BusyTime] = []
    for b in bookings:
        busy.append(
            BusyTime(
                start=ensure_utc(b.start_time) - timedelta(minutes=b.buffer_before_minutes or 0),
                end=ensure_utc(b.end_time) + timedelta(minutes=b.buffer_after_minutes or 0),
            )
        )
    return busy
