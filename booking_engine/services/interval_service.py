# booking_engine/services/interval_service.py
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable, List


@dataclass(frozen=True)
class BusyTime:
    start: datetime
    end: datetime


@dataclass(frozen=True)
class TimeSlot:
    start: datetime
    end: datetime


def ensure_utc(dt: datetime) -> datetime:
    """
    Return `dt` as an aware UTC datetime.

    Naive values are taken to already be UTC; that is how the database
    stores them.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_db_time(dt: datetime) -> datetime:
    """Naive UTC, the representation used by DateTime columns."""
    return ensure_utc(dt).replace(tzinfo=None)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    # Half-open: touching endpoints do not overlap
    return a_start < b_end and b_start < a_end


def merge_busy_times(busy_times: Iterable[BusyTime]) -> List[BusyTime]:
    """
    Collapse overlapping or touching busy intervals into a minimal sorted list.

    The input is not modified. Merging an already merged list returns an
    equal list.
    """
    ordered = sorted(busy_times, key=lambda b: (b.start, b.end))
    if not ordered:
        return []

    merged: List[BusyTime] = []
    current_start, current_end = ordered[0].start, ordered[0].end

    for busy in ordered[1:]:
        if busy.start <= current_end:
            if busy.end > current_end:
                current_end = busy.end
        else:
            merged.append(BusyTime(start=current_start, end=current_end))
            current_start, current_end = busy.start, busy.end

    merged.append(BusyTime(start=current_start, end=current_end))
    return merged


def pad_window(start: datetime, end: datetime, minutes: int = 60) -> BusyTime:
    """The request window widened on both sides to leave room for buffer math."""
    delta = timedelta(minutes=minutes)
    return BusyTime(start=start - delta, end=end + delta)
