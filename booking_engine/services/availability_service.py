# booking_engine/services/availability_service.py
from dataclasses import dataclass, field
from datetime import date, time
from typing import Iterable, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from booking_engine.models.availability import AvailabilityWindow, DateOverride
from booking_engine.models.user import User


@dataclass(frozen=True)
class WallClockWindow:
    start_time: time
    end_time: time


@dataclass
class HostSchedule:
    timezone: str
    windows: List[AvailabilityWindow] = field(default_factory=list)
    overrides: List[DateOverride] = field(default_factory=list)


def day_of_week(day: date) -> int:
    """0=Sunday ... 6=Saturday (Python's weekday() starts at Monday)."""
    return (day.weekday() + 1) % 7


def resolve_windows_for_date(
    day: date,
    windows: Sequence[AvailabilityWindow],
    overrides: Sequence[DateOverride],
) -> List[WallClockWindow]:
    """
    Return the wall-clock working windows for `day`.

    - An override for the exact date wins:
        * not working -> no windows
        * working with start/end -> exactly that one window
        * working without times -> fall through to the weekly windows
    - Otherwise every weekly window for that weekday, ordered by start.
    """
    override = next((o for o in overrides if o.date == day), None)

    if override is not None:
        if not override.is_working:
            return []
        if override.start_time is not None and override.end_time is not None:
            return [WallClockWindow(override.start_time, override.end_time)]

    dow = day_of_week(day)
    matching = [
        WallClockWindow(w.start_time, w.end_time)
        for w in windows
        if w.day_of_week == dow
    ]
    return sorted(matching, key=lambda w: w.start_time)


def load_host_schedule(db: Session, user_id: int) -> HostSchedule:
    user = db.get(User, user_id)
    if user is None:
        raise ValueError(f"User {user_id} not found")

    windows = (
        db.query(AvailabilityWindow)
        .filter(AvailabilityWindow.user_id == user_id)
        .all()
    )
    overrides = (
        db.query(DateOverride)
        .filter(DateOverride.user_id == user_id)
        .all()
    )
    return HostSchedule(
        timezone=user.timezone or "UTC",
        windows=windows,
        overrides=overrides,
    )


def replace_weekly_availability(
    db: Session,
    *,
    user_id: int,
    windows: Iterable[Tuple[int, time, time]],
) -> List[AvailabilityWindow]:
    """
    Replace a host's weekly availability.

    Behavior:
    - Validates every (day_of_week, start_time, end_time) first.
    - Removes all existing windows for the user, so the new set "replaces"
      the old one.
    - Inserts the new rows in the same transaction.

    Returns the list of newly created AvailabilityWindow records.
    """
    validated = list(windows)
    for dow, start, end in validated:
        if not 0 <= dow <= 6:
            raise ValueError("day_of_week must be between 0 (Sunday) and 6 (Saturday)")
        if end <= start:
            raise ValueError("end_time must be after start_time")

    db.query(AvailabilityWindow).filter(
        AvailabilityWindow.user_id == user_id,
    ).delete()

    created: List[AvailabilityWindow] = []
    for dow, start, end in validated:
        window = AvailabilityWindow(
            user_id=user_id,
            day_of_week=dow,
            start_time=start,
            end_time=end,
        )
        db.add(window)
        created.append(window)

    db.commit()
    for window in created:
        db.refresh(window)

    return created


def upsert_date_override(
    db: Session,
    *,
    user_id: int,
    day: date,
    is_working: bool,
    start_time: Optional[time] = None,
    end_time: Optional[time] = None,
) -> DateOverride:
    """Create or replace the override for (user_id, day)."""
    if (start_time is None) != (end_time is None):
        raise ValueError("start_time and end_time must be given together")
    if start_time is not None and end_time <= start_time:
        raise ValueError("end_time must be after start_time")

    override = (
        db.query(DateOverride)
        .filter_by(user_id=user_id, date=day)
        .first()
    )
    if override is None:
        override = DateOverride(user_id=user_id, date=day)
        db.add(override)

    override.is_working = is_working
    override.start_time = start_time if is_working else None
    override.end_time = end_time if is_working else None

    db.commit()
    db.refresh(override)
    return override
