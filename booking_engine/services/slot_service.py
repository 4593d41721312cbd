# booking_engine/services/slot_service.py
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from sqlalchemy.orm import Session

from booking_engine.config import get_settings
from booking_engine.errors import EventTypeNotFound
from booking_engine.models.availability import AvailabilityWindow, DateOverride
from booking_engine.models.booking import Booking
from booking_engine.models.event_type import EventType, SchedulingType
from booking_engine.services import booking_store
from booking_engine.services.availability_service import (
    WallClockWindow,
    load_host_schedule,
    resolve_windows_for_date,
)
from booking_engine.services.busy_time_service import fetch_external_busy_many
from booking_engine.services.conflict_service import (
    booking_busy_times,
    is_slot_available,
)
from booking_engine.services.interval_service import (
    BusyTime,
    TimeSlot,
    ensure_utc,
    merge_busy_times,
    utcnow,
)
from booking_engine.services.recurring_service import BookingWindow, booking_window

MIN_SLOT_MINUTES = 5
MAX_DAYS_TO_PROCESS = 90

SlotMap = Dict[date, List[TimeSlot]]


@dataclass(frozen=True)
class SlotOptions:
    duration: int
    slot_interval: Optional[int] = None
    buffer_before: int = 0
    buffer_after: int = 0
    minimum_notice: int = 0
    max_bookings_per_day: Optional[int] = None
    host_timezone: str = "UTC"

    @classmethod
    def from_event_type(cls, event_type: EventType, host_timezone: str) -> "SlotOptions":
        return cls(
            duration=event_type.duration_minutes,
            slot_interval=event_type.slot_interval_minutes,
            buffer_before=event_type.buffer_before_minutes or 0,
            buffer_after=event_type.buffer_after_minutes or 0,
            minimum_notice=event_type.minimum_notice_minutes or 0,
            max_bookings_per_day=event_type.max_bookings_per_day,
            host_timezone=host_timezone or "UTC",
        )


def generate_slots_for_window(
    day: date,
    window: WallClockWindow,
    duration: int,
    slot_interval: Optional[int] = None,
    host_timezone: str = "UTC",
) -> List[TimeSlot]:
    """
    Cut one wall-clock window into fixed-length slots (UTC).

    - The window is anchored to `day` in the host timezone, then converted
      to UTC so DST days come out with their real length.
    - We step by `slot_interval` (defaults to `duration`).
    - A slot must fit entirely inside the window; partial slots are dropped.
    """
    if duration is None or duration <= 0:
        raise ValueError("duration must be positive")

    duration = max(MIN_SLOT_MINUTES, duration)
    step = max(MIN_SLOT_MINUTES, slot_interval or duration)

    tz = ZoneInfo(host_timezone)
    window_start = datetime.combine(day, window.start_time, tzinfo=tz).astimezone(timezone.utc)
    window_end = datetime.combine(day, window.end_time, tzinfo=tz).astimezone(timezone.utc)

    slots: List[TimeSlot] = []
    current = window_start
    length = timedelta(minutes=duration)
    delta = timedelta(minutes=step)

    while current + length <= window_end:
        slots.append(TimeSlot(start=current, end=current + length))
        current += delta

    return slots


def resolve_available_slots(
    *,
    windows: Sequence[AvailabilityWindow],
    overrides: Sequence[DateOverride],
    options: SlotOptions,
    busy_times: Iterable[BusyTime],
    from_date: date,
    days_ahead: int,
    invitee_timezone: str,
    now: datetime,
    bookings_per_day: Optional[Mapping[date, int]] = None,
    window: Optional[BookingWindow] = None,
    extra_check: Optional[Callable[[TimeSlot], bool]] = None,
) -> SlotMap:
    """
    Offerable slots for one host, grouped by the invitee's local date.

    Filtering happens entirely in UTC; slots are converted to the invitee's
    timezone only once they have survived. `bookings_per_day` is keyed by
    host-local date and used for the daily limit.
    """
    merged = merge_busy_times(busy_times)
    invitee_tz = ZoneInfo(invitee_timezone)
    now = ensure_utc(now)
    counts = bookings_per_day or {}

    found: Dict[datetime, TimeSlot] = {}

    for offset in range(min(days_ahead, MAX_DAYS_TO_PROCESS)):
        day = from_date + timedelta(days=offset)

        if (
            options.max_bookings_per_day
            and counts.get(day, 0) >= options.max_bookings_per_day
        ):
            continue

        for wall_window in resolve_windows_for_date(day, windows, overrides):
            for slot in generate_slots_for_window(
                day,
                wall_window,
                options.duration,
                options.slot_interval,
                options.host_timezone,
            ):
                if window is not None and not window.contains(slot.start):
                    continue
                if not is_slot_available(
                    slot,
                    merged,
                    options.buffer_before,
                    options.buffer_after,
                    options.minimum_notice,
                    now,
                ):
                    continue
                if extra_check is not None and not extra_check(slot):
                    continue
                found[slot.start] = slot

    result: SlotMap = {}
    for start in sorted(found):
        slot = found[start]
        local = TimeSlot(
            start=slot.start.astimezone(invitee_tz),
            end=slot.end.astimezone(invitee_tz),
        )
        result.setdefault(local.start.date(), []).append(local)

    return result


def resolve_team_available_slots(
    policy: SchedulingType,
    member_slots: Sequence[SlotMap],
) -> SlotMap:
    """
    Combine per-member slot maps.

    COLLECTIVE keeps a slot only if every member offers it; ROUND_ROBIN and
    MANAGED keep a slot if any member does.
    """
    if not member_slots:
        return {}

    by_start: List[Dict[datetime, TimeSlot]] = [
        {s.start: s for day_slots in slots.values() for s in day_slots}
        for slots in member_slots
    ]

    chosen: Dict[datetime, TimeSlot] = {}
    if policy == SchedulingType.COLLECTIVE:
        common = set(by_start[0])
        for starts in by_start[1:]:
            common &= set(starts)
        chosen = {start: by_start[0][start] for start in common}
    else:
        for starts in by_start:
            for start, slot in starts.items():
                chosen.setdefault(start, slot)

    result: SlotMap = {}
    for start in sorted(chosen):
        slot = chosen[start]
        result.setdefault(slot.start.date(), []).append(slot)
    return result


def _group_seat_check(
    event_type: EventType,
    group_bookings: Sequence[Booking],
) -> Callable[[TimeSlot], bool]:
    """
    Same-event-type bookings of a group event do not block their own start
    until it is full, but still block every other overlapping start.
    """
    seats = event_type.seats_per_slot or 1

    def check(slot: TimeSlot) -> bool:
        same_start = [b for b in group_bookings if ensure_utc(b.start_time) == slot.start]
        if len(same_start) >= seats:
            return False
        others = merge_busy_times(
            booking_busy_times(b for b in group_bookings if ensure_utc(b.start_time) != slot.start)
        )
        return is_slot_available(
            slot,
            others,
            event_type.buffer_before_minutes or 0,
            event_type.buffer_after_minutes or 0,
        )

    return check


def _slots_for_user(
    db: Session,
    *,
    event_type: EventType,
    user_id: int,
    external_busy: Sequence[BusyTime],
    range_start: datetime,
    range_end: datetime,
    from_date: date,
    days_ahead: int,
    invitee_timezone: str,
    now: datetime,
    window: BookingWindow,
) -> SlotMap:
    schedule = load_host_schedule(db, user_id)
    options = SlotOptions.from_event_type(event_type, schedule.timezone)

    bookings = booking_store.active_bookings_for_user(db, user_id, range_start, range_end)
    extra_check = None
    if event_type.is_group_event:
        group = [b for b in bookings if b.event_type_id == event_type.id]
        bookings = [b for b in bookings if b.event_type_id != event_type.id]
        extra_check = _group_seat_check(event_type, group)

    per_day: Dict[date, int] = {}
    if event_type.max_bookings_per_day:
        per_day = booking_store.bookings_per_local_day(
            db, event_type.id, range_start, range_end, schedule.timezone
        )

    return resolve_available_slots(
        windows=schedule.windows,
        overrides=schedule.overrides,
        options=options,
        busy_times=list(external_busy) + booking_busy_times(bookings),
        from_date=from_date,
        days_ahead=days_ahead,
        invitee_timezone=invitee_timezone,
        now=now,
        bookings_per_day=per_day,
        window=window,
        extra_check=extra_check,
    )


def get_available_slots(
    db: Session,
    event_type_id: int,
    *,
    from_date: date,
    days_ahead: int,
    invitee_timezone: str = "UTC",
    calendar_client=None,
    now: Optional[datetime] = None,
) -> SlotMap:
    """
    Offerable slots for an event type, read-only.

    Solo and MANAGED event types use the owner's schedule. ROUND_ROBIN and
    COLLECTIVE combine the schedules of the active team members.
    """
    settings = get_settings()
    now = ensure_utc(now) if now else utcnow()

    event_type = (
        db.query(EventType)
        .filter_by(id=event_type_id, is_active=True)
        .first()
    )
    if not event_type:
        raise EventTypeNotFound("Event type not found or is not active")

    if days_ahead <= 0:
        raise ValueError("days_ahead must be positive")

    policy = SchedulingType(event_type.scheduling_type or SchedulingType.NONE.value)
    if policy in (SchedulingType.ROUND_ROBIN, SchedulingType.COLLECTIVE):
        user_ids = [m.user_id for m in booking_store.active_team_members(db, event_type.id)]
    else:
        user_ids = [event_type.owner_id]

    window = booking_window(event_type, now, settings.DEFAULT_PERIOD_DAYS)

    # One day of slack each side covers any host/invitee timezone offset
    range_start = datetime.combine(from_date, time.min, tzinfo=timezone.utc) - timedelta(days=1)
    range_end = range_start + timedelta(days=min(days_ahead, MAX_DAYS_TO_PROCESS) + 2)

    external = fetch_external_busy_many(
        calendar_client,
        [(uid, BusyTime(start=range_start, end=range_end)) for uid in user_ids],
    )

    member_slots = [
        _slots_for_user(
            db,
            event_type=event_type,
            user_id=uid,
            external_busy=external[i],
            range_start=range_start,
            range_end=range_end,
            from_date=from_date,
            days_ahead=days_ahead,
            invitee_timezone=invitee_timezone,
            now=now,
            window=window,
        )
        for i, uid in enumerate(user_ids)
    ]

    if policy in (SchedulingType.ROUND_ROBIN, SchedulingType.COLLECTIVE):
        return resolve_team_available_slots(policy, member_slots)
    return member_slots[0] if member_slots else {}
