# booking_engine/services/booking_service.py
"""
Booking Transaction Orchestrator

The only write path for bookings. Every check that ran when the slot was
listed runs again here on a fresh busy snapshot, under the booking locks,
before anything is persisted:

  1. event type lookup, recurring expansion
  2. minimum notice, booking window
  3. external busy prefetch (outside the lock, in parallel)
  4. locks on the event type and every candidate host
  5. team assignment, host conflict check, seats, daily limit, per occurrence
  6. insert + rotation compare-and-set, commit
  7. post-commit notifications (never fail the booking)
"""
import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional, Sequence, Tuple
from uuid import uuid4
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import Session

from booking_engine.config import Settings, get_settings
from booking_engine.errors import (
    BookingError,
    DailyLimitExceeded,
    EventTypeNotFound,
    InvalidBookingRequest,
    MinimumNoticeViolation,
    NoTeamMemberAvailable,
    OutsideBookingWindow,
    RecurringConflict,
    RecurringNotAllowed,
    RotationPointerConflict,
    SeatsExhausted,
    SeriesNotFound,
    SlotNoLongerAvailable,
)
from booking_engine.models.booking import Booking, BookingParticipant, BookingStatus
from booking_engine.models.event_type import EventType, SchedulingType
from booking_engine.models.user import User
from booking_engine.services import booking_store
from booking_engine.services.busy_time_service import fetch_external_busy_many
from booking_engine.services.conflict_service import (
    booking_busy_times,
    is_slot_available,
    meets_minimum_notice,
)
from booking_engine.services.interval_service import (
    BusyTime,
    TimeSlot,
    ensure_utc,
    merge_busy_times,
    pad_window,
    to_db_time,
    utcnow,
)
from booking_engine.services.lock_service import (
    NamedLockRegistry,
    booking_locks,
    event_type_lock_key,
    host_lock_key,
)
from booking_engine.services.recurring_service import (
    MIN_RECURRING_OCCURRENCES,
    booking_window,
    ensure_within_booking_window,
    expand_recurring_dates,
)
from booking_engine.services.slot_service import MIN_SLOT_MINUTES
from booking_engine.services.team_assignment_service import (
    AssignmentResult,
    MemberCandidate,
    resolve_team_assignment,
)

logger = logging.getLogger(__name__)

BUSY_PADDING_MINUTES = 60

_TEAM_POLICIES = (SchedulingType.ROUND_ROBIN, SchedulingType.COLLECTIVE)


@dataclass
class RecurringOptions:
    count: int
    frequency: Optional[str] = None  # falls back to the event type's default
    interval: Optional[int] = None


@dataclass
class BookingRequest:
    event_type_id: int
    start_time: datetime
    invitee_name: str
    invitee_email: str
    timezone: str = "UTC"
    invitee_phone: Optional[str] = None
    notes: Optional[str] = None
    recurring: Optional[RecurringOptions] = None


@dataclass
class BookingResult:
    bookings: List[Booking]
    host_user_id: int
    assigned_user_id: Optional[int] = None
    recurring_group_id: Optional[str] = None
    participant_user_ids: Tuple[int, ...] = field(default_factory=tuple)

    @property
    def booking(self) -> Booking:
        return self.bookings[0]


@dataclass
class _Plan:
    slots: List[TimeSlot]
    frequency: Optional[str] = None
    interval: Optional[int] = None

    @property
    def is_series(self) -> bool:
        return len(self.slots) > 1


def _load_event_type(db: Session, event_type_id: int) -> EventType:
    event_type = (
        db.query(EventType)
        .filter_by(id=event_type_id, is_active=True)
        .first()
    )
    if not event_type:
        raise EventTypeNotFound("Event type not found or is not active")
    return event_type


def _user_timezone(db: Session, user_id: int) -> str:
    user = db.get(User, user_id)
    return (user.timezone if user else None) or "UTC"


def _validate_request(request: BookingRequest) -> None:
    if not request.invitee_name or not request.invitee_name.strip():
        raise InvalidBookingRequest("Invitee name is required")
    if not request.invitee_email or "@" not in request.invitee_email:
        raise InvalidBookingRequest("A valid invitee email is required")
    try:
        ZoneInfo(request.timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidBookingRequest(f"Unknown timezone: {request.timezone}")


def _plan_occurrences(
    event_type: EventType,
    request: BookingRequest,
    owner_timezone: str,
    settings: Settings,
) -> _Plan:
    start = ensure_utc(request.start_time)
    duration = timedelta(minutes=max(MIN_SLOT_MINUTES, event_type.duration_minutes))

    recurring = request.recurring
    if recurring is None:
        return _Plan(slots=[TimeSlot(start=start, end=start + duration)])

    if not event_type.allows_recurring:
        raise RecurringNotAllowed("This event type does not allow recurring bookings")

    max_count = min(
        event_type.recurring_max_occurrences or settings.MAX_RECURRING_OCCURRENCES,
        settings.MAX_RECURRING_OCCURRENCES,
    )
    if recurring.count < MIN_RECURRING_OCCURRENCES or recurring.count > max_count:
        raise InvalidBookingRequest(
            f"Recurring count must be between {MIN_RECURRING_OCCURRENCES} and {max_count}",
            min_occurrences=MIN_RECURRING_OCCURRENCES,
            max_occurrences=max_count,
        )

    frequency = recurring.frequency or event_type.recurring_frequency or "weekly"
    interval = recurring.interval or event_type.recurring_interval or 1

    try:
        starts = expand_recurring_dates(
            start,
            frequency,
            interval=interval,
            count=recurring.count,
            timezone=owner_timezone,
        )
    except ValueError as exc:
        raise InvalidBookingRequest(str(exc)) from exc

    return _Plan(
        slots=[TimeSlot(start=s, end=s + duration) for s in starts],
        frequency=str(frequency).lower(),
        interval=interval,
    )


def _member_candidates(db: Session, event_type: EventType) -> List[MemberCandidate]:
    return [
        MemberCandidate(
            member_id=m.id,
            user_id=m.user_id,
            priority=m.priority or 0,
            is_active=m.is_active,
        )
        for m in booking_store.active_team_members(db, event_type.id)
    ]


def _prefetch_external_busy(
    calendar_client,
    user_ids: Sequence[int],
    slots: Sequence[TimeSlot],
    padding: int,
) -> Dict[int, List[BusyTime]]:
    """External busy time per user, covering every occurrence (padded)."""
    requests = [
        (user_id, pad_window(slot.start, slot.end, padding))
        for user_id in user_ids
        for slot in slots
    ]
    fetched = fetch_external_busy_many(calendar_client, requests)

    external: Dict[int, List[BusyTime]] = {user_id: [] for user_id in user_ids}
    for (user_id, _), busy in zip(requests, fetched):
        external[user_id].extend(busy)
    return external


class _BusySnapshot:
    """
    Busy sets read inside the lock.

    Bookings are loaded once per user for the whole request span. For a
    group event type, bookings of that event type starting exactly at the
    slot are left out; seats decide those.
    """

    def __init__(
        self,
        db: Session,
        event_type: EventType,
        external: Dict[int, List[BusyTime]],
        span: BusyTime,
    ):
        self._db = db
        self._event_type = event_type
        self._external = external
        self._span = span
        self._bookings: Dict[int, List[Booking]] = {}

    def _bookings_for(self, user_id: int) -> List[Booking]:
        if user_id not in self._bookings:
            self._bookings[user_id] = booking_store.active_bookings_for_user(
                self._db, user_id, self._span.start, self._span.end
            )
        return self._bookings[user_id]

    def merged(self, user_id: int, slot: TimeSlot) -> List[BusyTime]:
        bookings = self._bookings_for(user_id)
        if self._event_type.is_group_event:
            bookings = [
                b for b in bookings
                if not (
                    b.event_type_id == self._event_type.id
                    and ensure_utc(b.start_time) == slot.start
                )
            ]
        return merge_busy_times(self._external.get(user_id, []) + booking_busy_times(bookings))


def _local_day_bounds(day: date, tz: ZoneInfo) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz).astimezone(timezone.utc)
    return start, end


def _attempt_booking(
    db: Session,
    *,
    event_type: EventType,
    policy: SchedulingType,
    members: List[MemberCandidate],
    request: BookingRequest,
    plan: _Plan,
    external: Dict[int, List[BusyTime]],
    padding: int,
) -> BookingResult:
    # Rotation state may have moved while we waited for the lock
    db.refresh(event_type)
    expected_version = event_type.rotation_version or 0

    buffer_before = event_type.buffer_before_minutes or 0
    buffer_after = event_type.buffer_after_minutes or 0
    seats = event_type.seats_per_slot or 1

    span = pad_window(plan.slots[0].start, plan.slots[-1].end, padding)
    snapshot = _BusySnapshot(db, event_type, external, span)

    def wrap(index: int, exc: BookingError) -> BookingError:
        if plan.is_series:
            return RecurringConflict(index, exc)
        return exc

    # Assignment is decided on the first occurrence and held for the series
    assignment = AssignmentResult(selected_member_id=None)
    if policy in _TEAM_POLICIES:
        first = plan.slots[0]
        try:
            assignment = resolve_team_assignment(
                policy,
                members,
                {m.member_id: snapshot.merged(m.user_id, first) for m in members},
                first,
                last_assigned_member_id=event_type.last_assigned_member_id,
                buffer_before=buffer_before,
                buffer_after=buffer_after,
            )
        except BookingError as exc:
            raise wrap(0, exc) from exc

    by_member = {m.member_id: m for m in members}
    assigned_user_id: Optional[int] = None
    if policy == SchedulingType.ROUND_ROBIN:
        host_user_id = by_member[assignment.selected_member_id].user_id
        assigned_user_id = host_user_id
        participant_user_ids: Tuple[int, ...] = (host_user_id,)
    elif policy == SchedulingType.COLLECTIVE:
        participant_user_ids = tuple(by_member[mid].user_id for mid in assignment.participant_member_ids)
        host_user_id = participant_user_ids[0]
    else:
        host_user_id = event_type.owner_id
        participant_user_ids = (host_user_id,)

    host_tz = ZoneInfo(_user_timezone(db, host_user_id))
    planned_per_day: Counter = Counter()
    group_id = str(uuid4()) if plan.is_series else None
    status = (
        BookingStatus.PENDING.value
        if event_type.requires_confirmation
        else BookingStatus.CONFIRMED.value
    )

    rows: List[Booking] = []
    for index, slot in enumerate(plan.slots):
        try:
            if policy == SchedulingType.COLLECTIVE and index > 0:
                for member_user_id in participant_user_ids:
                    if not is_slot_available(
                        slot, snapshot.merged(member_user_id, slot), buffer_before, buffer_after
                    ):
                        raise SlotNoLongerAvailable(
                            "This time slot is no longer available for all team members.",
                            user_id=member_user_id,
                        )

            if not is_slot_available(
                slot, snapshot.merged(host_user_id, slot), buffer_before, buffer_after
            ):
                raise SlotNoLongerAvailable(
                    "This time slot is no longer available. Please select another time."
                )

            seat_number = 0
            if event_type.is_group_event:
                taken = booking_store.count_bookings_for_slot(db, event_type.id, slot.start)
                if taken >= seats:
                    raise SeatsExhausted(
                        "All seats for this time slot are taken.",
                        seats_per_slot=seats,
                    )
                used = booking_store.used_seat_numbers(db, host_user_id, slot.start)
                seat_number = next(n for n in range(seats + len(used)) if n not in used)

            if event_type.max_bookings_per_day:
                local_day = slot.start.astimezone(host_tz).date()
                day_start, day_end = _local_day_bounds(local_day, host_tz)
                booked = booking_store.count_bookings_for_day(db, event_type.id, day_start, day_end)
                if booked + planned_per_day[local_day] >= event_type.max_bookings_per_day:
                    raise DailyLimitExceeded(
                        "The maximum number of bookings for this day has been reached.",
                        date=local_day.isoformat(),
                        max_bookings_per_day=event_type.max_bookings_per_day,
                    )
                planned_per_day[local_day] += 1
        except BookingError as exc:
            raise wrap(index, exc) from exc

        rows.append(
            Booking(
                uid=str(uuid4()),
                event_type_id=event_type.id,
                host_user_id=host_user_id,
                assigned_user_id=assigned_user_id,
                start_time=to_db_time(slot.start),
                end_time=to_db_time(slot.end),
                buffer_before_minutes=buffer_before,
                buffer_after_minutes=buffer_after,
                timezone=request.timezone,
                invitee_name=request.invitee_name.strip(),
                invitee_email=request.invitee_email.strip(),
                invitee_phone=request.invitee_phone,
                notes=request.notes,
                status=status,
                seat_number=seat_number,
                recurring_group_id=group_id,
                recurring_index=index if plan.is_series else None,
                recurring_count=len(plan.slots) if plan.is_series else None,
                recurring_frequency=plan.frequency,
                recurring_interval=plan.interval,
                participants=[
                    BookingParticipant(user_id=user_id)
                    for user_id in participant_user_ids
                    if user_id != host_user_id
                ],
            )
        )

    booking_store.insert_bookings(db, rows)

    if policy == SchedulingType.ROUND_ROBIN:
        moved = booking_store.compare_and_set_rotation(
            db, event_type.id, expected_version, assignment.selected_member_id
        )
        if not moved:
            raise RotationPointerConflict(
                "Round-robin pointer moved during booking",
                expected_version=expected_version,
            )

    db.commit()
    for row in rows:
        db.refresh(row)

    return BookingResult(
        bookings=rows,
        host_user_id=host_user_id,
        assigned_user_id=assigned_user_id,
        recurring_group_id=group_id,
        participant_user_ids=participant_user_ids,
    )


def create_booking(
    db: Session,
    request: BookingRequest,
    *,
    calendar_client=None,
    notifier=None,
    now: Optional[datetime] = None,
    locks: Optional[NamedLockRegistry] = None,
) -> BookingResult:
    """
    Book one slot (or a recurring series) for an invitee.

    Raises a BookingError subclass for every rejected request; on any
    failure nothing is persisted. Recurring series are all-or-nothing.
    """
    settings = get_settings()
    now = ensure_utc(now) if now else utcnow()
    locks = locks or booking_locks

    event_type = _load_event_type(db, request.event_type_id)
    _validate_request(request)

    owner_tz = _user_timezone(db, event_type.owner_id)
    plan = _plan_occurrences(event_type, request, owner_tz, settings)
    first = plan.slots[0]

    if not meets_minimum_notice(first, event_type.minimum_notice_minutes or 0, now):
        raise MinimumNoticeViolation(
            f"Bookings require at least {event_type.minimum_notice_minutes} minutes notice",
            minimum_notice_minutes=event_type.minimum_notice_minutes,
        )

    window = booking_window(event_type, now, settings.DEFAULT_PERIOD_DAYS)
    if not window.contains(first.start):
        raise OutsideBookingWindow(
            "This time is outside the event type's booking window",
            window_start=window.start.isoformat() if window.start else None,
            window_end=window.end.isoformat() if window.end else None,
        )
    if plan.is_series:
        ensure_within_booking_window([s.start for s in plan.slots], window)

    policy = SchedulingType(event_type.scheduling_type or SchedulingType.NONE.value)
    members: List[MemberCandidate] = []
    if policy in _TEAM_POLICIES:
        members = _member_candidates(db, event_type)
        if not members:
            raise NoTeamMemberAvailable("This event has no active team members.")
        candidate_user_ids = [m.user_id for m in members]
    else:
        candidate_user_ids = [event_type.owner_id]

    padding = max(
        BUSY_PADDING_MINUTES,
        event_type.buffer_before_minutes or 0,
        event_type.buffer_after_minutes or 0,
    )
    external = _prefetch_external_busy(calendar_client, candidate_user_ids, plan.slots, padding)

    lock_keys = [event_type_lock_key(event_type.id)] + [host_lock_key(u) for u in candidate_user_ids]

    result: Optional[BookingResult] = None
    with locks.hold(lock_keys, settings.BOOKING_LOCK_TIMEOUT_SECONDS):
        for attempt in range(settings.ROTATION_MAX_RETRIES + 1):
            try:
                result = _attempt_booking(
                    db,
                    event_type=event_type,
                    policy=policy,
                    members=members,
                    request=request,
                    plan=plan,
                    external=external,
                    padding=padding,
                )
                break
            except RotationPointerConflict:
                db.rollback()
                logger.info(
                    "Rotation pointer for event type %s moved, retrying (attempt %d)",
                    event_type.id,
                    attempt + 1,
                )
            except Exception:
                db.rollback()
                raise

    if result is None:
        raise SlotNoLongerAvailable(
            "This time slot is no longer available. Please select another time."
        )

    logger.info(
        "Booked %d occurrence(s) of event type %s for host %s",
        len(result.bookings),
        event_type.id,
        result.host_user_id,
    )

    if notifier is not None:
        try:
            notifier.booking_created(result, event_type)
        except Exception:
            logger.exception("Post-booking notifications failed for %s", result.booking.uid)

    return result


def get_recurring_series(db: Session, group_id: str) -> List[Booking]:
    bookings = booking_store.get_recurring_series(db, group_id)
    if not bookings:
        raise SeriesNotFound("Recurring series not found", recurring_group_id=group_id)
    return bookings
