# booking_engine/services/booking_store.py
"""
Persistence helpers used by the booking flow.

All counts here must be read while holding the booking locks for the host
and event type, otherwise two requests can both see "one seat left".
"""
import logging
from collections import Counter
from datetime import date, datetime, timedelta
from typing import Dict, List, Sequence, Set
from zoneinfo import ZoneInfo

from sqlalchemy import or_, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from booking_engine.errors import SlotNoLongerAvailable
from booking_engine.models.booking import ACTIVE_STATUSES, Booking, BookingParticipant
from booking_engine.models.event_type import EventType
from booking_engine.models.team_member import TeamMember
from booking_engine.services.interval_service import ensure_utc, to_db_time

logger = logging.getLogger(__name__)

# Existing bookings widen themselves by their own buffers, so the query
# reaches further than the window it serves.
_BUFFER_MARGIN = timedelta(hours=24)


def active_bookings_for_user(
    db: Session,
    user_id: int,
    start: datetime,
    end: datetime,
) -> List[Booking]:
    """Active bookings where the user is host, assignee or participant, near [start, end)."""
    return (
        db.query(Booking)
        .filter(
            or_(
                Booking.host_user_id == user_id,
                Booking.assigned_user_id == user_id,
                Booking.participants.any(BookingParticipant.user_id == user_id),
            ),
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time < to_db_time(end + _BUFFER_MARGIN),
            Booking.end_time > to_db_time(start - _BUFFER_MARGIN),
        )
        .order_by(Booking.start_time.asc())
        .all()
    )


def count_bookings_for_slot(db: Session, event_type_id: int, start: datetime) -> int:
    return (
        db.query(Booking)
        .filter(
            Booking.event_type_id == event_type_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time == to_db_time(start),
        )
        .count()
    )


def used_seat_numbers(db: Session, host_user_id: int, start: datetime) -> Set[int]:
    rows = (
        db.query(Booking.seat_number)
        .filter(
            Booking.host_user_id == host_user_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time == to_db_time(start),
        )
        .all()
    )
    return {row[0] for row in rows}


def count_bookings_for_day(
    db: Session,
    event_type_id: int,
    day_start: datetime,
    day_end: datetime,
) -> int:
    return (
        db.query(Booking)
        .filter(
            Booking.event_type_id == event_type_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time >= to_db_time(day_start),
            Booking.start_time < to_db_time(day_end),
        )
        .count()
    )


def bookings_per_local_day(
    db: Session,
    event_type_id: int,
    start: datetime,
    end: datetime,
    timezone: str,
) -> Dict[date, int]:
    """Active bookings of an event type per local calendar date in `timezone`."""
    tz = ZoneInfo(timezone)
    rows = (
        db.query(Booking.start_time)
        .filter(
            Booking.event_type_id == event_type_id,
            Booking.status.in_(ACTIVE_STATUSES),
            Booking.start_time >= to_db_time(start),
            Booking.start_time < to_db_time(end),
        )
        .all()
    )
    return dict(Counter(ensure_utc(row[0]).astimezone(tz).date() for row in rows))


def active_team_members(db: Session, event_type_id: int) -> List[TeamMember]:
    """Active members in rotation order: priority, then insertion order."""
    return (
        db.query(TeamMember)
        .filter(
            TeamMember.event_type_id == event_type_id,
            TeamMember.is_active.is_(True),
        )
        .order_by(TeamMember.priority.asc(), TeamMember.id.asc())
        .all()
    )


def insert_bookings(db: Session, bookings: Sequence[Booking]) -> List[Booking]:
    """
    Stage all rows and flush them as one unit.

    The partial unique index on (host, start, seat) is the last line of
    defence: a violation means a concurrent request won the slot, so the
    whole set is rolled back and reported as SlotNoLongerAvailable.
    """
    db.add_all(bookings)
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.info("Booking insert lost a race: %s", exc.orig)
        raise SlotNoLongerAvailable(
            "This time slot is no longer available. Please select another time."
        ) from exc
    return list(bookings)


def compare_and_set_rotation(
    db: Session,
    event_type_id: int,
    expected_version: int,
    member_id: int,
) -> bool:
    """
    Move the round-robin pointer only if nobody moved it since we read it.

    Runs inside the caller's transaction. Returns False when the version
    changed underneath us.
    """
    result = db.execute(
        update(EventType)
        .where(
            EventType.id == event_type_id,
            EventType.rotation_version == expected_version,
        )
        .values(
            last_assigned_member_id=member_id,
            rotation_version=expected_version + 1,
        )
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def get_recurring_series(db: Session, group_id: str) -> List[Booking]:
    return (
        db.query(Booking)
        .filter(Booking.recurring_group_id == group_id)
        .order_by(Booking.recurring_index.asc())
        .all()
    )
