# tests/test_booking_concurrency.py
import threading
from datetime import datetime, time, timedelta, timezone

import pytest

from booking_engine.db.session import engine, SessionLocal
from booking_engine.errors import SeatsExhausted, SlotNoLongerAvailable
from booking_engine.models import Base, Booking, EventType, User
from booking_engine.models.event_type import SchedulingType
from booking_engine.models.team_member import TeamMember
from booking_engine.services import booking_store
from booking_engine.services.availability_service import replace_weekly_availability
from booking_engine.services.booking_service import BookingRequest, create_booking

NOW = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
MONDAY_10 = datetime(2024, 1, 8, 10, 0, tzinfo=timezone.utc)


def _clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _setup_event_type(**fields) -> int:
    db = SessionLocal()
    try:
        host = User(name="Host", email="host@example.com", timezone="UTC")
        db.add(host)
        db.commit()
        db.refresh(host)
        replace_weekly_availability(
            db, user_id=host.id, windows=[(dow, time(9), time(17)) for dow in range(7)]
        )

        event_type = EventType(
            owner_id=host.id,
            title="Intro call",
            slug="intro",
            duration_minutes=30,
            period_type="UNLIMITED",
            **fields,
        )
        db.add(event_type)
        db.commit()
        return event_type.id
    finally:
        db.close()


def _book_concurrently(event_type_id: int, count: int, starts=None):
    """Fire `count` bookings at once, each on its own session (same slot unless `starts` is given)."""
    starts = starts or [MONDAY_10] * count
    barrier = threading.Barrier(count)
    outcomes = []
    outcomes_lock = threading.Lock()

    def worker(i: int):
        db = SessionLocal()
        try:
            request = BookingRequest(
                event_type_id=event_type_id,
                start_time=starts[i],
                invitee_name=f"Guest {i}",
                invitee_email=f"guest{i}@example.com",
            )
            barrier.wait()
            try:
                outcome = create_booking(db, request, now=NOW)
            except Exception as exc:
                outcome = exc
            with outcomes_lock:
                outcomes.append(outcome)
        finally:
            db.close()

    threads = [threading.Thread(target=worker, args=(i,)) for i in range(count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=30)
    return outcomes


def test_concurrent_requests_for_same_slot_book_exactly_once():
    _clean_db()
    event_type_id = _setup_event_type()

    outcomes = _book_concurrently(event_type_id, 2)

    failures = [o for o in outcomes if isinstance(o, Exception)]
    successes = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], SlotNoLongerAvailable)

    db = SessionLocal()
    try:
        assert db.query(Booking).count() == 1
    finally:
        db.close()


def test_concurrent_requests_for_overlapping_slots_book_exactly_once():
    _clean_db()
    event_type_id = _setup_event_type(slot_interval_minutes=15)

    # 10:00-10:30 and 10:15-10:45 have different starts, so only the
    # booking lock keeps them apart
    outcomes = _book_concurrently(
        event_type_id, 2, starts=[MONDAY_10, MONDAY_10 + timedelta(minutes=15)]
    )

    failures = [o for o in outcomes if isinstance(o, Exception)]
    successes = [o for o in outcomes if not isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 1
    assert isinstance(failures[0], SlotNoLongerAvailable)

    db = SessionLocal()
    try:
        assert db.query(Booking).count() == 1
    finally:
        db.close()


def test_concurrent_group_bookings_never_oversell_seats():
    _clean_db()
    event_type_id = _setup_event_type(seats_per_slot=3)

    outcomes = _book_concurrently(event_type_id, 5)

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(successes) == 3
    assert all(isinstance(f, SeatsExhausted) for f in failures)
    assert sorted(s.booking.seat_number for s in successes) == [0, 1, 2]


def test_unique_index_rejects_duplicate_start_for_host():
    _clean_db()
    event_type_id = _setup_event_type()

    db = SessionLocal()
    try:
        event_type = db.get(EventType, event_type_id)

        def row(uid: str) -> Booking:
            return Booking(
                uid=uid,
                event_type_id=event_type.id,
                host_user_id=event_type.owner_id,
                start_time=datetime(2024, 1, 8, 10, 0),
                end_time=datetime(2024, 1, 8, 10, 30),
                invitee_name="Guest",
                invitee_email="guest@example.com",
                status="CONFIRMED",
                seat_number=0,
            )

        booking_store.insert_bookings(db, [row("first")])
        db.commit()

        with pytest.raises(SlotNoLongerAvailable):
            booking_store.insert_bookings(db, [row("second")])

        assert db.query(Booking).count() == 1

        # Cancelled rows do not hold the slot
        db.query(Booking).update({"status": "CANCELLED"})
        db.commit()
        booking_store.insert_bookings(db, [row("third")])
        db.commit()
        assert db.query(Booking).count() == 2
    finally:
        db.close()


def test_rotation_compare_and_set_rejects_stale_version():
    _clean_db()
    event_type_id = _setup_event_type(scheduling_type=SchedulingType.ROUND_ROBIN.value)

    db = SessionLocal()
    try:
        member = TeamMember(event_type_id=event_type_id, user_id=db.get(EventType, event_type_id).owner_id)
        db.add(member)
        db.commit()

        assert booking_store.compare_and_set_rotation(db, event_type_id, 0, member.id) is True
        db.commit()
        # Someone read version 0 before our commit
        assert booking_store.compare_and_set_rotation(db, event_type_id, 0, member.id) is False
        db.rollback()

        event_type = db.get(EventType, event_type_id)
        db.refresh(event_type)
        assert event_type.rotation_version == 1
        assert event_type.last_assigned_member_id == member.id
    finally:
        db.close()


def test_series_of_bookings_is_rolled_back_as_a_whole():
    _clean_db()
    event_type_id = _setup_event_type()

    db = SessionLocal()
    try:
        event_type = db.get(EventType, event_type_id)
        base = dict(
            event_type_id=event_type.id,
            host_user_id=event_type.owner_id,
            invitee_name="Guest",
            invitee_email="guest@example.com",
            status="CONFIRMED",
            seat_number=0,
        )
        booking_store.insert_bookings(
            db,
            [Booking(uid="taken", start_time=datetime(2024, 1, 15, 10), end_time=datetime(2024, 1, 15, 10, 30), **base)],
        )
        db.commit()

        series = [
            Booking(
                uid=f"s{i}",
                start_time=datetime(2024, 1, 8, 10) + timedelta(days=7 * i),
                end_time=datetime(2024, 1, 8, 10, 30) + timedelta(days=7 * i),
                **base,
            )
            for i in range(3)
        ]
        with pytest.raises(SlotNoLongerAvailable):
            booking_store.insert_bookings(db, series)

        assert db.query(Booking).count() == 1
    finally:
        db.close()
