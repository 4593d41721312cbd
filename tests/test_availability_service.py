# tests/test_availability_service.py
from datetime import date, time

import pytest
from sqlalchemy.orm import Session

from booking_engine.db.session import engine, SessionLocal
from booking_engine.models import AvailabilityWindow, Base, DateOverride, User
from booking_engine.services.availability_service import (
    WallClockWindow,
    day_of_week,
    load_host_schedule,
    replace_weekly_availability,
    resolve_windows_for_date,
    upsert_date_override,
)

MONDAY = date(2024, 1, 8)


def _clean_db():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _window(dow: int, start: time, end: time) -> AvailabilityWindow:
    return AvailabilityWindow(user_id=1, day_of_week=dow, start_time=start, end_time=end)


def test_day_of_week_starts_on_sunday():
    assert day_of_week(date(2024, 1, 7)) == 0  # Sunday
    assert day_of_week(MONDAY) == 1
    assert day_of_week(date(2024, 1, 13)) == 6  # Saturday


def test_weekly_windows_sorted_for_matching_day():
    windows = [
        _window(1, time(13), time(17)),
        _window(1, time(9), time(12)),
        _window(2, time(9), time(17)),
    ]
    assert resolve_windows_for_date(MONDAY, windows, []) == [
        WallClockWindow(time(9), time(12)),
        WallClockWindow(time(13), time(17)),
    ]


def test_no_windows_for_day():
    assert resolve_windows_for_date(MONDAY, [_window(3, time(9), time(17))], []) == []


def test_non_working_override_blocks_day():
    windows = [_window(1, time(9), time(17))]
    overrides = [DateOverride(user_id=1, date=MONDAY, is_working=False)]
    assert resolve_windows_for_date(MONDAY, windows, overrides) == []


def test_working_override_with_times_replaces_weekly_windows():
    windows = [_window(1, time(9), time(12)), _window(1, time(13), time(17))]
    overrides = [
        DateOverride(user_id=1, date=MONDAY, is_working=True, start_time=time(14), end_time=time(16))
    ]
    assert resolve_windows_for_date(MONDAY, windows, overrides) == [
        WallClockWindow(time(14), time(16))
    ]


def test_working_override_without_times_falls_back_to_weekly():
    windows = [_window(1, time(9), time(12))]
    overrides = [DateOverride(user_id=1, date=MONDAY, is_working=True)]
    assert resolve_windows_for_date(MONDAY, windows, overrides) == [
        WallClockWindow(time(9), time(12))
    ]


def test_override_for_other_date_is_ignored():
    windows = [_window(1, time(9), time(12))]
    overrides = [DateOverride(user_id=1, date=date(2024, 1, 15), is_working=False)]
    assert resolve_windows_for_date(MONDAY, windows, overrides) == [
        WallClockWindow(time(9), time(12))
    ]


def test_replace_weekly_availability_replaces_existing():
    _clean_db()

    db: Session = SessionLocal()
    try:
        user = User(name="Host", email="host@example.com", timezone="Europe/Berlin")
        db.add(user)
        db.commit()
        db.refresh(user)

        replace_weekly_availability(
            db,
            user_id=user.id,
            windows=[(1, time(9), time(12)), (2, time(9), time(12))],
        )
        created = replace_weekly_availability(
            db,
            user_id=user.id,
            windows=[(3, time(10), time(16))],
        )

        assert len(created) == 1
        rows = db.query(AvailabilityWindow).filter_by(user_id=user.id).all()
        assert [(r.day_of_week, r.start_time, r.end_time) for r in rows] == [
            (3, time(10), time(16))
        ]

        schedule = load_host_schedule(db, user.id)
        assert schedule.timezone == "Europe/Berlin"
        assert len(schedule.windows) == 1
    finally:
        db.close()


def test_replace_weekly_availability_validates_before_deleting():
    _clean_db()

    db: Session = SessionLocal()
    try:
        user = User(name="Host", email="host@example.com")
        db.add(user)
        db.commit()
        db.refresh(user)

        replace_weekly_availability(db, user_id=user.id, windows=[(1, time(9), time(12))])

        with pytest.raises(ValueError):
            replace_weekly_availability(db, user_id=user.id, windows=[(1, time(12), time(9))])
        with pytest.raises(ValueError):
            replace_weekly_availability(db, user_id=user.id, windows=[(7, time(9), time(12))])

        assert db.query(AvailabilityWindow).filter_by(user_id=user.id).count() == 1
    finally:
        db.close()


def test_upsert_date_override_keeps_one_row_per_date():
    _clean_db()

    db: Session = SessionLocal()
    try:
        user = User(name="Host", email="host@example.com")
        db.add(user)
        db.commit()
        db.refresh(user)

        upsert_date_override(db, user_id=user.id, day=MONDAY, is_working=False)
        override = upsert_date_override(
            db,
            user_id=user.id,
            day=MONDAY,
            is_working=True,
            start_time=time(10),
            end_time=time(11),
        )

        assert db.query(DateOverride).filter_by(user_id=user.id).count() == 1
        assert override.is_working is True
        assert override.start_time == time(10)

        with pytest.raises(ValueError):
            upsert_date_override(db, user_id=user.id, day=MONDAY, is_working=True, start_time=time(10))
    finally:
        db.close()


def test_load_host_schedule_unknown_user():
    _clean_db()

    db: Session = SessionLocal()
    try:
        with pytest.raises(ValueError):
            load_host_schedule(db, 12345)
    finally:
        db.close()
