# tests/test_slot_service.py
from datetime import date, datetime, time, timezone

import pytest

from booking_engine.models.availability import AvailabilityWindow, DateOverride
from booking_engine.models.event_type import SchedulingType
from booking_engine.services.availability_service import WallClockWindow
from booking_engine.services.interval_service import BusyTime, TimeSlot
from booking_engine.services.recurring_service import BookingWindow
from booking_engine.services.slot_service import (
    SlotOptions,
    generate_slots_for_window,
    resolve_available_slots,
    resolve_team_available_slots,
)

MONDAY = date(2024, 1, 8)
NOW = datetime(2024, 1, 1, 0, 0, tzinfo=timezone.utc)


def _utc(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def _monday_window(start: time, end: time) -> AvailabilityWindow:
    return AvailabilityWindow(user_id=1, day_of_week=1, start_time=start, end_time=end)


def test_generate_slots_fills_window_exactly():
    slots = generate_slots_for_window(
        MONDAY,
        WallClockWindow(time(9, 0), time(12, 0)),
        duration=30,
        slot_interval=30,
    )

    assert len(slots) == 6
    assert slots[0] == TimeSlot(_utc(9), _utc(9, 30))
    assert slots[-1].end == _utc(12)


def test_generate_slots_drops_partial_slot():
    slots = generate_slots_for_window(
        MONDAY,
        WallClockWindow(time(9, 0), time(9, 20)),
        duration=30,
    )
    assert slots == []


def test_generate_slots_interval_shorter_than_duration():
    slots = generate_slots_for_window(
        MONDAY,
        WallClockWindow(time(9, 0), time(10, 0)),
        duration=30,
        slot_interval=15,
    )
    assert [s.start for s in slots] == [_utc(9), _utc(9, 15), _utc(9, 30)]


def test_generate_slots_uses_host_timezone():
    # 09:00 in New York in January is 14:00 UTC
    slots = generate_slots_for_window(
        MONDAY,
        WallClockWindow(time(9, 0), time(10, 0)),
        duration=60,
        host_timezone="America/New_York",
    )
    assert slots == [TimeSlot(_utc(14), _utc(15))]


def test_generate_slots_clamps_tiny_durations():
    slots = generate_slots_for_window(
        MONDAY,
        WallClockWindow(time(9, 0), time(9, 10)),
        duration=1,
    )
    # Clamped to 5 minute slots
    assert [s.start for s in slots] == [_utc(9), _utc(9, 5)]


def test_generate_slots_rejects_non_positive_duration():
    with pytest.raises(ValueError):
        generate_slots_for_window(MONDAY, WallClockWindow(time(9), time(10)), duration=0)


def test_resolve_available_slots_filters_busy_and_groups_by_invitee_date():
    result = resolve_available_slots(
        windows=[_monday_window(time(9), time(12))],
        overrides=[],
        options=SlotOptions(duration=30, minimum_notice=0),
        busy_times=[BusyTime(_utc(10), _utc(11))],
        from_date=MONDAY,
        days_ahead=1,
        invitee_timezone="Asia/Tokyo",
        now=NOW,
    )

    # 09:00 UTC is 18:00 in Tokyo, same calendar day
    assert list(result.keys()) == [MONDAY]
    starts = [s.start.hour for s in result[MONDAY]]
    assert starts == [18, 18, 20, 20]
    assert all(s.start.utcoffset().total_seconds() == 9 * 3600 for s in result[MONDAY])


def test_resolve_available_slots_invitee_date_can_shift():
    result = resolve_available_slots(
        windows=[_monday_window(time(9), time(10))],
        overrides=[],
        options=SlotOptions(duration=60),
        busy_times=[],
        from_date=MONDAY,
        days_ahead=1,
        invitee_timezone="Pacific/Honolulu",  # UTC-10
        now=NOW,
    )
    assert list(result.keys()) == [date(2024, 1, 7)]


def test_resolve_available_slots_respects_date_override():
    result = resolve_available_slots(
        windows=[_monday_window(time(9), time(12))],
        overrides=[DateOverride(user_id=1, date=MONDAY, is_working=False)],
        options=SlotOptions(duration=30),
        busy_times=[],
        from_date=MONDAY,
        days_ahead=1,
        invitee_timezone="UTC",
        now=NOW,
    )
    assert result == {}


def test_resolve_available_slots_skips_days_at_daily_limit():
    result = resolve_available_slots(
        windows=[_monday_window(time(9), time(12))],
        overrides=[],
        options=SlotOptions(duration=30, max_bookings_per_day=2),
        busy_times=[],
        from_date=MONDAY,
        days_ahead=1,
        invitee_timezone="UTC",
        now=NOW,
        bookings_per_day={MONDAY: 2},
    )
    assert result == {}


def test_resolve_available_slots_applies_minimum_notice_and_booking_window():
    now = _utc(9, 15)
    result = resolve_available_slots(
        windows=[_monday_window(time(9), time(12))],
        overrides=[],
        options=SlotOptions(duration=30, minimum_notice=45),
        busy_times=[],
        from_date=MONDAY,
        days_ahead=1,
        invitee_timezone="UTC",
        now=now,
        window=BookingWindow(end=_utc(11)),
    )
    # 10:00 is the first start >= 09:15 + 45min; 11:00 is still inside the window
    assert [s.start for s in result[MONDAY]] == [_utc(10), _utc(10, 30), _utc(11)]


def test_team_slots_collective_intersects_round_robin_unions():
    a = {MONDAY: [TimeSlot(_utc(9), _utc(9, 30)), TimeSlot(_utc(10), _utc(10, 30))]}
    b = {MONDAY: [TimeSlot(_utc(10), _utc(10, 30)), TimeSlot(_utc(11), _utc(11, 30))]}

    collective = resolve_team_available_slots(SchedulingType.COLLECTIVE, [a, b])
    round_robin = resolve_team_available_slots(SchedulingType.ROUND_ROBIN, [a, b])

    assert [s.start for s in collective[MONDAY]] == [_utc(10)]
    assert [s.start for s in round_robin[MONDAY]] == [_utc(9), _utc(10), _utc(11)]


def test_team_slots_collective_with_one_empty_member_is_empty():
    a = {MONDAY: [TimeSlot(_utc(9), _utc(9, 30))]}
    assert resolve_team_available_slots(SchedulingType.COLLECTIVE, [a, {}]) == {}
