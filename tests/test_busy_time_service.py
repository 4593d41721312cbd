# tests/test_busy_time_service.py
import logging
import time
from datetime import datetime, timezone

from booking_engine.services.busy_time_service import (
    fetch_external_busy_many,
    fetch_external_busy_times,
)
from booking_engine.services.interval_service import BusyTime

WINDOW = BusyTime(
    datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc),
    datetime(2024, 1, 8, 12, 0, tzinfo=timezone.utc),
)


class FakeCalendarClient:
    def __init__(self, busy_by_user=None, failing_users=(), slow_users=()):
        self.busy_by_user = busy_by_user or {}
        self.failing_users = set(failing_users)
        self.slow_users = set(slow_users)
        self.calls = []

    def fetch_busy_times(self, user_id, start, end):
        self.calls.append((user_id, start, end))
        if user_id in self.failing_users:
            raise ConnectionError("calendar provider unreachable")
        if user_id in self.slow_users:
            time.sleep(1.0)
        return self.busy_by_user.get(user_id, [])


def test_no_client_means_no_external_busy_time():
    assert fetch_external_busy_many(None, [(1, WINDOW), (2, WINDOW)]) == [[], []]


def test_results_come_back_in_request_order():
    busy_1 = BusyTime(
        datetime(2024, 1, 8, 10, 0, tzinfo=timezone.utc),
        datetime(2024, 1, 8, 11, 0, tzinfo=timezone.utc),
    )
    client = FakeCalendarClient(busy_by_user={1: [busy_1]})

    results = fetch_external_busy_many(client, [(2, WINDOW), (1, WINDOW)], timeout=1.0)

    assert results == [[], [busy_1]]
    assert sorted(c[0] for c in client.calls) == [1, 2]


def test_naive_busy_times_are_normalized_to_utc():
    naive = BusyTime(datetime(2024, 1, 8, 10, 0), datetime(2024, 1, 8, 11, 0))
    client = FakeCalendarClient(busy_by_user={1: [naive]})

    [busy] = fetch_external_busy_times(client, 1, WINDOW, timeout=1.0)

    assert busy.start.tzinfo is not None
    assert busy.start == datetime(2024, 1, 8, 10, 0, tzinfo=timezone.utc)


def test_failing_provider_degrades_to_empty_and_logs(caplog):
    client = FakeCalendarClient(failing_users={2})

    with caplog.at_level(logging.WARNING):
        results = fetch_external_busy_many(client, [(1, WINDOW), (2, WINDOW)], timeout=1.0)

    assert results == [[], []]
    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.WARNING]
    assert len(messages) == 1
    assert messages[0].startswith(
        "[external_busy_fetch_degraded] Calendar busy lookup for user 2 degraded"
    )


def test_slow_provider_times_out_and_degrades():
    client = FakeCalendarClient(slow_users={1})

    started = time.monotonic()
    results = fetch_external_busy_many(client, [(1, WINDOW)], timeout=0.05)
    elapsed = time.monotonic() - started

    assert results == [[]]
    assert elapsed < 0.9
