# booking_engine/services/busy_time_service.py
"""
External busy-time lookups.

Calendar providers are slow and sometimes down. Every lookup is bounded by
CALENDAR_TIMEOUT_SECONDS and a failure or timeout degrades to "no external
busy time known" instead of blocking availability or booking.
"""
import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from typing import List, Optional, Sequence, Tuple

from booking_engine.config import get_settings
from booking_engine.errors import ExternalBusyFetchDegraded
from booking_engine.services.interval_service import BusyTime, ensure_utc

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=8, thread_name_prefix="busy-fetch")


def _degraded(user_id: int, reason: str) -> List[BusyTime]:
    logger.warning(
        "[%s] Calendar busy lookup for user %s degraded: %s",
        ExternalBusyFetchDegraded.code,
        user_id,
        reason,
    )
    return []


def _normalize(busy: Sequence[BusyTime]) -> List[BusyTime]:
    return [BusyTime(start=ensure_utc(b.start), end=ensure_utc(b.end)) for b in busy]


def fetch_external_busy_many(
    calendar_client,
    requests: Sequence[Tuple[int, BusyTime]],
    timeout: Optional[float] = None,
) -> List[List[BusyTime]]:
    """
    Fetch busy intervals for several (user_id, window) pairs in parallel.

    Returns one list per request, in request order. A missing client yields
    empty lists.
    """
    if calendar_client is None or not requests:
        return [[] for _ in requests]

    if timeout is None:
        timeout = get_settings().CALENDAR_TIMEOUT_SECONDS

    futures = [
        _executor.submit(calendar_client.fetch_busy_times, user_id, window.start, window.end)
        for user_id, window in requests
    ]

    # One deadline for the whole batch, the lookups run side by side
    deadline = time.monotonic() + timeout

    results: List[List[BusyTime]] = []
    for (user_id, _), future in zip(requests, futures):
        try:
            remaining = max(0.0, deadline - time.monotonic())
            results.append(_normalize(future.result(timeout=remaining)))
        except FutureTimeoutError:
            future.cancel()
            results.append(_degraded(user_id, f"timed out after {timeout}s"))
        except Exception as exc:
            results.append(_degraded(user_id, repr(exc)))

    return results


def fetch_external_busy_times(
    calendar_client,
    user_id: int,
    window: BusyTime,
    timeout: Optional[float] = None,
) -> List[BusyTime]:
    return fetch_external_busy_many(calendar_client, [(user_id, window)], timeout)[0]
