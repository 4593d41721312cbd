# booking_engine/services/lock_service.py
import threading
import weakref
from contextlib import contextmanager
from typing import Iterable, Iterator, List

from booking_engine.errors import SlotNoLongerAvailable


def host_lock_key(user_id: int) -> str:
    return f"host:{user_id}"


def event_type_lock_key(event_type_id: int) -> str:
    return f"event-type:{event_type_id}"


class NamedLockRegistry:
    """
    Process-wide mutual exclusion keyed by name.

    Keys are always taken in sorted order so two requests touching
    overlapping host sets cannot deadlock.

    A key's lock lives only while some request holds or waits on it.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: "weakref.WeakValueDictionary[str, threading.Lock]" = weakref.WeakValueDictionary()

    def _lock_for(self, key: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, keys: Iterable[str], timeout: float) -> Iterator[None]:
        acquired: List[threading.Lock] = []
        try:
            for key in sorted(set(keys)):
                lock = self._lock_for(key)
                if not lock.acquire(timeout=timeout):
                    raise SlotNoLongerAvailable(
                        "Another booking for this time is still being processed. Please try again.",
                        lock=key,
                    )
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()


booking_locks = NamedLockRegistry()
