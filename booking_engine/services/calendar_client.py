# booking_engine/services/calendar_client.py
"""
Calendar Gateway Client
Fetches busy intervals and creates events through the calendar gateway
that fronts the Google / Outlook integrations.
"""
import logging
from datetime import datetime
from typing import List, Optional

import httpx
from dateutil.parser import isoparse

from booking_engine.config import get_settings
from booking_engine.services.interval_service import BusyTime, ensure_utc

logger = logging.getLogger(__name__)


def _parse_instant(value: str) -> datetime:
    return ensure_utc(isoparse(value))


class HttpCalendarClient:
    """
    Thin wrapper around the calendar gateway's HTTP API.

    This makes it easy to:
    - centralize config (base URL, token, timeout)
    - mock in tests by replacing this class with a fake that has the same
      `fetch_busy_times` / `create_event` methods.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    def fetch_busy_times(self, user_id: int, start: datetime, end: datetime) -> List[BusyTime]:
        """
        Busy intervals for every calendar the user has connected.

        Raises on HTTP or parse errors; callers decide how to degrade.
        """
        response = self._client.get(
            f"/users/{user_id}/busy",
            params={
                "start": ensure_utc(start).isoformat(),
                "end": ensure_utc(end).isoformat(),
            },
        )
        response.raise_for_status()

        payload = response.json()
        return [
            BusyTime(start=_parse_instant(item["start"]), end=_parse_instant(item["end"]))
            for item in payload.get("busy", [])
        ]

    def create_event(
        self,
        *,
        user_id: int,
        summary: str,
        start: datetime,
        end: datetime,
        attendees: List[dict],
        booking_uid: str,
    ) -> Optional[str]:
        """Create an event on the user's primary calendar and return its id."""
        response = self._client.post(
            f"/users/{user_id}/events",
            json={
                "summary": summary,
                "start": ensure_utc(start).isoformat(),
                "end": ensure_utc(end).isoformat(),
                "attendees": attendees,
                "external_id": booking_uid,
            },
        )
        response.raise_for_status()
        event_id = response.json().get("id")
        logger.info("Calendar event %s created for booking %s", event_id, booking_uid)
        return event_id

    def close(self) -> None:
        self._client.close()


_calendar_client: Optional[HttpCalendarClient] = None


def get_calendar_client() -> Optional[HttpCalendarClient]:
    """
    FastAPI dependency returning the configured calendar client.

    Returns None when CALENDAR_API_URL is not set; the engine then assumes
    no external busy time.
    """
    global _calendar_client
    settings = get_settings()
    if not settings.CALENDAR_API_URL:
        return None
    if _calendar_client is None:
        _calendar_client = HttpCalendarClient(
            base_url=settings.CALENDAR_API_URL,
            token=settings.CALENDAR_API_TOKEN,
            timeout=settings.CALENDAR_TIMEOUT_SECONDS,
        )
    return _calendar_client
