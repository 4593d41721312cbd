# booking_engine/services/notification_service.py
import logging
from typing import Optional

import httpx

from booking_engine.config import get_settings
from booking_engine.db.session import SessionLocal
from booking_engine.models.booking import Booking
from booking_engine.services.calendar_client import get_calendar_client
from booking_engine.services.interval_service import ensure_utc
from booking_engine.services.reminder_service import schedule_booking_reminders
from booking_engine.services.twilio_client import get_twilio_client

logger = logging.getLogger(__name__)


def booking_payload(result, event_type) -> dict:
    """Webhook body for a committed booking (or series)."""
    return {
        "event": "booking.created",
        "event_type_id": event_type.id,
        "event_type_slug": event_type.slug,
        "host_user_id": result.host_user_id,
        "assigned_user_id": result.assigned_user_id,
        "participant_user_ids": list(result.participant_user_ids),
        "recurring_group_id": result.recurring_group_id,
        "bookings": [
            {
                "uid": b.uid,
                "start_time": ensure_utc(b.start_time).isoformat(),
                "end_time": ensure_utc(b.end_time).isoformat(),
                "status": b.status,
                "seat_number": b.seat_number,
            }
            for b in result.bookings
        ],
    }


class BookingNotifier:
    """
    Side effects run after a booking has been committed.

    Each channel is optional and isolated: a failing calendar gateway does
    not stop the SMS, and nothing here ever fails the booking.
    """

    def __init__(
        self,
        calendar_client=None,
        sms_client=None,
        webhook_url: Optional[str] = None,
        http_client: Optional[httpx.Client] = None,
        session_factory=None,
    ):
        self.calendar_client = calendar_client
        self.sms_client = sms_client
        self.webhook_url = webhook_url
        self._http = http_client
        # reminders are written in their own session, after the booking commit
        self._session_factory = session_factory

    def booking_created(self, result, event_type) -> None:
        channels = (
            ("calendar", self._create_calendar_events),
            ("sms", self._send_confirmation_sms),
            ("webhook", self._post_webhook),
            ("reminder", self._schedule_reminders),
        )
        for name, send in channels:
            try:
                send(result, event_type)
            except Exception:
                logger.exception(
                    "%s notification failed for booking %s", name, result.booking.uid
                )

    def _create_calendar_events(self, result, event_type) -> None:
        if self.calendar_client is None:
            return
        first = result.booking
        attendees = [{"email": first.invitee_email, "name": first.invitee_name}]
        for user_id in result.participant_user_ids:
            for booking in result.bookings:
                self.calendar_client.create_event(
                    user_id=user_id,
                    summary=f"{event_type.title} with {booking.invitee_name}",
                    start=booking.start_time,
                    end=booking.end_time,
                    attendees=attendees,
                    booking_uid=booking.uid,
                )

    def _send_confirmation_sms(self, result, event_type) -> None:
        first = result.booking
        if self.sms_client is None or not first.invitee_phone:
            return

        start = ensure_utc(first.start_time)
        body = f"Your {event_type.title} is booked for {start:%Y-%m-%d %H:%M} UTC."
        if len(result.bookings) > 1:
            body += f" ({len(result.bookings)} occurrences)"
        if first.status == "PENDING":
            body += " The host still needs to confirm."

        sid = self.sms_client.send_sms(first.invitee_phone, body)
        logger.info("Confirmation SMS %s sent for booking %s", sid, first.uid)

    def _post_webhook(self, result, event_type) -> None:
        if not self.webhook_url:
            return
        payload = booking_payload(result, event_type)
        if self._http is not None:
            response = self._http.post(self.webhook_url, json=payload)
        else:
            response = httpx.post(self.webhook_url, json=payload, timeout=10.0)
        response.raise_for_status()

    def _schedule_reminders(self, result, event_type) -> None:
        if self._session_factory is None:
            return
        db = self._session_factory()
        try:
            ids = [b.id for b in result.bookings]
            bookings = db.query(Booking).filter(Booking.id.in_(ids)).all()
            reminders = schedule_booking_reminders(db, bookings)
        finally:
            db.close()
        logger.info(
            "Scheduled %d reminder(s) for booking %s", len(reminders), result.booking.uid
        )


def get_booking_notifier() -> BookingNotifier:
    """FastAPI dependency: a notifier wired with whatever is configured."""
    settings = get_settings()

    try:
        sms_client = get_twilio_client()
    except RuntimeError as exc:
        logger.debug("SMS notifications disabled: %s", exc)
        sms_client = None

    return BookingNotifier(
        calendar_client=get_calendar_client(),
        sms_client=sms_client,
        webhook_url=settings.WEBHOOK_URL,
        session_factory=SessionLocal,
    )
