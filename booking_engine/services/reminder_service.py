# booking_engine/services/reminder_service.py
"""
Booking reminders.

Scheduling stores one row per (booking, offset) right after a booking is
committed. A periodic tick (scripts/reminder_tick.py) sends whatever is due
over SMS and records the outcome on the row.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

from sqlalchemy.orm import Session

from booking_engine.models.booking import Booking, BookingStatus
from booking_engine.models.reminder import BookingReminder, ReminderStatus
from booking_engine.services.interval_service import ensure_utc, to_db_time, utcnow

logger = logging.getLogger(__name__)

REMINDER_HOURS_BEFORE = (24, 1)


def schedule_booking_reminders(
    db: Session,
    bookings: Sequence[Booking],
    now: Optional[datetime] = None,
) -> List[BookingReminder]:
    """
    Create the pending reminders for confirmed bookings.

    Offsets already in the past are skipped, as are offsets that already
    have a row for that booking. PENDING bookings get reminders once the
    host confirms them, not here.
    """
    now = ensure_utc(now) if now else utcnow()

    created: List[BookingReminder] = []
    for booking in bookings:
        if booking.status != BookingStatus.CONFIRMED.value:
            continue

        existing = {
            row[0]
            for row in db.query(BookingReminder.hours_before)
            .filter(BookingReminder.booking_id == booking.id)
            .all()
        }
        start = ensure_utc(booking.start_time)
        for hours in REMINDER_HOURS_BEFORE:
            remind_at = start - timedelta(hours=hours)
            if hours in existing or remind_at <= now:
                continue
            created.append(
                BookingReminder(
                    booking_id=booking.id,
                    hours_before=hours,
                    remind_at=to_db_time(remind_at),
                )
            )

    db.add_all(created)
    db.commit()
    return created


def _reminder_body(booking: Booking, hours_before: int) -> str:
    title = booking.event_type.title if booking.event_type else "meeting"
    when = "1 hour" if hours_before == 1 else f"{hours_before} hours"
    start = ensure_utc(booking.start_time)
    return f"Reminder: your {title} starts in {when} ({start:%Y-%m-%d %H:%M} UTC)."


def send_due_reminders(
    db: Session,
    sms_client,
    now: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> int:
    """
    Send every pending reminder whose time has come. Returns how many went out.

    Reminders for bookings that were cancelled, have already started or have
    no phone number are marked SKIPPED. A send that raises is marked FAILED
    and the batch carries on.
    """
    now = ensure_utc(now) if now else utcnow()

    query = (
        db.query(BookingReminder)
        .filter(
            BookingReminder.status == ReminderStatus.PENDING.value,
            BookingReminder.remind_at <= to_db_time(now),
        )
        .order_by(BookingReminder.remind_at.asc(), BookingReminder.id.asc())
    )
    if limit is not None:
        query = query.limit(limit)

    sent = 0
    for reminder in query.all():
        booking = reminder.booking

        if booking.status != BookingStatus.CONFIRMED.value:
            reminder.status = ReminderStatus.SKIPPED.value
            reminder.error = f"booking is {booking.status}"
        elif ensure_utc(booking.start_time) <= now:
            reminder.status = ReminderStatus.SKIPPED.value
            reminder.error = "booking already started"
        elif not booking.invitee_phone:
            reminder.status = ReminderStatus.SKIPPED.value
            reminder.error = "no invitee phone"
        else:
            try:
                sid = sms_client.send_sms(
                    booking.invitee_phone,
                    _reminder_body(booking, reminder.hours_before),
                )
            except Exception as exc:
                logger.exception("Reminder %s for booking %s failed", reminder.id, booking.uid)
                reminder.status = ReminderStatus.FAILED.value
                reminder.error = str(exc)
            else:
                reminder.status = ReminderStatus.SENT.value
                reminder.provider_message_id = sid
                reminder.sent_at = to_db_time(now)
                sent += 1

        db.commit()

    return sent
