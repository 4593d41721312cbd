# booking_engine/routers/bookings.py
from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from booking_engine.db.session import get_db
from booking_engine.errors import BookingError
from booking_engine.models.booking import Booking
from booking_engine.schemas.booking import BookingCreate, BookingCreated, BookingOut
from booking_engine.services.booking_service import (
    BookingRequest,
    RecurringOptions,
    create_booking,
    get_recurring_series,
)
from booking_engine.services.calendar_client import get_calendar_client
from booking_engine.services.interval_service import ensure_utc
from booking_engine.services.notification_service import get_booking_notifier

router = APIRouter()


def _booking_out(b: Booking) -> BookingOut:
    return BookingOut(
        uid=b.uid,
        event_type_id=b.event_type_id,
        host_user_id=b.host_user_id,
        assigned_user_id=b.assigned_user_id,
        start_time=ensure_utc(b.start_time),
        end_time=ensure_utc(b.end_time),
        status=b.status,
        seat_number=b.seat_number,
        timezone=b.timezone,
        recurring_group_id=b.recurring_group_id,
        recurring_index=b.recurring_index,
        recurring_count=b.recurring_count,
    )


@router.post("", response_model=BookingCreated, status_code=201)
def post_booking(
        payload: BookingCreate,
        db: Session = Depends(get_db),
        calendar_client=Depends(get_calendar_client),
        notifier=Depends(get_booking_notifier),
) -> BookingCreated:
    """
    Book a slot (or a recurring series).

    All availability checks run again here; a 409 means the slot was taken
    since it was listed.
    """
    recurring = None
    if payload.recurring is not None:
        recurring = RecurringOptions(
            count=payload.recurring.count,
            frequency=payload.recurring.frequency,
            interval=payload.recurring.interval,
        )

    request = BookingRequest(
        event_type_id=payload.event_type_id,
        start_time=payload.start_time,
        invitee_name=payload.invitee_name,
        invitee_email=payload.invitee_email,
        invitee_phone=payload.invitee_phone,
        timezone=payload.timezone,
        notes=payload.notes,
        recurring=recurring,
    )

    try:
        result = create_booking(
            db,
            request,
            calendar_client=calendar_client,
            notifier=notifier,
        )
    except BookingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except (ValueError, KeyError) as e:
        # KeyError: a stored host timezone that is not a known IANA zone
        raise HTTPException(status_code=400, detail=str(e))

    bookings = [_booking_out(b) for b in result.bookings]
    return BookingCreated(
        booking=bookings[0],
        bookings=bookings,
        host_user_id=result.host_user_id,
        assigned_user_id=result.assigned_user_id,
        recurring_group_id=result.recurring_group_id,
        participant_user_ids=list(result.participant_user_ids),
    )


@router.get("/series/{group_id}")
def get_series(
        group_id: str,
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """All occurrences of a recurring series, in order."""
    try:
        bookings = get_recurring_series(db, group_id)
    except BookingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())

    items: List[BookingOut] = [_booking_out(b) for b in bookings]
    return {
        "recurring_group_id": group_id,
        "count": len(items),
        "bookings": [item.model_dump(mode="json") for item in items],
    }
