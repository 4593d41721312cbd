# booking_engine/routers/slots.py
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from booking_engine.db.session import get_db
from booking_engine.errors import BookingError
from booking_engine.schemas.booking import SlotOut, SlotsResponse
from booking_engine.services.calendar_client import get_calendar_client
from booking_engine.services.slot_service import MAX_DAYS_TO_PROCESS, get_available_slots

router = APIRouter()


@router.get("", response_model=SlotsResponse)
def list_slots(
        event_type_id: int,
        from_date: date,
        days: int = Query(7, ge=1, le=MAX_DAYS_TO_PROCESS),
        timezone: str = "UTC",
        db: Session = Depends(get_db),
        calendar_client=Depends(get_calendar_client),
) -> SlotsResponse:
    """
    Offerable slots for an event type, grouped by the invitee's local date.

    Read-only; a slot listed here can still be taken before it is booked.
    """
    try:
        slots = get_available_slots(
            db,
            event_type_id,
            from_date=from_date,
            days_ahead=days,
            invitee_timezone=timezone,
            calendar_client=calendar_client,
        )
    except BookingError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_dict())
    except (ValueError, KeyError) as e:
        # KeyError: unknown IANA zone name
        raise HTTPException(status_code=400, detail=str(e))

    return SlotsResponse(
        event_type_id=event_type_id,
        timezone=timezone,
        slots={
            day.isoformat(): [SlotOut(start_time=s.start, end_time=s.end) for s in day_slots]
            for day, day_slots in slots.items()
        },
    )
