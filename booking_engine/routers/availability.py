# booking_engine/routers/availability.py
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from booking_engine.db.session import get_db
from booking_engine.models.user import User
from booking_engine.schemas.availability import (
    DateOverridePayload,
    WeeklyAvailabilityPayload,
)
from booking_engine.services.availability_service import (
    replace_weekly_availability,
    upsert_date_override,
)

router = APIRouter()


def _get_user_or_404(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=404, detail="User not found")
    return user


@router.put("/{user_id}/availability")
def put_weekly_availability(
        user_id: int,
        payload: WeeklyAvailabilityPayload,
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """
    Replace the user's weekly availability with the given windows.
    Times are wall-clock in the user's own timezone.
    """
    user = _get_user_or_404(db, user_id)

    try:
        windows = replace_weekly_availability(
            db,
            user_id=user.id,
            windows=[(w.day_of_week, w.start_time, w.end_time) for w in payload.windows],
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "user_id": user.id,
        "timezone": user.timezone,
        "windows": [
            {
                "id": w.id,
                "day_of_week": w.day_of_week,
                "start_time": w.start_time.isoformat(),
                "end_time": w.end_time.isoformat(),
            }
            for w in windows
        ],
    }


@router.put("/{user_id}/overrides")
def put_date_override(
        user_id: int,
        payload: DateOverridePayload,
        db: Session = Depends(get_db),
) -> Dict[str, Any]:
    """Create or replace the override for one date."""
    user = _get_user_or_404(db, user_id)

    try:
        override = upsert_date_override(
            db,
            user_id=user.id,
            day=payload.date,
            is_working=payload.is_working,
            start_time=payload.start_time,
            end_time=payload.end_time,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "id": override.id,
        "user_id": override.user_id,
        "date": override.date.isoformat(),
        "is_working": override.is_working,
        "start_time": override.start_time.isoformat() if override.start_time else None,
        "end_time": override.end_time.isoformat() if override.end_time else None,
    }
