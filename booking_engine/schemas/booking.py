# booking_engine/schemas/booking.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

FrequencyCode = Literal["daily", "weekly", "biweekly", "monthly", "custom"]


class RecurringPayload(BaseModel):
    count: int = Field(ge=1)
    frequency: Optional[FrequencyCode] = None
    interval: Optional[int] = Field(default=None, ge=1)


class BookingCreate(BaseModel):
    event_type_id: int
    start_time: datetime
    invitee_name: str
    invitee_email: str
    invitee_phone: Optional[str] = None
    timezone: str = "UTC"
    notes: Optional[str] = None
    recurring: Optional[RecurringPayload] = None

    @field_validator("invitee_name")
    def validate_name(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("invitee_name must not be empty")
        return v


class BookingOut(BaseModel):
    uid: str
    event_type_id: int
    host_user_id: int
    assigned_user_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    status: str
    seat_number: int
    timezone: str
    recurring_group_id: Optional[str] = None
    recurring_index: Optional[int] = None
    recurring_count: Optional[int] = None


class BookingCreated(BaseModel):
    booking: BookingOut
    bookings: List[BookingOut]
    host_user_id: int
    assigned_user_id: Optional[int] = None
    recurring_group_id: Optional[str] = None
    participant_user_ids: List[int]


class SlotOut(BaseModel):
    start_time: datetime
    end_time: datetime


class SlotsResponse(BaseModel):
    event_type_id: int
    timezone: str
    # invitee-local date (YYYY-MM-DD) -> slots
    slots: dict[str, List[SlotOut]]
