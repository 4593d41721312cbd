# booking_engine/schemas/availability.py
from datetime import date, time
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class WeeklyWindow(BaseModel):
    day_of_week: int = Field(ge=0, le=6)  # 0 = Sunday
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def check_end_after_start(self) -> "WeeklyWindow":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class WeeklyAvailabilityPayload(BaseModel):
    windows: List[WeeklyWindow]


class DateOverridePayload(BaseModel):
    date: date
    is_working: bool = True
    start_time: Optional[time] = None
    end_time: Optional[time] = None

    @model_validator(mode="after")
    def check_times(self) -> "DateOverridePayload":
        if (self.start_time is None) != (self.end_time is None):
            raise ValueError("start_time and end_time must be given together")
        if self.start_time is not None and self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self
