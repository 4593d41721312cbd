# booking_engine/models/availability.py
from sqlalchemy import (
    Boolean,
    Column,
    Date,
    ForeignKey,
    Integer,
    Time,
    UniqueConstraint,
)

from booking_engine.models.base import Base


class AvailabilityWindow(Base):
    """
    Recurring weekly availability for a host.

    Example: "Mon 09:00–12:00 and Mon 13:00–17:00" turns into
    2 AvailabilityWindow rows with day_of_week=1.

    day_of_week follows the 0=Sunday ... 6=Saturday convention.
    start_time / end_time are wall-clock in the owner's timezone.
    """

    __tablename__ = "availability_windows"

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)


class DateOverride(Base):
    """
    Date-specific availability that takes precedence over the weekly windows.

    is_working=False blocks the whole day. A working override with explicit
    times replaces (does not add to) that day's weekly windows.
    """

    __tablename__ = "date_overrides"
    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_date_overrides_user_date"),
    )

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        index=True,
        nullable=False,
    )

    date = Column(Date, nullable=False)
    is_working = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
