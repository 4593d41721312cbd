from datetime import datetime
from enum import Enum

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship

from booking_engine.models.base import Base


class ReminderStatus(str, Enum):
    PENDING = "PENDING"
    SENT = "SENT"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class BookingReminder(Base):
    """A reminder due `hours_before` hours ahead of a booking, stored as naive UTC."""

    __tablename__ = "booking_reminders"
    __table_args__ = (
        # one reminder per booking and offset, however often scheduling runs
        UniqueConstraint("booking_id", "hours_before", name="uq_booking_reminder_offset"),
    )

    id = Column(Integer, primary_key=True, index=True)

    booking_id = Column(
        Integer,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    hours_before = Column(Integer, nullable=False)
    remind_at = Column(DateTime, nullable=False, index=True)

    status = Column(String(16), nullable=False, default=ReminderStatus.PENDING.value)
    provider_message_id = Column(String(64), nullable=True)
    error = Column(Text, nullable=True)
    sent_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    booking = relationship("Booking", backref="reminders")
