from datetime import datetime
from enum import Enum

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from booking_engine.models.base import Base


class BookingStatus(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"
    COMPLETED = "COMPLETED"


# Statuses that occupy the host's time
ACTIVE_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)

_ACTIVE_PREDICATE = text("status IN ('PENDING', 'CONFIRMED')")


class Booking(Base):
    """
    One meeting occurrence.

    Times are stored as naive UTC. buffer_before/after are copied from the
    event type at booking time so later edits to the event type do not move
    the time this booking blocks.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        # Two active bookings for one host can never share a start unless they
        # are distinct seats of a group event.
        Index(
            "uq_bookings_host_start_seat",
            "host_user_id",
            "start_time",
            "seat_number",
            unique=True,
            sqlite_where=_ACTIVE_PREDICATE,
            postgresql_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_bookings_host_time", "host_user_id", "start_time", "end_time"),
    )

    id = Column(Integer, primary_key=True, index=True)
    uid = Column(String(36), nullable=False, unique=True, index=True)

    event_type_id = Column(
        Integer,
        ForeignKey("event_types.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    host_user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    # Set for round-robin assignments; empty for solo, collective and
    # (until bound later) managed bookings.
    assigned_user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=False)
    buffer_before_minutes = Column(Integer, nullable=False, default=0)
    buffer_after_minutes = Column(Integer, nullable=False, default=0)
    timezone = Column(String(64), nullable=False, default="UTC")

    invitee_name = Column(String(255), nullable=False)
    invitee_email = Column(String(255), nullable=False)
    invitee_phone = Column(String(50), nullable=True)
    notes = Column(Text, nullable=True)

    status = Column(String(16), nullable=False, default=BookingStatus.CONFIRMED.value)
    seat_number = Column(Integer, nullable=False, default=0)

    # Recurring series
    recurring_group_id = Column(String(36), nullable=True, index=True)
    recurring_index = Column(Integer, nullable=True)
    recurring_count = Column(Integer, nullable=True)
    recurring_frequency = Column(String(16), nullable=True)
    recurring_interval = Column(Integer, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    event_type = relationship("EventType", backref="bookings")
    host = relationship("User", foreign_keys=[host_user_id])
    assigned_user = relationship("User", foreign_keys=[assigned_user_id])
    participants = relationship(
        "BookingParticipant",
        back_populates="booking",
        cascade="all, delete-orphan",
    )


class BookingParticipant(Base):
    """
    A team member who attends a booking they do not host.

    Collective bookings are stored once, under the first member; every other
    member gets a row here so the booking shows up in their busy time.
    """

    __tablename__ = "booking_participants"
    __table_args__ = (
        UniqueConstraint("booking_id", "user_id", name="uq_booking_participant"),
    )

    id = Column(Integer, primary_key=True, index=True)

    booking_id = Column(
        Integer,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    booking = relationship("Booking", back_populates="participants")
    user = relationship("User")
