from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from booking_engine.models.base import Base


class SchedulingType(str, Enum):
    NONE = "NONE"
    ROUND_ROBIN = "ROUND_ROBIN"
    COLLECTIVE = "COLLECTIVE"
    MANAGED = "MANAGED"


class PeriodType(str, Enum):
    ROLLING = "ROLLING"  # now .. now + period_days
    RANGE = "RANGE"  # period_start_date .. period_end_date
    UNLIMITED = "UNLIMITED"


class EventType(Base):
    __tablename__ = "event_types"

    id = Column(Integer, primary_key=True, index=True)

    owner_id = Column(
        Integer,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    title = Column(String, nullable=False)
    slug = Column(String, nullable=False, index=True)

    # All durations in minutes
    duration_minutes = Column(Integer, nullable=False)
    slot_interval_minutes = Column(Integer, nullable=True)  # defaults to duration
    buffer_before_minutes = Column(Integer, nullable=False, default=0)
    buffer_after_minutes = Column(Integer, nullable=False, default=0)
    minimum_notice_minutes = Column(Integer, nullable=False, default=60)

    max_bookings_per_day = Column(Integer, nullable=True)
    seats_per_slot = Column(Integer, nullable=False, default=1)
    requires_confirmation = Column(Boolean, nullable=False, default=False)

    # Booking window
    period_type = Column(String(16), nullable=False, default=PeriodType.ROLLING.value)
    period_days = Column(Integer, nullable=True)
    period_start_date = Column(DateTime, nullable=True)
    period_end_date = Column(DateTime, nullable=True)

    # Recurring policy
    allows_recurring = Column(Boolean, nullable=False, default=False)
    recurring_max_occurrences = Column(Integer, nullable=False, default=12)
    recurring_frequency = Column(String(16), nullable=False, default="weekly")
    recurring_interval = Column(Integer, nullable=False, default=1)

    # Team scheduling
    scheduling_type = Column(
        String(32),
        nullable=False,
        default=SchedulingType.NONE.value,
    )

    # Round-robin rotation state. Only ever written through a compare-and-set
    # on rotation_version (see booking_store.compare_and_set_rotation).
    last_assigned_member_id = Column(Integer, nullable=True)
    rotation_version = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    owner = relationship("User", backref="event_types")

    @property
    def is_team_event(self) -> bool:
        return (self.scheduling_type or SchedulingType.NONE.value) != SchedulingType.NONE.value

    @property
    def is_group_event(self) -> bool:
        return (self.seats_per_slot or 1) > 1
