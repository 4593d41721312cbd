from booking_engine.models.base import Base  # noqa: F401

from booking_engine.models.user import User  # noqa: F401
from booking_engine.models.availability import AvailabilityWindow, DateOverride  # noqa: F401
from booking_engine.models.event_type import EventType  # noqa: F401
from booking_engine.models.team_member import TeamMember  # noqa: F401
from booking_engine.models.booking import Booking, BookingParticipant  # noqa: F401
from booking_engine.models.reminder import BookingReminder  # noqa: F401
