# booking_engine/errors.py
from typing import Any, Dict, Optional


class BookingError(Exception):
    """
    Base class for booking gate failures.

    Each subclass carries a stable `code` for clients and the HTTP status the
    API layer should answer with.
    """

    code = "booking_error"
    status_code = 400

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, **self.details}


class EventTypeNotFound(BookingError):
    code = "event_type_not_found"
    status_code = 404


class SeriesNotFound(BookingError):
    code = "series_not_found"
    status_code = 404


class InvalidBookingRequest(BookingError):
    code = "invalid_booking_request"


class RecurringNotAllowed(BookingError):
    code = "recurring_not_allowed"


class MinimumNoticeViolation(BookingError):
    code = "minimum_notice_violation"


class OutsideBookingWindow(BookingError):
    code = "outside_booking_window"


class RecurringWindowExceeded(BookingError):
    code = "recurring_window_exceeded"


class SlotNoLongerAvailable(BookingError):
    code = "slot_no_longer_available"
    status_code = 409


class NoTeamMemberAvailable(BookingError):
    code = "no_team_member_available"
    status_code = 409


class DailyLimitExceeded(BookingError):
    code = "daily_limit_exceeded"
    status_code = 409


class SeatsExhausted(BookingError):
    code = "seats_exhausted"
    status_code = 409


class RecurringConflict(BookingError):
    """One occurrence of a recurring request could not be booked."""

    code = "recurring_conflict"
    status_code = 409

    def __init__(self, occurrence_index: int, reason: Optional[BookingError] = None):
        message = f"Occurrence {occurrence_index + 1} of the series is not available"
        if reason is not None:
            message = f"{message}: {reason.message}"
        super().__init__(
            message,
            occurrence_index=occurrence_index,
            reason=reason.code if reason is not None else None,
        )
        self.occurrence_index = occurrence_index
        self.reason = reason


class RotationPointerConflict(BookingError):
    """A concurrent round-robin commit moved the rotation pointer first."""

    code = "rotation_pointer_conflict"
    status_code = 409


class ExternalBusyFetchDegraded(BookingError):
    """
    Calendar busy lookup failed; treated as "no external busy time".

    Never raised. Its code tags the warning logged for each degraded lookup.
    """

    code = "external_busy_fetch_degraded"
