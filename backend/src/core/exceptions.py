"""
Booking engine error taxonomy.

Every error raised by the booking, rescheduling and queue services is an
HTTPException subclass carrying a stable error code, so a transport layer can
return it unchanged and callers (and tests) can branch on ``detail["error"]``
instead of the human-readable message.
"""

from typing import Any, Dict, Optional

from fastapi import HTTPException, status


class BookingError(HTTPException):
    """Base class for all booking engine errors."""

    code: str = "booking_error"
    status_code_default: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Booking request failed."

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context = context
        detail: Dict[str, Any] = {"error": self.code, "message": self.message}
        detail.update(context)
        super().__init__(status_code=self.status_code_default, detail=detail)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


class NotFoundError(BookingError):
    """A referenced entity does not exist."""
    code = "not_found"
    status_code_default = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."


class SlotNotFoundError(NotFoundError):
    code = "slot_not_found"
    default_message = "Appointment slot not found."


class AppointmentNotFoundError(NotFoundError):
    code = "appointment_not_found"
    default_message = "Appointment not found."


class TicketNotFoundError(NotFoundError):
    code = "ticket_not_found"
    default_message = "Queue ticket not found."


class ServiceNotFoundError(NotFoundError):
    code = "service_not_found"
    default_message = "Service not found."


class ForbiddenError(BookingError):
    code = "forbidden"
    status_code_default = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to perform this action."


class InvalidRangeError(BookingError):
    """Malformed or misordered time range, or other malformed input."""
    code = "invalid_range"
    default_message = "The start of the range must be before the end."


class InvalidStateError(BookingError):
    """The requested transition is not allowed from the current state."""
    code = "invalid_state"
    status_code_default = status.HTTP_409_CONFLICT
    default_message = "This action is not allowed in the current state."


class NoOpError(BookingError):
    code = "no_op"
    default_message = "The appointment is already booked on this slot."


class SlotUnavailableError(BookingError):
    """Slot is cancelled or its booking cutoff has passed."""
    code = "slot_unavailable"
    status_code_default = status.HTTP_409_CONFLICT
    default_message = "The selected slot is no longer available."


class SlotFullError(BookingError):
    code = "slot_full"
    status_code_default = status.HTTP_409_CONFLICT
    default_message = "The selected slot has reached its capacity."


class ServiceMismatchError(BookingError):
    code = "service_mismatch"
    default_message = "The selected slot belongs to a different service."


class TicketNotActiveError(BookingError):
    code = "ticket_not_active"
    status_code_default = status.HTTP_409_CONFLICT
    default_message = "The queue ticket is no longer active."


class InternalBookingError(BookingError):
    """Unexpected persistence failure (connection loss, deadlock, ...)."""
    code = "internal_error"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "The booking could not be completed."
