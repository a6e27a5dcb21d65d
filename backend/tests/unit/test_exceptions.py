"""
Unit tests for the booking error taxonomy.
"""

import pytest
from fastapi import HTTPException

from core.exceptions import (
    AppointmentNotFoundError,
    BookingError,
    ForbiddenError,
    InternalBookingError,
    InvalidRangeError,
    InvalidStateError,
    NoOpError,
    NotFoundError,
    ServiceMismatchError,
    ServiceNotFoundError,
    SlotFullError,
    SlotNotFoundError,
    SlotUnavailableError,
    TicketNotActiveError,
    TicketNotFoundError,
)


@pytest.mark.parametrize("error_cls,code,status_code", [
    (SlotNotFoundError, "slot_not_found", 404),
    (AppointmentNotFoundError, "appointment_not_found", 404),
    (TicketNotFoundError, "ticket_not_found", 404),
    (ServiceNotFoundError, "service_not_found", 404),
    (ForbiddenError, "forbidden", 403),
    (InvalidRangeError, "invalid_range", 400),
    (InvalidStateError, "invalid_state", 409),
    (NoOpError, "no_op", 400),
    (SlotUnavailableError, "slot_unavailable", 409),
    (SlotFullError, "slot_full", 409),
    (ServiceMismatchError, "service_mismatch", 400),
    (TicketNotActiveError, "ticket_not_active", 409),
    (InternalBookingError, "internal_error", 500),
])
def test_error_codes_and_status(error_cls, code, status_code):
    error = error_cls()

    assert isinstance(error, BookingError)
    assert isinstance(error, HTTPException)
    assert error.code == code
    assert error.status_code == status_code
    assert error.detail["error"] == code
    assert error.detail["message"] == error_cls.default_message


def test_not_found_errors_share_base():
    assert issubclass(SlotNotFoundError, NotFoundError)
    assert issubclass(TicketNotFoundError, NotFoundError)


def test_custom_message_and_context():
    error = SlotFullError("Slot is full", slot_id="slot-1", capacity=2)

    assert error.message == "Slot is full"
    assert error.context == {"slot_id": "slot-1", "capacity": 2}
    assert error.detail == {
        "error": "slot_full",
        "message": "Slot is full",
        "slot_id": "slot-1",
        "capacity": 2,
    }
    assert str(error) == "slot_full: Slot is full"
