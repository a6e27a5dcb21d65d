"""
Concurrency tests: many callers racing for the same seats.

Each thread uses its own session and connection against the same database
file, so the slot lock (BEGIN IMMEDIATE on SQLite, SELECT ... FOR UPDATE on
PostgreSQL) is what keeps the capacity invariant.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from auth.user_context import AuthenticatedUser, UserRole
from core.exceptions import BookingError, SlotFullError, TicketNotFoundError
from models import AppointmentSlot, AppointmentSlotStatus
from services.appointment_service import AppointmentService
from services.availability_service import AvailabilityService
from services.booking_service import BookingService
from services.queue_service import QueueService
from services.slot_occupancy_service import SlotOccupancyService


@pytest.mark.parametrize("capacity,callers", [(1, 6), (3, 8)])
def test_capacity_never_exceeded(db_session, session_factory, service, make_slot, capacity, callers):
    slot = make_slot(service, capacity=capacity)
    service_id, slot_id = service.id, slot.id
    db_session.close()

    start = threading.Barrier(callers)

    def attempt(index: int):
        session = session_factory()
        try:
            start.wait()
            user = AuthenticatedUser(id=f"racer-{index}")
            return BookingService.book(session, user, service_id, slot_id).id
        except BookingError as e:
            return e
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=callers) as pool:
        results = list(pool.map(attempt, range(callers)))

    booked = [r for r in results if isinstance(r, str)]
    rejected = [r for r in results if isinstance(r, BookingError)]
    assert len(booked) == capacity
    assert len(rejected) == callers - capacity
    assert all(isinstance(r, SlotFullError) for r in rejected)

    verify = session_factory()
    try:
        assert SlotOccupancyService.count_active_appointments(verify, slot_id) == capacity
        assert verify.get(AppointmentSlot, slot_id).status == AppointmentSlotStatus.FULL
    finally:
        verify.close()


def test_concurrent_joins_get_dense_positions(db_session, session_factory, service):
    service_id = service.id
    db_session.close()

    start = threading.Barrier(6)

    def join(index: int) -> int:
        session = session_factory()
        try:
            start.wait()
            ticket = QueueService.create_ticket(session, AuthenticatedUser(id=f"waiter-{index}"), service_id)
            return ticket.position
        finally:
            session.close()

    with ThreadPoolExecutor(max_workers=6) as pool:
        positions = sorted(pool.map(join, range(6)))

    assert positions == [1, 2, 3, 4, 5, 6]


class TestReadersDoNotBlockWriters:
    """A session kept open after a read must not hold up bookings elsewhere."""

    def test_booking_while_availability_reader_stays_open(self, db_session, session_factory, service, make_slot):
        slot = make_slot(service, capacity=2)
        reader = session_factory()
        writer = session_factory()
        try:
            assert AvailabilityService.get_availability(reader, service.id)[0].available == 2
            assert not reader.in_transaction()

            appointment = BookingService.book(writer, AuthenticatedUser(id="writer"), service.id, slot.id)

            assert appointment.slot_id == slot.id
            assert AvailabilityService.get_availability(reader, service.id)[0].available == 1
        finally:
            reader.close()
            writer.close()

    def test_lookups_end_their_transaction(self, db_session, session_factory, service, make_slot, client_user):
        slot = make_slot(service, capacity=2)
        appointment = BookingService.book(db_session, client_user, service.id, slot.id)
        ticket = QueueService.create_ticket(db_session, client_user, service.id)
        reader = session_factory()
        try:
            AppointmentService.get_appointment(reader, appointment.id, client_user)
            assert not reader.in_transaction()
            AppointmentService.list_appointments(reader, user_id=client_user.id)
            assert not reader.in_transaction()
            QueueService.get_ticket(reader, ticket.id, client_user)
            assert not reader.in_transaction()
            QueueService.list_tickets(reader, service_id=service.id)
            assert not reader.in_transaction()

            QueueService.create_ticket(db_session, AuthenticatedUser(id="late-joiner"), service.id)
        finally:
            reader.close()

    def test_missing_ticket_leaves_no_open_transaction(self, db_session, session_factory, service):
        staff = AuthenticatedUser(id="staff", role=UserRole.ADMIN)
        reader = session_factory()
        try:
            with pytest.raises(TicketNotFoundError):
                QueueService.update_status(reader, "missing-ticket", staff, "CANCELLED")
            assert not reader.in_transaction()

            ticket = QueueService.create_ticket(db_session, AuthenticatedUser(id="joiner"), service.id)
            assert ticket.position == 1
        finally:
            reader.close()
