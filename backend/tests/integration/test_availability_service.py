"""
Integration tests for availability lookups.
"""

import pytest
from datetime import timedelta

from core.exceptions import InvalidRangeError, ServiceNotFoundError
from models import AppointmentSlotStatus
from services.appointment_service import AppointmentService
from services.availability_service import AvailabilityService
from services.booking_service import BookingService
from services.queue_service import QueueService
from utils.datetime_utils import isoformat_utc


class TestGetAvailability:

    def test_reports_live_occupancy(self, db_session, service, make_slot, client_user, other_user):
        slot = make_slot(service, capacity=3, buffer_before_minutes=15, buffer_after_minutes=5, notes="room 2")
        BookingService.book(db_session, client_user, service.id, slot.id)
        BookingService.book(db_session, other_user, service.id, slot.id)
        QueueService.create_ticket(db_session, client_user, service.id, slot_id=slot.id)

        [view] = AvailabilityService.get_availability(db_session, service.id)

        assert view.id == slot.id
        assert view.capacity == 3
        assert view.active_count == 2
        assert view.available == 1
        assert view.status == AppointmentSlotStatus.AVAILABLE
        assert view.queue_length == 1
        assert view.buffer_before_minutes == 15
        assert view.buffer_after_minutes == 5
        assert view.notes == "room 2"

    def test_full_slot_and_cancelled_appointments(self, db_session, service, make_slot, client_user, other_user):
        slot = make_slot(service, capacity=1)
        appointment = BookingService.book(db_session, client_user, service.id, slot.id)

        [full_view] = AvailabilityService.get_availability(db_session, service.id)
        AppointmentService.cancel(db_session, appointment.id, client_user)
        [open_view] = AvailabilityService.get_availability(db_session, service.id)

        assert full_view.status == AppointmentSlotStatus.FULL
        assert full_view.available == 0
        assert open_view.status == AppointmentSlotStatus.AVAILABLE
        assert open_view.active_count == 0

    def test_sorted_and_windowed(self, db_session, service, make_slot, clock):
        later = make_slot(service, starts_in=timedelta(days=3))
        sooner = make_slot(service, starts_in=timedelta(days=1))
        make_slot(service, starts_in=timedelta(days=20))

        views = AvailabilityService.get_availability(db_session, service.id)

        assert [v.id for v in views] == [sooner.id, later.id]

    def test_explicit_window_in_timezone(self, db_session, service, make_slot, clock):
        # Slot at 09:00-10:00 UTC next day = 17:00-18:00 in Taipei
        slot = make_slot(service, starts_in=timedelta(days=1))
        make_slot(service, starts_in=timedelta(days=2))

        views = AvailabilityService.get_availability(
            db_session,
            service.id,
            range_start="2030-01-08T16:00:00",
            range_end="2030-01-08T19:00:00",
            timezone="Asia/Taipei",
        )

        assert [v.id for v in views] == [slot.id]

    def test_slots_straddling_window_edges_are_included(self, db_session, service, make_slot, clock):
        slot = make_slot(service, starts_in=timedelta(days=1), duration=timedelta(hours=2))

        views = AvailabilityService.get_availability(
            db_session,
            service.id,
            range_start=isoformat_utc(clock.now + timedelta(days=1, hours=1)),
            range_end=isoformat_utc(clock.now + timedelta(days=1, hours=5)),
        )

        assert [v.id for v in views] == [slot.id]

    def test_cancelled_slots_hidden(self, db_session, service, make_slot):
        make_slot(service, status=AppointmentSlotStatus.CANCELLED)

        assert AvailabilityService.get_availability(db_session, service.id) == []

    def test_other_services_hidden(self, db_session, make_service, make_slot):
        first = make_service()
        second = make_service()
        make_slot(second)

        assert AvailabilityService.get_availability(db_session, first.id) == []

    def test_empty_range_rejected(self, db_session, service):
        with pytest.raises(InvalidRangeError):
            AvailabilityService.get_availability(
                db_session, service.id, range_start="2030-01-09T00:00:00Z", range_end="2030-01-08T00:00:00Z"
            )

    def test_unknown_service(self, db_session):
        with pytest.raises(ServiceNotFoundError):
            AvailabilityService.get_availability(db_session, "missing")

    def test_availability_is_read_only(self, db_session, service, make_slot, client_user):
        slot = make_slot(service, capacity=1, status=AppointmentSlotStatus.FULL)

        [view] = AvailabilityService.get_availability(db_session, service.id)

        db_session.expire_all()
        assert view.status == AppointmentSlotStatus.AVAILABLE
        assert db_session.get(type(slot), slot.id).status == AppointmentSlotStatus.FULL
