"""
Integration tests for slot occupancy recomputation.
"""

from datetime import timedelta

from models import Appointment, AppointmentSlot, AppointmentSlotStatus, AppointmentStatus
from services.slot_occupancy_service import SlotOccupancyService


def _add_appointment(db_session, slot, user_id, status=AppointmentStatus.SCHEDULED):
    appointment = Appointment(
        user_id=user_id,
        service_id=slot.service_id,
        slot_id=slot.id,
        status=status,
        scheduled_at=slot.start_at,
    )
    db_session.add(appointment)
    db_session.commit()
    return appointment


class TestRecomputeSlotStatus:

    def test_marks_full_and_reopens(self, db_session, service, make_slot):
        slot = make_slot(service, capacity=2)
        first = _add_appointment(db_session, slot, "u1")
        _add_appointment(db_session, slot, "u2")

        assert SlotOccupancyService.recompute_slot_status(db_session, slot) == AppointmentSlotStatus.FULL
        db_session.commit()

        first.status = AppointmentStatus.CANCELLED
        assert SlotOccupancyService.recompute_slot_status(db_session, slot) == AppointmentSlotStatus.AVAILABLE
        db_session.commit()

        db_session.expire_all()
        assert db_session.get(AppointmentSlot, slot.id).status == AppointmentSlotStatus.AVAILABLE

    def test_is_idempotent(self, db_session, service, make_slot):
        slot = make_slot(service, capacity=1)
        _add_appointment(db_session, slot, "u1")

        first = SlotOccupancyService.recompute_slot_status(db_session, slot)
        db_session.commit()
        updated_at = slot.updated_at
        second = SlotOccupancyService.recompute_slot_status(db_session, slot)

        assert first == second == AppointmentSlotStatus.FULL
        assert not db_session.dirty
        assert slot.updated_at == updated_at

    def test_cancelled_slot_untouched(self, db_session, service, make_slot):
        slot = make_slot(service, capacity=1, status=AppointmentSlotStatus.CANCELLED)

        assert SlotOccupancyService.recompute_slot_status(db_session, slot) == AppointmentSlotStatus.CANCELLED
        assert not db_session.dirty


class TestCounting:

    def test_count_ignores_cancelled(self, db_session, service, make_slot):
        slot = make_slot(service, capacity=5)
        kept = _add_appointment(db_session, slot, "u1")
        _add_appointment(db_session, slot, "u2", status=AppointmentStatus.CONFIRMED)
        _add_appointment(db_session, slot, "u3", status=AppointmentStatus.CANCELLED)

        assert SlotOccupancyService.count_active_appointments(db_session, slot.id) == 2
        assert SlotOccupancyService.count_active_appointments(
            db_session, slot.id, exclude_appointment_id=kept.id
        ) == 1

    def test_count_sees_unflushed_changes(self, db_session, service, make_slot):
        slot = make_slot(service, capacity=5)
        db_session.add(Appointment(user_id="u1", service_id=service.id, slot_id=slot.id, scheduled_at=slot.start_at))

        assert SlotOccupancyService.count_active_appointments(db_session, slot.id) == 1

    def test_count_by_slot(self, db_session, service, make_slot):
        busy = make_slot(service, capacity=3)
        idle = make_slot(service, starts_in=timedelta(days=2))
        _add_appointment(db_session, busy, "u1")
        _add_appointment(db_session, busy, "u2")

        counts = SlotOccupancyService.count_active_by_slot(db_session, [busy.id, idle.id])

        assert counts == {busy.id: 2}
        assert SlotOccupancyService.count_active_by_slot(db_session, []) == {}

    def test_lock_slots_skips_missing_and_none(self, db_session, service, make_slot):
        slot = make_slot(service)

        locked = SlotOccupancyService.lock_slots(db_session, [None, "missing", slot.id, slot.id])

        assert list(locked) == [slot.id]
