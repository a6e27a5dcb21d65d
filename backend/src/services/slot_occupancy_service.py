"""
Slot occupancy service.

Counts active appointments on a slot and keeps the slot's denormalized
AVAILABLE/FULL status in step with that count. Every helper here runs inside
the caller's transaction and never commits.
"""

import logging
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from core.exceptions import SlotFullError, SlotNotFoundError, SlotUnavailableError
from models import Appointment, AppointmentSlot, AppointmentSlotStatus, AppointmentStatus

logger = logging.getLogger(__name__)


class SlotOccupancyService:
    """Capacity accounting for appointment slots."""

    @staticmethod
    def lock_slot(db: Session, slot_id: str) -> Optional[AppointmentSlot]:
        """Load a slot with a row lock held until the transaction ends."""
        return db.query(AppointmentSlot).filter(
            AppointmentSlot.id == slot_id
        ).with_for_update().populate_existing().first()

    @staticmethod
    def lock_slots(db: Session, slot_ids: Iterable[Optional[str]]) -> Dict[str, AppointmentSlot]:
        """
        Lock several slots in id order.

        A fixed lock order keeps two concurrent reschedules between the same
        pair of slots from deadlocking.
        """
        ids = sorted({slot_id for slot_id in slot_ids if slot_id})
        locked: Dict[str, AppointmentSlot] = {}
        for slot_id in ids:
            slot = SlotOccupancyService.lock_slot(db, slot_id)
            if slot is not None:
                locked[slot_id] = slot
        return locked

    @staticmethod
    def count_active_appointments(
        db: Session,
        slot_id: str,
        exclude_appointment_id: Optional[str] = None,
    ) -> int:
        """
        Count non-cancelled appointments on a slot.

        Pending changes in the session are flushed first so the count reflects
        this transaction's own writes.
        """
        db.flush()
        query = db.query(func.count(Appointment.id)).filter(
            Appointment.slot_id == slot_id,
            Appointment.status != AppointmentStatus.CANCELLED,
        )
        if exclude_appointment_id:
            query = query.filter(Appointment.id != exclude_appointment_id)
        return query.scalar() or 0

    @staticmethod
    def count_active_by_slot(db: Session, slot_ids: List[str]) -> Dict[str, int]:
        """Batch version of count_active_appointments for read paths."""
        if not slot_ids:
            return {}
        rows = db.query(Appointment.slot_id, func.count(Appointment.id)).filter(
            Appointment.slot_id.in_(slot_ids),
            Appointment.status != AppointmentStatus.CANCELLED,
        ).group_by(Appointment.slot_id).all()
        return {slot_id: count for slot_id, count in rows}

    @staticmethod
    def derive_status(
        current_status: AppointmentSlotStatus,
        capacity: int,
        active_count: int,
    ) -> AppointmentSlotStatus:
        """CANCELLED is kept as-is; otherwise FULL once active_count reaches capacity."""
        if current_status == AppointmentSlotStatus.CANCELLED:
            return AppointmentSlotStatus.CANCELLED
        if active_count >= capacity:
            return AppointmentSlotStatus.FULL
        return AppointmentSlotStatus.AVAILABLE

    @staticmethod
    def recompute_slot_status(db: Session, slot: AppointmentSlot) -> AppointmentSlotStatus:
        """
        Re-derive and persist a slot's occupancy status.

        Cancelled slots are terminal and never overwritten. Only writes when the
        status actually changes, so calling it twice in a row is a no-op.

        Returns:
            The slot's status after recomputation
        """
        if slot.status == AppointmentSlotStatus.CANCELLED:
            return slot.status

        active_count = SlotOccupancyService.count_active_appointments(db, slot.id)
        next_status = SlotOccupancyService.derive_status(slot.status, slot.capacity, active_count)

        if next_status != slot.status:
            logger.info(
                f"Slot {slot.id} status {slot.status.value} -> {next_status.value} "
                f"({active_count}/{slot.capacity} active)"
            )
            slot.status = next_status
            db.flush()
        return slot.status

    @staticmethod
    def ensure_bookable(slot: AppointmentSlot, now: datetime) -> None:
        """
        Check that a slot accepts new bookings at ``now``.

        Raises:
            SlotUnavailableError: If the slot is cancelled or its cutoff
                (start_at minus buffer_before_minutes) has passed
        """
        if slot.status == AppointmentSlotStatus.CANCELLED:
            raise SlotUnavailableError(slot_id=slot.id)
        if now > slot.booking_cutoff:
            logger.info(f"Rejected booking on slot {slot.id}: cutoff {slot.booking_cutoff} has passed")
            raise SlotUnavailableError(
                "The booking window for this slot has closed.",
                slot_id=slot.id,
            )

    @staticmethod
    def ensure_capacity(
        db: Session,
        slot: AppointmentSlot,
        exclude_appointment_id: Optional[str] = None,
    ) -> int:
        """
        Re-count active appointments under the slot lock and reject a full slot.

        Returns:
            The active count observed

        Raises:
            SlotFullError: If one more appointment would exceed capacity
        """
        active_count = SlotOccupancyService.count_active_appointments(
            db, slot.id, exclude_appointment_id=exclude_appointment_id
        )
        if active_count >= slot.capacity:
            logger.info(f"Rejected booking on full slot {slot.id} ({active_count}/{slot.capacity})")
            raise SlotFullError(slot_id=slot.id, capacity=slot.capacity)
        return active_count

    @staticmethod
    def require_slot(db: Session, slot_id: str) -> AppointmentSlot:
        """
        Lock and return a slot.

        Raises:
            SlotNotFoundError: If the slot does not exist
        """
        slot = SlotOccupancyService.lock_slot(db, slot_id)
        if not slot:
            raise SlotNotFoundError(slot_id=slot_id)
        return slot
