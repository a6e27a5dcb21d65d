"""
Appointment service for rescheduling, cancellation and lookups.

Rescheduling and cancelling both free a seat; once their transaction commits
the head of the service's waitlist is offered a hold.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session, joinedload

from api.responses import AppointmentDetails, AppointmentListResponse, PaginationMeta
from auth.permissions import require_owner_or_privileged
from auth.user_context import AuthenticatedUser
from core.database import read_only, transaction
from core.exceptions import (
    AppointmentNotFoundError,
    InvalidRangeError,
    InvalidStateError,
    NoOpError,
    ServiceMismatchError,
    SlotNotFoundError,
)
from models import (
    Appointment, AppointmentStatus, AppointmentStatusEventType, AppointmentStatusHistory,
)
from services.notification_service import notification_emitter
from services.queue_service import QueueService
from services.slot_occupancy_service import SlotOccupancyService
from utils.datetime_utils import resolve_timezone, utc_now, validate_optional_range
from utils.pagination import normalize_pagination

logger = logging.getLogger(__name__)


def _load_authorized_appointment(db: Session, appointment_id: str, actor: AuthenticatedUser) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if not appointment:
        raise AppointmentNotFoundError(appointment_id=appointment_id)
    require_owner_or_privileged(actor, appointment.user_id)
    return appointment


def _ensure_not_cancelled(appointment: Appointment) -> None:
    if appointment.status == AppointmentStatus.CANCELLED:
        raise InvalidStateError(
            "This appointment has already been cancelled.",
            appointment_id=appointment.id,
            status=appointment.status.value,
        )


def _lock_appointment(db: Session, appointment_id: str) -> Appointment:
    appointment = db.query(Appointment).filter(
        Appointment.id == appointment_id
    ).with_for_update().populate_existing().first()
    if not appointment:
        raise AppointmentNotFoundError(appointment_id=appointment_id)
    return appointment


class AppointmentService:
    """
    Service class for appointment lifecycle operations after booking.

    Contains the reschedule and cancel flows plus the read operations used by
    owners and staff.
    """

    @staticmethod
    def reschedule(
        db: Session,
        appointment_id: str,
        actor: AuthenticatedUser,
        new_slot_id: str,
        timezone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Move an appointment to another slot of the same service.

        Both slots are locked in id order. The appointment's own seat is not
        counted against the new slot's capacity. After commit the old slot's
        seat is offered to the waitlist.

        Args:
            db: Database session
            appointment_id: Appointment to move
            actor: Owner, or an ADMIN/SPECIALIST
            new_slot_id: Target slot
            timezone: Display timezone, defaults to the new slot's timezone
            notes: Replaces the appointment notes when given

        Returns:
            The updated appointment

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            ForbiddenError: If the actor may not manage it
            InvalidStateError: If it is cancelled
            SlotNotFoundError: If the new slot does not exist
            ServiceMismatchError: If the new slot belongs to another service
            NoOpError: If the new slot is the current slot
            SlotUnavailableError: If the new slot is cancelled or past its cutoff
            SlotFullError: If the new slot has no seat left
        """
        if timezone:
            resolve_timezone(timezone)

        with transaction(db):
            appointment = _load_authorized_appointment(db, appointment_id, actor)
            _ensure_not_cancelled(appointment)

            locked_slots = SlotOccupancyService.lock_slots(db, [appointment.slot_id, new_slot_id])
            new_slot = locked_slots.get(new_slot_id)
            if new_slot is None:
                raise SlotNotFoundError(slot_id=new_slot_id)

            appointment = _lock_appointment(db, appointment_id)
            _ensure_not_cancelled(appointment)

            if new_slot.service_id != appointment.service_id:
                raise ServiceMismatchError(slot_id=new_slot_id, service_id=appointment.service_id)
            if new_slot.id == appointment.slot_id:
                raise NoOpError(appointment_id=appointment.id, slot_id=new_slot_id)

            previous_slot_id = appointment.slot_id
            previous_slot = locked_slots.get(previous_slot_id) if previous_slot_id else None
            if previous_slot_id and previous_slot is None:
                # Appointment moved between the read and the lock
                previous_slot = SlotOccupancyService.lock_slot(db, previous_slot_id)

            SlotOccupancyService.ensure_bookable(new_slot, utc_now())
            SlotOccupancyService.ensure_capacity(db, new_slot, exclude_appointment_id=appointment.id)

            appointment.slot_id = new_slot.id
            appointment.scheduled_at = new_slot.start_at
            appointment.timezone = timezone or new_slot.timezone
            if notes is not None:
                appointment.notes = notes
            db.flush()

            db.add(AppointmentStatusHistory(
                appointment_id=appointment.id,
                event=AppointmentStatusEventType.RESCHEDULED,
                from_status=appointment.status,
                to_status=appointment.status,
                notes=notes,
                changed_by_user_id=actor.id,
            ))

            if previous_slot is not None:
                SlotOccupancyService.recompute_slot_status(db, previous_slot)
            SlotOccupancyService.recompute_slot_status(db, new_slot)

        logger.info(
            f"Rescheduled appointment {appointment.id} from slot {previous_slot_id} to {new_slot.id} by {actor.id}"
        )
        notification_emitter.appointment_rescheduled(
            appointment.id,
            appointment.user_id,
            appointment.service_id,
            previous_slot_id,
            appointment.slot_id,
            appointment.scheduled_at,
        )
        if previous_slot_id:
            QueueService.promote_next(db, appointment.service_id)
        return appointment

    @staticmethod
    def cancel(
        db: Session,
        appointment_id: str,
        actor: AuthenticatedUser,
        reason: Optional[str] = None,
    ) -> Appointment:
        """
        Cancel an appointment and offer its seat to the waitlist.

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            ForbiddenError: If the actor may not manage it
            InvalidStateError: If it is already cancelled
        """
        with transaction(db):
            appointment = _load_authorized_appointment(db, appointment_id, actor)
            _ensure_not_cancelled(appointment)

            slot = SlotOccupancyService.lock_slot(db, appointment.slot_id) if appointment.slot_id else None
            appointment = _lock_appointment(db, appointment_id)
            _ensure_not_cancelled(appointment)

            previous_status = appointment.status
            appointment.status = AppointmentStatus.CANCELLED
            if reason is not None:
                appointment.notes = reason
            db.flush()

            db.add(AppointmentStatusHistory(
                appointment_id=appointment.id,
                event=AppointmentStatusEventType.CANCELLED,
                from_status=previous_status,
                to_status=AppointmentStatus.CANCELLED,
                notes=reason,
                changed_by_user_id=actor.id,
            ))

            if slot is not None:
                SlotOccupancyService.recompute_slot_status(db, slot)

        if actor.owns(appointment.user_id):
            logger.info(f"User {actor.id} cancelled appointment {appointment.id}")
        else:
            logger.info(f"Staff {actor.id} cancelled appointment {appointment.id} of user {appointment.user_id}")

        notification_emitter.appointment_cancelled(
            appointment.id, appointment.user_id, appointment.service_id, appointment.slot_id, reason
        )
        QueueService.promote_next(db, appointment.service_id)
        return appointment

    @staticmethod
    def get_appointment(db: Session, appointment_id: str, actor: AuthenticatedUser) -> Appointment:
        """
        Get one appointment visible to the actor.

        Raises:
            AppointmentNotFoundError: If the appointment does not exist
            ForbiddenError: If the actor neither owns it nor is privileged
        """
        with read_only(db):
            return _load_authorized_appointment(db, appointment_id, actor)

    @staticmethod
    def list_appointments(
        db: Session,
        page: int = 1,
        limit: Optional[int] = None,
        user_id: Optional[str] = None,
        service_id: Optional[str] = None,
        status: Optional[AppointmentStatus | str] = None,
        scheduled_from: Optional[str | datetime] = None,
        scheduled_to: Optional[str | datetime] = None,
    ) -> AppointmentListResponse:
        """
        List appointments, newest scheduled_at first.

        Args:
            db: Database session
            page: 1-based page number
            limit: Page size, defaults to 25 and is capped at 100
            user_id: Only this owner's appointments
            service_id: Only appointments of this service
            status: Only appointments in this status
            scheduled_from: Inclusive lower bound on scheduled_at
            scheduled_to: Inclusive upper bound on scheduled_at

        Returns:
            AppointmentListResponse with the page and pagination metadata

        Raises:
            InvalidRangeError: If scheduled_from is after scheduled_to, or a
                filter value is malformed
        """
        page_request = normalize_pagination(page, limit)
        range_start, range_end = validate_optional_range(scheduled_from, scheduled_to, allow_equal=True)

        status_filter = None
        if status:
            try:
                status_filter = AppointmentStatus(status)
            except ValueError as e:
                raise InvalidRangeError(f"Unknown appointment status: {status}") from e

        with read_only(db):
            query = db.query(Appointment)
            if user_id:
                query = query.filter(Appointment.user_id == user_id)
            if service_id:
                query = query.filter(Appointment.service_id == service_id)
            if status_filter is not None:
                query = query.filter(Appointment.status == status_filter)
            if range_start is not None:
                query = query.filter(Appointment.scheduled_at >= range_start)
            if range_end is not None:
                query = query.filter(Appointment.scheduled_at <= range_end)

            total = query.count()
            appointments = query.options(
                joinedload(Appointment.service),
                joinedload(Appointment.slot),
                joinedload(Appointment.queue_ticket),
            ).order_by(
                Appointment.scheduled_at.desc(),
                Appointment.id.desc(),
            ).offset(page_request.offset).limit(page_request.limit).all()
            data = [AppointmentDetails.model_validate(a) for a in appointments]

        return AppointmentListResponse(
            data=data,
            meta=PaginationMeta(page=page_request.page, limit=page_request.limit, total=total),
        )
