"""
Booking service.

Turns a request for a seat in a slot into an appointment, optionally
consuming the caller's waitlist ticket. Capacity is re-checked after the slot
row is locked, so concurrent bookings of the last seat cannot both succeed.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from auth.user_context import AuthenticatedUser
from core.constants import DEFAULT_LOCALE, DEFAULT_TIMEZONE
from core.database import transaction
from core.exceptions import ServiceMismatchError
from models import Appointment, AppointmentStatus, AppointmentStatusEventType, AppointmentStatusHistory, QueueTicket
from services.notification_service import notification_emitter
from services.queue_service import QueueService
from services.slot_occupancy_service import SlotOccupancyService
from utils.datetime_utils import resolve_timezone, utc_now

logger = logging.getLogger(__name__)


class BookingService:
    """Service class for booking appointments."""

    @staticmethod
    def book(
        db: Session,
        user: AuthenticatedUser,
        service_id: str,
        slot_id: str,
        queue_ticket_id: Optional[str] = None,
        locale: Optional[str] = None,
        timezone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Appointment:
        """
        Book one seat in a slot for the user.

        Everything happens in a single transaction: a failure at any step
        leaves no appointment, no history row, no ticket change and no slot
        status change behind.

        Args:
            db: Database session
            user: Caller, who becomes the appointment owner
            service_id: Service the caller expects the slot to belong to
            slot_id: Slot to book
            queue_ticket_id: Optional waitlist ticket consumed by this booking
            locale: Appointment locale, defaults to the user's locale then "en"
            timezone: Display timezone, defaults to the slot's timezone
            notes: Free-form notes

        Returns:
            The new SCHEDULED appointment

        Raises:
            SlotNotFoundError: If the slot does not exist
            ServiceMismatchError: If the slot or ticket belongs to another service
            SlotUnavailableError: If the slot is cancelled or past its cutoff
            SlotFullError: If the slot has no seat left
            TicketNotFoundError: If queue_ticket_id does not exist
            ForbiddenError: If the ticket belongs to someone else
            TicketNotActiveError: If the ticket is no longer WAITING or NOTIFIED
            InvalidRangeError: If the timezone is unknown
        """
        if timezone:
            resolve_timezone(timezone)

        ticket: Optional[QueueTicket] = None
        with transaction(db):
            slot = SlotOccupancyService.require_slot(db, slot_id)
            if slot.service_id != service_id:
                raise ServiceMismatchError(slot_id=slot_id, service_id=service_id)

            SlotOccupancyService.ensure_bookable(slot, utc_now())
            SlotOccupancyService.ensure_capacity(db, slot)

            if queue_ticket_id:
                ticket = QueueService.claim_ticket(db, queue_ticket_id, user, service_id, slot.id)

            appointment = Appointment(
                user_id=user.id,
                service_id=service_id,
                slot_id=slot.id,
                queue_ticket_id=ticket.id if ticket else None,
                status=AppointmentStatus.SCHEDULED,
                scheduled_at=slot.start_at,
                timezone=timezone or slot.timezone or DEFAULT_TIMEZONE,
                locale=locale or user.locale or DEFAULT_LOCALE,
                notes=notes,
            )
            db.add(appointment)
            db.flush()

            db.add(AppointmentStatusHistory(
                appointment_id=appointment.id,
                event=AppointmentStatusEventType.BOOKED,
                from_status=None,
                to_status=AppointmentStatus.SCHEDULED,
                notes=notes,
                changed_by_user_id=user.id,
            ))

            SlotOccupancyService.recompute_slot_status(db, slot)

        logger.info(f"Booked appointment {appointment.id} for user {user.id} on slot {slot.id}")
        notification_emitter.appointment_booked(
            appointment.id, appointment.user_id, appointment.service_id, appointment.slot_id, appointment.scheduled_at
        )
        if ticket is not None:
            notification_emitter.queue_ticket_updated(ticket.id, ticket.user_id, ticket.service_id, ticket.status.value)
        return appointment
