"""
Waitlist queue service.

Manages queue tickets per service: joining the line, status transitions,
promotion of the head of the line into a time-limited hold, and keeping the
WAITING positions dense (1..N ordered by position, then created_at).

Every mutation locks the owning service row before touching tickets, so
position assignment and resequencing for one service never interleave.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from api.responses import PaginationMeta, QueueTicketDetails, QueueTicketListResponse
from auth.permissions import require_owner_or_privileged, require_privileged
from auth.user_context import AuthenticatedUser
from core.constants import DEFAULT_TIMEZONE, QUEUE_HOLD_DURATION_MINUTES
from core.database import read_only, transaction
from core.exceptions import (
    ForbiddenError,
    InvalidRangeError,
    InvalidStateError,
    ServiceMismatchError,
    SlotNotFoundError,
    SlotUnavailableError,
    TicketNotActiveError,
    TicketNotFoundError,
)
from models import Appointment, AppointmentSlot, AppointmentSlotStatus, QueueTicket, QueueTicketStatus
from models.queue_ticket import TERMINAL_TICKET_STATUSES
from services.notification_service import notification_emitter
from services.service_catalog import ServiceCatalog
from services.slot_occupancy_service import SlotOccupancyService
from utils.datetime_utils import resolve_timezone, utc_now, validate_optional_range
from utils.pagination import normalize_pagination

logger = logging.getLogger(__name__)


# Status changes a ticket may go through. Terminal statuses have no entry.
ALLOWED_TICKET_TRANSITIONS: Dict[QueueTicketStatus, frozenset[QueueTicketStatus]] = {
    QueueTicketStatus.WAITING: frozenset({
        QueueTicketStatus.WAITING,
        QueueTicketStatus.NOTIFIED,
        QueueTicketStatus.COMPLETED,
        QueueTicketStatus.CANCELLED,
        QueueTicketStatus.EXPIRED,
    }),
    QueueTicketStatus.NOTIFIED: frozenset({
        QueueTicketStatus.WAITING,
        QueueTicketStatus.NOTIFIED,
        QueueTicketStatus.COMPLETED,
        QueueTicketStatus.CANCELLED,
        QueueTicketStatus.EXPIRED,
    }),
}


def _coerce_ticket_status(value: QueueTicketStatus | str) -> QueueTicketStatus:
    try:
        return QueueTicketStatus(value)
    except ValueError as e:
        raise InvalidRangeError(f"Unknown queue ticket status: {value}") from e


class QueueService:
    """
    Service class for waitlist queue operations.

    All methods take the session as their first argument. Public mutations
    commit their own transaction; helpers documented as running inside the
    caller's transaction never commit.
    """

    @staticmethod
    def count_waiting(db: Session, service_id: str, exclude_ticket_id: Optional[str] = None) -> int:
        """Count WAITING tickets of a service, optionally ignoring one ticket."""
        db.flush()
        query = db.query(func.count(QueueTicket.id)).filter(
            QueueTicket.service_id == service_id,
            QueueTicket.status == QueueTicketStatus.WAITING,
        )
        if exclude_ticket_id:
            query = query.filter(QueueTicket.id != exclude_ticket_id)
        return query.scalar() or 0

    @staticmethod
    def count_waiting_by_slot(db: Session, slot_ids: List[str]) -> Dict[str, int]:
        """Number of WAITING tickets referencing each slot."""
        if not slot_ids:
            return {}
        rows = db.query(QueueTicket.slot_id, func.count(QueueTicket.id)).filter(
            QueueTicket.slot_id.in_(slot_ids),
            QueueTicket.status == QueueTicketStatus.WAITING,
        ).group_by(QueueTicket.slot_id).all()
        return {slot_id: count for slot_id, count in rows}

    @staticmethod
    def _waiting_tickets(
        db: Session,
        service_id: str,
        exclude_ticket_id: Optional[str] = None,
    ) -> List[QueueTicket]:
        db.flush()
        query = db.query(QueueTicket).filter(
            QueueTicket.service_id == service_id,
            QueueTicket.status == QueueTicketStatus.WAITING,
        )
        if exclude_ticket_id:
            query = query.filter(QueueTicket.id != exclude_ticket_id)
        return query.order_by(
            QueueTicket.position.asc(),
            QueueTicket.created_at.asc(),
            QueueTicket.id.asc(),
        ).populate_existing().all()

    @staticmethod
    def _assign_positions(db: Session, tickets: List[QueueTicket]) -> int:
        changed = 0
        for index, ticket in enumerate(tickets, start=1):
            if ticket.position != index:
                ticket.position = index
                changed += 1
        if changed:
            db.flush()
        return changed

    @staticmethod
    def resequence(db: Session, service_id: str, exclude_ticket_id: Optional[str] = None) -> int:
        """
        Renumber the WAITING tickets of a service to 1..N.

        Runs inside the caller's transaction, which must already hold the
        service lock. Only rows whose position changes are written.

        Args:
            db: Database session
            service_id: Service whose line is renumbered
            exclude_ticket_id: Ticket to leave out (e.g. one about to be deleted)

        Returns:
            Number of tickets whose position changed
        """
        tickets = QueueService._waiting_tickets(db, service_id, exclude_ticket_id)
        changed = QueueService._assign_positions(db, tickets)
        if changed:
            logger.debug(f"Resequenced {changed} queue tickets for service {service_id}")
        return changed

    @staticmethod
    def _lookup_service_id(db: Session, ticket_id: str) -> str:
        # Unlocked read so the service lock can be taken before the ticket lock
        service_id = db.query(QueueTicket.service_id).filter(QueueTicket.id == ticket_id).scalar()
        if service_id is None:
            raise TicketNotFoundError(ticket_id=ticket_id)
        return service_id

    @staticmethod
    def _lock_ticket(db: Session, ticket_id: str) -> QueueTicket:
        ticket = db.query(QueueTicket).filter(
            QueueTicket.id == ticket_id
        ).with_for_update().populate_existing().first()
        if not ticket:
            raise TicketNotFoundError(ticket_id=ticket_id)
        return ticket

    @staticmethod
    def _start_hold(ticket: QueueTicket, now: datetime) -> None:
        ticket.status = QueueTicketStatus.NOTIFIED
        ticket.notified_at = now
        ticket.expires_at = now + timedelta(minutes=QUEUE_HOLD_DURATION_MINUTES)

    @staticmethod
    def create_ticket(
        db: Session,
        user: AuthenticatedUser,
        service_id: str,
        slot_id: Optional[str] = None,
        desired_from: Optional[str | datetime] = None,
        desired_to: Optional[str | datetime] = None,
        timezone: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> QueueTicket:
        """
        Put the user at the back of a service's waitlist.

        Args:
            db: Database session
            user: Ticket owner
            service_id: Service to wait for
            slot_id: Optional preferred slot of the same service
            desired_from: Optional start of the preferred window
            desired_to: Optional end of the preferred window
            timezone: IANA timezone for naive window bounds and display
            notes: Free-form notes

        Returns:
            The new WAITING ticket

        Raises:
            ServiceNotFoundError: If the service does not exist
            SlotNotFoundError: If slot_id does not exist
            ServiceMismatchError: If the slot belongs to another service
            SlotUnavailableError: If the slot is cancelled
            InvalidRangeError: If the desired window is malformed or empty
        """
        with transaction(db):
            ServiceCatalog.lock_service(db, service_id)

            if slot_id:
                slot = db.query(AppointmentSlot).filter(AppointmentSlot.id == slot_id).first()
                if not slot:
                    raise SlotNotFoundError(slot_id=slot_id)
                if slot.service_id != service_id:
                    raise ServiceMismatchError(slot_id=slot_id, service_id=service_id)
                if slot.status == AppointmentSlotStatus.CANCELLED:
                    raise SlotUnavailableError(slot_id=slot_id)

            resolve_timezone(timezone)
            window_start, window_end = validate_optional_range(desired_from, desired_to, timezone)

            position = QueueService.count_waiting(db, service_id) + 1
            ticket = QueueTicket(
                user_id=user.id,
                service_id=service_id,
                slot_id=slot_id,
                status=QueueTicketStatus.WAITING,
                position=position,
                desired_from=window_start,
                desired_to=window_end,
                timezone=timezone or DEFAULT_TIMEZONE,
                notes=notes,
            )
            db.add(ticket)
            db.flush()

        logger.info(f"Queue ticket {ticket.id} created for user {user.id} on service {service_id} at position {position}")
        notification_emitter.queue_ticket_created(ticket.id, ticket.user_id, ticket.service_id, ticket.position)
        return ticket

    @staticmethod
    def update_status(
        db: Session,
        ticket_id: str,
        actor: AuthenticatedUser,
        new_status: QueueTicketStatus | str,
        notes: Optional[str] = None,
    ) -> QueueTicket:
        """
        Change a ticket's status.

        The owner may only cancel; ADMIN and SPECIALIST may set any status.
        NOTIFIED starts a fresh hold window, any other status clears it.
        Returning to WAITING puts the ticket at the back of the line, and
        leaving WAITING closes the gap it leaves behind. Cancelling or
        expiring a ticket offers the seat to the new head of the line when
        that ticket's preferred slot still has room.

        Raises:
            TicketNotFoundError: If the ticket does not exist
            ForbiddenError: If the actor may not make this change
            InvalidStateError: If the ticket is already terminal
        """
        target_status = _coerce_ticket_status(new_status)
        with transaction(db):
            service_id = QueueService._lookup_service_id(db, ticket_id)
            ServiceCatalog.lock_service(db, service_id)
            ticket = QueueService._lock_ticket(db, ticket_id)

            if not actor.is_privileged:
                if not actor.owns(ticket.user_id):
                    raise ForbiddenError("Access denied: you can only manage your own queue tickets")
                if target_status != QueueTicketStatus.CANCELLED:
                    raise ForbiddenError("Only admins and specialists can change a ticket to this status")

            previous_status = ticket.status
            allowed = ALLOWED_TICKET_TRANSITIONS.get(previous_status, frozenset())
            if previous_status in TERMINAL_TICKET_STATUSES or target_status not in allowed:
                raise InvalidStateError(
                    f"Queue ticket is {previous_status.value} and cannot change status",
                    ticket_id=ticket_id,
                    status=previous_status.value,
                )

            now = utc_now()
            if target_status == QueueTicketStatus.NOTIFIED:
                QueueService._start_hold(ticket, now)
            else:
                ticket.notified_at = None
                ticket.expires_at = None

            if target_status == QueueTicketStatus.WAITING and previous_status != QueueTicketStatus.WAITING:
                ticket.position = QueueService.count_waiting(db, service_id, exclude_ticket_id=ticket.id) + 1

            ticket.status = target_status
            if notes is not None:
                ticket.notes = notes
            db.flush()

            if previous_status == QueueTicketStatus.WAITING and target_status != QueueTicketStatus.WAITING:
                QueueService.resequence(db, service_id)

            promoted = None
            if target_status in (QueueTicketStatus.CANCELLED, QueueTicketStatus.EXPIRED):
                promoted = QueueService._offer_free_seat(db, service_id, now)

        logger.info(f"Queue ticket {ticket.id} status {previous_status.value} -> {target_status.value} by {actor.id}")
        notification_emitter.queue_ticket_updated(ticket.id, ticket.user_id, ticket.service_id, ticket.status.value)
        if target_status == QueueTicketStatus.NOTIFIED and ticket.expires_at is not None:
            notification_emitter.queue_ticket_notified(
                ticket.id, ticket.user_id, ticket.service_id, ticket.slot_id, ticket.expires_at
            )
        if promoted is not None and promoted.expires_at is not None:
            logger.info(f"Promoted queue ticket {promoted.id} into the seat left by ticket {ticket.id}")
            notification_emitter.queue_ticket_notified(
                promoted.id, promoted.user_id, promoted.service_id, promoted.slot_id, promoted.expires_at
            )
        return ticket

    @staticmethod
    def _offer_free_seat(db: Session, service_id: str, now: datetime) -> Optional[QueueTicket]:
        """
        Promote the head of the line when its preferred slot has an unclaimed seat.

        A seat is unclaimed when the slot's active appointments plus the
        NOTIFIED holds on it stay below capacity. Tickets without a preferred
        slot wait for an explicit promote_next.
        """
        waiting = QueueService._waiting_tickets(db, service_id)
        if not waiting or not waiting[0].slot_id:
            return None

        head = waiting[0]
        slot = db.query(AppointmentSlot).filter(AppointmentSlot.id == head.slot_id).populate_existing().first()
        if slot is None or slot.status == AppointmentSlotStatus.CANCELLED or now > slot.booking_cutoff:
            return None

        active_count = SlotOccupancyService.count_active_appointments(db, slot.id)
        holds = db.query(func.count(QueueTicket.id)).filter(
            QueueTicket.slot_id == slot.id,
            QueueTicket.status == QueueTicketStatus.NOTIFIED,
        ).scalar() or 0
        if active_count + holds >= slot.capacity:
            return None

        QueueService._start_hold(head, now)
        db.flush()
        QueueService.resequence(db, service_id)
        return head

    @staticmethod
    def promote_next(db: Session, service_id: str) -> Optional[QueueTicket]:
        """
        Offer the freed seat to the head of the line.

        The lowest (position, created_at) WAITING ticket becomes NOTIFIED with
        a hold window of QUEUE_HOLD_MINUTES; the rest of the line moves up.

        Returns:
            The promoted ticket, or None if nobody is waiting
        """
        with transaction(db):
            ServiceCatalog.lock_service(db, service_id)
            waiting = QueueService._waiting_tickets(db, service_id)
            if not waiting:
                return None

            ticket = waiting[0]
            QueueService._start_hold(ticket, utc_now())
            db.flush()
            QueueService.resequence(db, service_id)

        logger.info(f"Promoted queue ticket {ticket.id} for service {service_id}, hold until {ticket.expires_at}")
        if ticket.expires_at is not None:
            notification_emitter.queue_ticket_notified(
                ticket.id, ticket.user_id, ticket.service_id, ticket.slot_id, ticket.expires_at
            )
        return ticket

    @staticmethod
    def claim_ticket(
        db: Session,
        ticket_id: str,
        user: AuthenticatedUser,
        service_id: str,
        slot_id: str,
    ) -> QueueTicket:
        """
        Consume a ticket as part of a booking.

        Runs inside the booking transaction, after the slot lock. Marks the
        ticket COMPLETED, binds it to the booked slot, clears the hold and
        closes the gap in the line.

        Raises:
            TicketNotFoundError: If the ticket does not exist
            ForbiddenError: If the user neither owns the ticket nor is privileged
            ServiceMismatchError: If the ticket is for another service
            TicketNotActiveError: If the ticket is not WAITING or NOTIFIED
        """
        ServiceCatalog.lock_service(db, service_id)
        ticket = QueueService._lock_ticket(db, ticket_id)

        require_owner_or_privileged(
            user, ticket.user_id, "Access denied: you can only use your own queue tickets"
        )
        if ticket.service_id != service_id:
            raise ServiceMismatchError(
                "The queue ticket belongs to a different service.",
                ticket_id=ticket_id,
                service_id=service_id,
            )
        if not ticket.is_active:
            raise TicketNotActiveError(ticket_id=ticket_id, status=ticket.status.value)

        ticket.status = QueueTicketStatus.COMPLETED
        ticket.slot_id = slot_id
        ticket.notified_at = None
        ticket.expires_at = None
        db.flush()
        QueueService.resequence(db, ticket.service_id)
        return ticket

    @staticmethod
    def update_ticket(
        db: Session,
        ticket_id: str,
        actor: AuthenticatedUser,
        slot_id: Optional[str] = None,
        position: Optional[int] = None,
        notes: Optional[str] = None,
    ) -> QueueTicket:
        """
        Staff edit of a ticket's preferred slot, place in line or notes.

        Only the arguments that are passed change. A new preferred slot must
        belong to the ticket's service and not be cancelled. Positions past
        the end of the line put the ticket last; the other tickets shift to
        keep the line dense.

        Args:
            db: Database session
            ticket_id: Ticket to edit
            actor: ADMIN or SPECIALIST
            slot_id: New preferred slot, only for WAITING or NOTIFIED tickets
            position: New 1-based place in line, only for WAITING tickets
            notes: Replaces the ticket notes

        Returns:
            The updated ticket

        Raises:
            ForbiddenError: If the actor is not ADMIN or SPECIALIST
            InvalidRangeError: If position is below 1
            TicketNotFoundError: If the ticket does not exist
            SlotNotFoundError: If slot_id does not exist
            ServiceMismatchError: If the slot belongs to another service
            SlotUnavailableError: If the slot is cancelled
            InvalidStateError: If the ticket's status does not allow the change
        """
        require_privileged(actor)
        if position is not None and position < 1:
            raise InvalidRangeError("Queue position must be at least 1", position=position)

        with transaction(db):
            service_id = QueueService._lookup_service_id(db, ticket_id)
            ServiceCatalog.lock_service(db, service_id)
            ticket = QueueService._lock_ticket(db, ticket_id)

            if slot_id is not None and slot_id != ticket.slot_id:
                if not ticket.is_active:
                    raise InvalidStateError(
                        "Only active tickets can change their preferred slot",
                        ticket_id=ticket_id,
                        status=ticket.status.value,
                    )
                slot = db.query(AppointmentSlot).filter(AppointmentSlot.id == slot_id).first()
                if not slot:
                    raise SlotNotFoundError(slot_id=slot_id)
                if slot.service_id != service_id:
                    raise ServiceMismatchError(slot_id=slot_id, service_id=service_id)
                if slot.status == AppointmentSlotStatus.CANCELLED:
                    raise SlotUnavailableError(slot_id=slot_id)
                ticket.slot_id = slot.id

            if position is not None:
                if ticket.status != QueueTicketStatus.WAITING:
                    raise InvalidStateError(
                        "Only waiting tickets can be moved",
                        ticket_id=ticket_id,
                        status=ticket.status.value,
                    )
                others = QueueService._waiting_tickets(db, service_id, exclude_ticket_id=ticket.id)
                index = min(position, len(others) + 1) - 1
                others.insert(index, ticket)
                QueueService._assign_positions(db, others)

            if notes is not None:
                ticket.notes = notes
            db.flush()

        logger.info(
            f"Queue ticket {ticket.id} updated by {actor.id} (slot {ticket.slot_id}, position {ticket.position})"
        )
        notification_emitter.queue_ticket_updated(ticket.id, ticket.user_id, ticket.service_id, ticket.status.value)
        return ticket

    @staticmethod
    def move_ticket(db: Session, ticket_id: str, actor: AuthenticatedUser, position: int) -> QueueTicket:
        """Move a WAITING ticket to another place in line. See update_ticket."""
        return QueueService.update_ticket(db, ticket_id, actor, position=position)

    @staticmethod
    def delete_ticket(db: Session, ticket_id: str, actor: AuthenticatedUser) -> None:
        """
        Remove a ticket permanently.

        Appointments that were booked through it keep existing with their
        ticket reference cleared.

        Raises:
            ForbiddenError: If the actor is not ADMIN or SPECIALIST
            TicketNotFoundError: If the ticket does not exist
        """
        require_privileged(actor)
        with transaction(db):
            service_id = QueueService._lookup_service_id(db, ticket_id)
            ServiceCatalog.lock_service(db, service_id)
            ticket = QueueService._lock_ticket(db, ticket_id)
            was_waiting = ticket.status == QueueTicketStatus.WAITING

            linked = db.query(Appointment).filter(Appointment.queue_ticket_id == ticket.id).all()
            for appointment in linked:
                appointment.queue_ticket_id = None
            db.flush()

            if was_waiting:
                QueueService.resequence(db, service_id, exclude_ticket_id=ticket.id)
            db.delete(ticket)
            db.flush()

        logger.info(f"Queue ticket {ticket_id} deleted by {actor.id} ({len(linked)} appointments detached)")

    @staticmethod
    def get_ticket(db: Session, ticket_id: str, actor: AuthenticatedUser) -> QueueTicket:
        """
        Raises:
            TicketNotFoundError: If the ticket does not exist
            ForbiddenError: If the actor neither owns it nor is privileged
        """
        with read_only(db):
            ticket = db.query(QueueTicket).filter(QueueTicket.id == ticket_id).first()
            if not ticket:
                raise TicketNotFoundError(ticket_id=ticket_id)
            require_owner_or_privileged(actor, ticket.user_id)
        return ticket

    @staticmethod
    def list_tickets(
        db: Session,
        page: int = 1,
        limit: Optional[int] = None,
        user_id: Optional[str] = None,
        service_id: Optional[str] = None,
        status: Optional[QueueTicketStatus | str] = None,
    ) -> QueueTicketListResponse:
        """List tickets newest first."""
        page_request = normalize_pagination(page, limit)
        status_filter = _coerce_ticket_status(status) if status else None

        with read_only(db):
            query = db.query(QueueTicket)
            if user_id:
                query = query.filter(QueueTicket.user_id == user_id)
            if service_id:
                query = query.filter(QueueTicket.service_id == service_id)
            if status_filter is not None:
                query = query.filter(QueueTicket.status == status_filter)

            total = query.count()
            tickets = query.order_by(
                QueueTicket.created_at.desc(),
                QueueTicket.id.desc(),
            ).offset(page_request.offset).limit(page_request.limit).all()
            data = [QueueTicketDetails.model_validate(t) for t in tickets]

        return QueueTicketListResponse(
            data=data,
            meta=PaginationMeta(page=page_request.page, limit=page_request.limit, total=total),
        )
