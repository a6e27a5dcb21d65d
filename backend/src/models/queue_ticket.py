"""
Queue ticket model.

A waitlist entry for a service, optionally anchored to a preferred slot.
Among WAITING tickets of one service, ``position`` is a dense 1..N rank
ordered by (position, created_at). Tickets that leave WAITING keep the
position they had at that moment.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.column_types import UTCDateTime
from core.constants import DEFAULT_TIMEZONE, ID_LENGTH, MAX_STRING_LENGTH, MAX_TIMEZONE_LENGTH
from core.database import Base

if TYPE_CHECKING:
    from models.appointment_slot import AppointmentSlot
    from models.service import Service


class QueueTicketStatus(str, enum.Enum):
    WAITING = "WAITING"
    NOTIFIED = "NOTIFIED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"


ACTIVE_TICKET_STATUSES = frozenset({QueueTicketStatus.WAITING, QueueTicketStatus.NOTIFIED})
TERMINAL_TICKET_STATUSES = frozenset({
    QueueTicketStatus.COMPLETED,
    QueueTicketStatus.CANCELLED,
    QueueTicketStatus.EXPIRED,
})


class QueueTicket(Base):
    """Waitlist entry. EXPIRED is only ever set by an external hold sweep."""

    __tablename__ = "queue_tickets"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))

    service_id: Mapped[str] = mapped_column(ForeignKey("services.id"))

    slot_id: Mapped[Optional[str]] = mapped_column(ForeignKey("appointment_slots.id"), nullable=True)
    """Preferred slot, or the slot finally booked once COMPLETED."""

    status: Mapped[QueueTicketStatus] = mapped_column(
        Enum(QueueTicketStatus, name="queue_ticket_status", native_enum=False, length=20),
        default=QueueTicketStatus.WAITING,
    )

    position: Mapped[int] = mapped_column(Integer)
    """1-based rank among WAITING tickets of the service."""

    desired_from: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    desired_to: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    timezone: Mapped[str] = mapped_column(String(MAX_TIMEZONE_LENGTH), default=DEFAULT_TIMEZONE)

    notified_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    """When the ticket was promoted to NOTIFIED."""

    expires_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    """End of the hold window. Advisory; enforced by an external sweep."""

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime())

    service: Mapped["Service"] = relationship()
    slot: Mapped[Optional["AppointmentSlot"]] = relationship(back_populates="queue_tickets")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_TICKET_STATUSES

    __table_args__ = (
        # Promotion and resequencing walk WAITING tickets of one service in rank order
        Index("idx_queue_tickets_service_status_position", "service_id", "status", "position"),
        Index("idx_queue_tickets_user", "user_id"),
        Index("idx_queue_tickets_slot_status", "slot_id", "status"),
    )

    def __repr__(self) -> str:
        return f"<QueueTicket(id={self.id}, status={self.status}, position={self.position})>"
