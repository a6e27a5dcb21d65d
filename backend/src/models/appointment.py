"""
Appointment model representing one user's claim on a slot.

``scheduled_at`` is copied from the slot when booked (and when rescheduled);
it is a snapshot, not a live reference. Every status or slot change is
mirrored by an AppointmentStatusHistory row.
"""

import enum
import uuid
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.column_types import UTCDateTime
from core.constants import (
    DEFAULT_LOCALE, DEFAULT_TIMEZONE, ID_LENGTH, MAX_LOCALE_LENGTH, MAX_STRING_LENGTH, MAX_TIMEZONE_LENGTH,
)
from core.database import Base

if TYPE_CHECKING:
    from models.appointment_slot import AppointmentSlot
    from models.appointment_status_history import AppointmentStatusHistory
    from models.queue_ticket import QueueTicket
    from models.service import Service


class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Appointment(Base):
    """
    Appointment entity.

    Status lifecycle: SCHEDULED -> CONFIRMED -> COMPLETED is driven externally;
    SCHEDULED/CONFIRMED -> CANCELLED is enforced by the booking engine and is
    terminal.
    """

    __tablename__ = "appointments"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=lambda: str(uuid.uuid4()))

    user_id: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH))
    """Opaque identifier of the owner, issued by the identity provider."""

    service_id: Mapped[str] = mapped_column(ForeignKey("services.id"))

    slot_id: Mapped[Optional[str]] = mapped_column(ForeignKey("appointment_slots.id"), nullable=True)
    """Slot currently held. Only transiently NULL."""

    queue_ticket_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("queue_tickets.id", ondelete="SET NULL"), nullable=True
    )
    """Waitlist ticket claimed to obtain this appointment, if any."""

    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status", native_enum=False, length=20),
        default=AppointmentStatus.SCHEDULED,
    )

    scheduled_at: Mapped[datetime] = mapped_column(UTCDateTime())
    """Snapshot of slot.start_at at booking/reschedule time."""

    timezone: Mapped[str] = mapped_column(String(MAX_TIMEZONE_LENGTH), default=DEFAULT_TIMEZONE)
    locale: Mapped[str] = mapped_column(String(MAX_LOCALE_LENGTH), default=DEFAULT_LOCALE)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime())

    # Relationships
    service: Mapped["Service"] = relationship()
    slot: Mapped[Optional["AppointmentSlot"]] = relationship(back_populates="appointments")
    queue_ticket: Mapped[Optional["QueueTicket"]] = relationship()
    status_history: Mapped[List["AppointmentStatusHistory"]] = relationship(
        back_populates="appointment",
        order_by="AppointmentStatusHistory.created_at",
    )

    __table_args__ = (
        # Capacity checks count active appointments per slot
        Index("idx_appointments_slot_status", "slot_id", "status"),
        Index("idx_appointments_user", "user_id"),
        Index("idx_appointments_service_scheduled", "service_id", "scheduled_at"),
    )

    def __repr__(self) -> str:
        return f"<Appointment(id={self.id}, slot_id={self.slot_id}, status={self.status})>"
