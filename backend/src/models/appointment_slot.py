"""
Appointment slot model.

A slot is a bounded time interval for one service with a finite seat capacity.
Its AVAILABLE/FULL status is a denormalized cache of the live occupancy,
recomputed inside every transaction that changes it. CANCELLED is set by the
external scheduling tooling and is terminal.
"""

import enum
import uuid
from datetime import datetime, timedelta
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.column_types import UTCDateTime
from core.constants import DEFAULT_TIMEZONE, ID_LENGTH, MAX_TIMEZONE_LENGTH
from core.database import Base

if TYPE_CHECKING:
    from models.service import Service
    from models.appointment import Appointment
    from models.queue_ticket import QueueTicket


class AppointmentSlotStatus(str, enum.Enum):
    AVAILABLE = "AVAILABLE"
    FULL = "FULL"
    CANCELLED = "CANCELLED"


class AppointmentSlot(Base):
    """
    Finite-capacity time interval for a service.

    Invariant: the number of non-CANCELLED appointments referencing the slot
    never exceeds ``capacity``.
    """

    __tablename__ = "appointment_slots"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=lambda: str(uuid.uuid4()))

    service_id: Mapped[str] = mapped_column(ForeignKey("services.id"))
    """Service this slot offers."""

    start_at: Mapped[datetime] = mapped_column(UTCDateTime())
    """Slot start (UTC)."""

    end_at: Mapped[datetime] = mapped_column(UTCDateTime())
    """Slot end (UTC)."""

    timezone: Mapped[str] = mapped_column(String(MAX_TIMEZONE_LENGTH), default=DEFAULT_TIMEZONE)
    """IANA timezone used for display only."""

    capacity: Mapped[int] = mapped_column(Integer, default=1)
    """Number of seats; always positive."""

    buffer_before_minutes: Mapped[int] = mapped_column(Integer, default=0)
    """Booking closes this many minutes before ``start_at``."""

    buffer_after_minutes: Mapped[int] = mapped_column(Integer, default=0)
    """Grace after the slot, carried for display and external tooling."""

    status: Mapped[AppointmentSlotStatus] = mapped_column(
        Enum(AppointmentSlotStatus, name="appointment_slot_status", native_enum=False, length=20),
        default=AppointmentSlotStatus.AVAILABLE,
    )
    """Derived occupancy status, except CANCELLED which is authoritative."""

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime())

    # Relationships
    service: Mapped["Service"] = relationship(back_populates="slots")
    appointments: Mapped[List["Appointment"]] = relationship(back_populates="slot")
    queue_tickets: Mapped[List["QueueTicket"]] = relationship(back_populates="slot")

    @property
    def booking_cutoff(self) -> datetime:
        """Last instant at which the slot may still be booked."""
        return self.start_at - timedelta(minutes=self.buffer_before_minutes or 0)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="ck_appointment_slots_capacity_positive"),
        CheckConstraint("end_at > start_at", name="ck_appointment_slots_end_after_start"),
        # Availability reader: slots of a service within a window
        Index("idx_appointment_slots_service_start", "service_id", "start_at"),
    )

    def __repr__(self) -> str:
        return f"<AppointmentSlot(id={self.id}, service_id={self.service_id}, status={self.status})>"
