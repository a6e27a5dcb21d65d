"""
Appointment status history model.

Write-only audit trail: one row per BOOKED, RESCHEDULED or CANCELLED event.
Rows are never updated or deleted by the booking engine.
"""

import enum
import uuid
from datetime import datetime
from typing import Optional, TYPE_CHECKING

from sqlalchemy import Enum, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.column_types import UTCDateTime
from core.constants import ID_LENGTH, MAX_STRING_LENGTH
from core.database import Base
from models.appointment import AppointmentStatus

if TYPE_CHECKING:
    from models.appointment import Appointment


class AppointmentStatusEventType(str, enum.Enum):
    BOOKED = "BOOKED"
    RESCHEDULED = "RESCHEDULED"
    CANCELLED = "CANCELLED"


class AppointmentStatusHistory(Base):
    """Audit entry for a single appointment lifecycle event."""

    __tablename__ = "appointment_status_history"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=lambda: str(uuid.uuid4()))

    appointment_id: Mapped[str] = mapped_column(ForeignKey("appointments.id"))

    event: Mapped[AppointmentStatusEventType] = mapped_column(
        Enum(AppointmentStatusEventType, name="appointment_status_event_type", native_enum=False, length=20)
    )

    from_status: Mapped[Optional[AppointmentStatus]] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status", native_enum=False, length=20), nullable=True
    )
    """Status before the event. NULL for BOOKED."""

    to_status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status", native_enum=False, length=20)
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    changed_by_user_id: Mapped[Optional[str]] = mapped_column(String(MAX_STRING_LENGTH), nullable=True)
    """Actor who triggered the event."""

    created_at: Mapped[datetime] = mapped_column(UTCDateTime())

    appointment: Mapped["Appointment"] = relationship(back_populates="status_history")

    __table_args__ = (
        Index("idx_appointment_status_history_appointment", "appointment_id", "created_at"),
    )
