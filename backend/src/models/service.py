"""
Service model.

A bookable offering from the external service catalog. The booking engine only
reads it to validate that slots, appointments and queue tickets reference an
existing service; catalog management lives elsewhere.
"""

import uuid
from datetime import datetime
from typing import List, TYPE_CHECKING

from sqlalchemy import String, Integer
from sqlalchemy.orm import Mapped, mapped_column, relationship

from core.column_types import UTCDateTime
from core.constants import ID_LENGTH, MAX_STRING_LENGTH
from core.database import Base

if TYPE_CHECKING:
    from models.appointment_slot import AppointmentSlot


class Service(Base):
    """Catalog entry that slots, appointments and queue tickets belong to."""

    __tablename__ = "services"

    id: Mapped[str] = mapped_column(String(ID_LENGTH), primary_key=True, default=lambda: str(uuid.uuid4()))
    """Opaque identifier (UUID string)."""

    slug: Mapped[str] = mapped_column(String(MAX_STRING_LENGTH), unique=True)
    """Human-readable unique key from the catalog."""

    duration_minutes: Mapped[int] = mapped_column(Integer, default=30)
    """Nominal duration, used for display only. Slot bounds are authoritative."""

    created_at: Mapped[datetime] = mapped_column(UTCDateTime())
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime())

    slots: Mapped[List["AppointmentSlot"]] = relationship(back_populates="service")

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, slug='{self.slug}')>"
