"""
Shared response models for the booking engine's public operations.

These pydantic models are what a transport layer serializes. Timestamps are
timezone-aware UTC datetimes and render as ISO-8601 strings in JSON mode;
identifiers are opaque strings.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from models import AppointmentSlotStatus, AppointmentStatus, QueueTicketStatus


class SlotView(BaseModel):
    """Live occupancy view of one slot, as returned by the availability reader."""
    id: str
    service_id: str
    start_at: datetime
    end_at: datetime
    timezone: str
    capacity: int
    active_count: int
    available: int
    status: AppointmentSlotStatus
    buffer_before_minutes: int
    buffer_after_minutes: int
    queue_length: int
    notes: Optional[str] = None


class PaginationMeta(BaseModel):
    page: int
    limit: int
    total: int


class ServiceSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    slug: str
    duration_minutes: int


class AppointmentSlotSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    start_at: datetime
    end_at: datetime
    timezone: str
    capacity: int
    status: AppointmentSlotStatus
    buffer_before_minutes: int
    buffer_after_minutes: int


class QueueTicketDetails(BaseModel):
    """Response model for a queue ticket."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    service_id: str
    slot_id: Optional[str] = None
    status: QueueTicketStatus
    position: int
    desired_from: Optional[datetime] = None
    desired_to: Optional[datetime] = None
    timezone: str
    notified_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class AppointmentDetails(BaseModel):
    """Response model for an appointment with its service, slot and ticket."""
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    service_id: str
    slot_id: Optional[str] = None
    queue_ticket_id: Optional[str] = None
    status: AppointmentStatus
    scheduled_at: datetime
    timezone: str
    locale: str
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    service: ServiceSummary
    slot: Optional[AppointmentSlotSummary] = None
    queue_ticket: Optional[QueueTicketDetails] = None


class AppointmentListResponse(BaseModel):
    data: List[AppointmentDetails]
    meta: PaginationMeta


class QueueTicketListResponse(BaseModel):
    data: List[QueueTicketDetails]
    meta: PaginationMeta
