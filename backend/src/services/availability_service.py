"""
Availability service for slot lookups.

Read-only: reports the live occupancy of a service's slots over a time
window. The stored slot status is a cache and is not used here; counts come
straight from the appointments and queue tables.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy.orm import Session

from api.responses import SlotView
from core.constants import DEFAULT_AVAILABILITY_WINDOW_DAYS
from core.database import read_only
from models import AppointmentSlot, AppointmentSlotStatus
from services.queue_service import QueueService
from services.service_catalog import ServiceCatalog
from services.slot_occupancy_service import SlotOccupancyService
from utils.datetime_utils import resolve_time_window, utc_now

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Service class for availability queries."""

    @staticmethod
    def get_availability(
        db: Session,
        service_id: str,
        range_start: Optional[str | datetime] = None,
        range_end: Optional[str | datetime] = None,
        timezone: Optional[str] = None,
    ) -> List[SlotView]:
        """
        List a service's bookable slots that intersect a window.

        Args:
            db: Database session
            service_id: Service to look up
            range_start: Window start, defaults to now
            range_end: Window end, defaults to range_start plus the
                availability window (14 days unless configured)
            timezone: IANA timezone naive bounds are expressed in

        Returns:
            One SlotView per non-cancelled slot, ordered by start_at

        Raises:
            InvalidRangeError: If a bound or the timezone is invalid, or the
                window is empty
            ServiceNotFoundError: If the service does not exist
        """
        window = resolve_time_window(
            range_start,
            range_end,
            timezone_name=timezone,
            default_days=DEFAULT_AVAILABILITY_WINDOW_DAYS,
            now=utc_now(),
        )
        with read_only(db):
            ServiceCatalog.require_service(db, service_id)

            slots = db.query(AppointmentSlot).filter(
                AppointmentSlot.service_id == service_id,
                AppointmentSlot.status != AppointmentSlotStatus.CANCELLED,
                AppointmentSlot.start_at <= window.end,
                AppointmentSlot.end_at >= window.start,
            ).order_by(AppointmentSlot.start_at.asc(), AppointmentSlot.id.asc()).all()

            slot_ids = [slot.id for slot in slots]
            active_counts = SlotOccupancyService.count_active_by_slot(db, slot_ids)
            queue_lengths = QueueService.count_waiting_by_slot(db, slot_ids)

        results: List[SlotView] = []
        for slot in slots:
            active_count = active_counts.get(slot.id, 0)
            available = max(slot.capacity - active_count, 0)
            results.append(SlotView(
                id=slot.id,
                service_id=slot.service_id,
                start_at=slot.start_at,
                end_at=slot.end_at,
                timezone=slot.timezone,
                capacity=slot.capacity,
                active_count=active_count,
                available=available,
                status=SlotOccupancyService.derive_status(slot.status, slot.capacity, active_count),
                buffer_before_minutes=slot.buffer_before_minutes,
                buffer_after_minutes=slot.buffer_after_minutes,
                queue_length=queue_lengths.get(slot.id, 0),
                notes=slot.notes,
            ))

        logger.debug(f"Availability for service {service_id}: {len(results)} slots in {window.start} - {window.end}")
        return results
