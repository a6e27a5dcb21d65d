"""
Services package for the booking engine's business logic.

Each service class groups the operations for one concern and takes the
database session as the first argument of every method.
"""

from .service_catalog import ServiceCatalog
from .slot_occupancy_service import SlotOccupancyService
from .notification_service import NotificationEmitter, notification_emitter
from .queue_service import QueueService
from .booking_service import BookingService
from .appointment_service import AppointmentService
from .availability_service import AvailabilityService

__all__ = [
    "ServiceCatalog",
    "SlotOccupancyService",
    "NotificationEmitter",
    "notification_emitter",
    "QueueService",
    "BookingService",
    "AppointmentService",
    "AvailabilityService",
]
