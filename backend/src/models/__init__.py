# Package initialization
# Import all models to ensure relationships are properly established
from .service import Service
from .appointment_slot import AppointmentSlot, AppointmentSlotStatus
from .queue_ticket import QueueTicket, QueueTicketStatus
from .appointment import Appointment, AppointmentStatus
from .appointment_status_history import AppointmentStatusHistory, AppointmentStatusEventType

__all__ = [
    "Service",
    "AppointmentSlot",
    "AppointmentSlotStatus",
    "QueueTicket",
    "QueueTicketStatus",
    "Appointment",
    "AppointmentStatus",
    "AppointmentStatusHistory",
    "AppointmentStatusEventType",
]
