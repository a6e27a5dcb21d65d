"""
Booking notification emitter.

An append-only, in-process event sink. The booking, rescheduling and queue
services record an event here after their transaction commits; delivery to
email/SMS/push is handled by external consumers reading the stream. Only the
most recent MAX_BUFFERED_NOTIFICATIONS events are kept, so consumers must read
the stream before it wraps. Events recorded after a commit can be lost if the
process dies before emitting, which is acceptable for best-effort
notifications.
"""

import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional

from core.constants import MAX_BUFFERED_NOTIFICATIONS
from utils.datetime_utils import isoformat_utc, utc_now

logger = logging.getLogger(__name__)


class NotificationEventType(str, Enum):
    APPOINTMENT_BOOKED = "appointment.booked"
    APPOINTMENT_RESCHEDULED = "appointment.rescheduled"
    APPOINTMENT_CANCELLED = "appointment.cancelled"
    QUEUE_TICKET_CREATED = "queue.ticket.created"
    QUEUE_TICKET_UPDATED = "queue.ticket.updated"
    QUEUE_TICKET_NOTIFIED = "queue.ticket.notified"


@dataclass(frozen=True)
class NotificationEvent:
    type: NotificationEventType
    payload: Dict[str, Any]
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        """Wire form: ``{type, payload, created_at}`` with ISO-8601 UTC timestamps."""
        return {
            "type": self.type.value,
            "payload": dict(self.payload),
            "created_at": isoformat_utc(self.created_at),
        }


class NotificationEmitter:
    """Ordered, append-only notification stream holding the newest max_events events."""

    def __init__(self, max_events: int = MAX_BUFFERED_NOTIFICATIONS) -> None:
        self._events: Deque[NotificationEvent] = deque(maxlen=max_events)

    def get_events(self, event_type: Optional[NotificationEventType] = None) -> List[NotificationEvent]:
        """Return a copy of the recorded events, optionally filtered by type."""
        if event_type is None:
            return list(self._events)
        return [e for e in self._events if e.type == event_type]

    def clear(self) -> None:
        self._events.clear()

    def appointment_booked(
        self,
        appointment_id: str,
        user_id: str,
        service_id: str,
        slot_id: Optional[str],
        scheduled_at: datetime,
    ) -> NotificationEvent:
        return self._record(NotificationEventType.APPOINTMENT_BOOKED, {
            "appointment_id": appointment_id,
            "user_id": user_id,
            "service_id": service_id,
            "slot_id": slot_id,
            "scheduled_at": isoformat_utc(scheduled_at),
        })

    def appointment_rescheduled(
        self,
        appointment_id: str,
        user_id: str,
        service_id: str,
        previous_slot_id: Optional[str],
        new_slot_id: Optional[str],
        scheduled_at: datetime,
    ) -> NotificationEvent:
        return self._record(NotificationEventType.APPOINTMENT_RESCHEDULED, {
            "appointment_id": appointment_id,
            "user_id": user_id,
            "service_id": service_id,
            "previous_slot_id": previous_slot_id,
            "new_slot_id": new_slot_id,
            "scheduled_at": isoformat_utc(scheduled_at),
        })

    def appointment_cancelled(
        self,
        appointment_id: str,
        user_id: str,
        service_id: str,
        slot_id: Optional[str],
        reason: Optional[str] = None,
    ) -> NotificationEvent:
        return self._record(NotificationEventType.APPOINTMENT_CANCELLED, {
            "appointment_id": appointment_id,
            "user_id": user_id,
            "service_id": service_id,
            "slot_id": slot_id,
            "reason": reason,
        })

    def queue_ticket_created(self, ticket_id: str, user_id: str, service_id: str, position: int) -> NotificationEvent:
        return self._record(NotificationEventType.QUEUE_TICKET_CREATED, {
            "ticket_id": ticket_id,
            "user_id": user_id,
            "service_id": service_id,
            "position": position,
        })

    def queue_ticket_updated(self, ticket_id: str, user_id: str, service_id: str, status: str) -> NotificationEvent:
        return self._record(NotificationEventType.QUEUE_TICKET_UPDATED, {
            "ticket_id": ticket_id,
            "user_id": user_id,
            "service_id": service_id,
            "status": status,
        })

    def queue_ticket_notified(
        self,
        ticket_id: str,
        user_id: str,
        service_id: str,
        slot_id: Optional[str],
        expires_at: datetime,
    ) -> NotificationEvent:
        return self._record(NotificationEventType.QUEUE_TICKET_NOTIFIED, {
            "ticket_id": ticket_id,
            "user_id": user_id,
            "service_id": service_id,
            "slot_id": slot_id,
            "expires_at": isoformat_utc(expires_at),
        })

    def _record(self, event_type: NotificationEventType, payload: Dict[str, Any]) -> NotificationEvent:
        event = NotificationEvent(type=event_type, payload=payload, created_at=utc_now())
        self._events.append(event)
        logger.debug(f"{event_type.value} -> {json.dumps(payload, default=str)}")
        return event


# Process-wide sink used by the booking services
notification_emitter = NotificationEmitter()
