"""
Read-only adapter over the external service catalog.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from core.exceptions import ServiceNotFoundError
from models import Service

logger = logging.getLogger(__name__)


class ServiceCatalog:
    """Existence checks against the service catalog."""

    @staticmethod
    def get_service(db: Session, service_id: str) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id).first()

    @staticmethod
    def require_service(db: Session, service_id: str) -> Service:
        """
        Get a service or fail.

        Raises:
            ServiceNotFoundError: If no service has this id
        """
        service = ServiceCatalog.get_service(db, service_id)
        if not service:
            raise ServiceNotFoundError(service_id=service_id)
        return service

    @staticmethod
    def lock_service(db: Session, service_id: str) -> Service:
        """
        Get a service and lock its row for the rest of the transaction.

        The service row serializes every change to its waitlist (position
        assignment, resequencing, promotion).

        Raises:
            ServiceNotFoundError: If no service has this id
        """
        service = db.query(Service).filter(
            Service.id == service_id
        ).with_for_update().first()
        if not service:
            raise ServiceNotFoundError(service_id=service_id)
        return service
