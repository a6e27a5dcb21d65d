"""
Authenticated caller context.

Identity and authentication are handled upstream; the booking engine receives
an already-authenticated user and only distinguishes privileged roles
(ADMIN, SPECIALIST) from ordinary ones.
"""

import enum
from dataclasses import dataclass
from typing import Optional


class UserRole(str, enum.Enum):
    CLIENT = "CLIENT"
    SPECIALIST = "SPECIALIST"
    ADMIN = "ADMIN"


PRIVILEGED_ROLES = frozenset({UserRole.ADMIN, UserRole.SPECIALIST})


@dataclass(frozen=True)
class AuthenticatedUser:
    """Caller identity passed in by the transport layer."""

    id: str
    role: UserRole | str = UserRole.CLIENT
    locale: Optional[str] = None

    @property
    def is_privileged(self) -> bool:
        """ADMIN and SPECIALIST may act on other users' appointments and tickets."""
        try:
            return UserRole(self.role) in PRIVILEGED_ROLES
        except ValueError:
            # Unknown roles are ordinary users
            return False

    def owns(self, owner_id: Optional[str]) -> bool:
        return owner_id is not None and self.id == owner_id

    def __repr__(self) -> str:
        return f"AuthenticatedUser(id='{self.id}', role='{self.role}')"
