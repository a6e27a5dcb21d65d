"""
Ownership and role checks shared by the booking services.
"""

from typing import Optional

from auth.user_context import AuthenticatedUser
from core.exceptions import ForbiddenError


def require_owner_or_privileged(
    actor: AuthenticatedUser,
    owner_id: Optional[str],
    message: str = "Access denied: you can only manage your own bookings",
) -> AuthenticatedUser:
    """
    Ensure the actor either owns the resource or holds a privileged role.

    Raises:
        ForbiddenError: If neither condition holds
    """
    if actor.is_privileged or actor.owns(owner_id):
        return actor
    raise ForbiddenError(message)


def require_privileged(
    actor: AuthenticatedUser,
    message: str = "Access denied: admin or specialist privileges required",
) -> AuthenticatedUser:
    """
    Ensure the actor holds a privileged role.

    Raises:
        ForbiddenError: If the actor is an ordinary user
    """
    if actor.is_privileged:
        return actor
    raise ForbiddenError(message)
