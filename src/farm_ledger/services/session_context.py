"""Explicit session context passed into every service call.

The authenticated user is never read from ambient state; UI code obtains a
SessionContext at login and hands it to each operation, which uses it to
stamp ownership and to authorize admin actions.
"""

from dataclasses import dataclass
from typing import Optional

from ..models.enums import UserRole


@dataclass(frozen=True)
class SessionContext:
    """Who is performing an operation."""

    user_id: Optional[str] = None
    role: UserRole = UserRole.GALPONERO
    email: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


def owner_of(context: Optional[SessionContext]) -> Optional[str]:
    """User id to stamp on records written under context."""
    return context.user_id if context is not None else None
