"""
Caller identity passed explicitly into every service operation.
"""
from dataclasses import dataclass

from database.models import User, UserRole
from core.exceptions import ForbiddenError


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as established by the session provider."""
    user_id: int
    role: UserRole

    @classmethod
    def from_user(cls, user: User) -> "Identity":
        return cls(user_id=user.id, role=user.role)

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN

    def require(self, role: UserRole) -> None:
        """Raise ForbiddenError unless the caller holds ``role``."""
        if self.role != role:
            raise ForbiddenError(f"Access denied. Required role: {role.value}")
