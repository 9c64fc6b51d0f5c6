"""
Authentication dependencies for FastAPI.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request, Security
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database.models import User, UserRole
from auth.security import security_optional, decode_access_token
from core.exceptions import ForbiddenError, UnauthorizedError
from core.identity import Identity
from services.audit_service import AuditService
import config


def get_db_session(request: Request):
    """Get database session; audit entries recorded on it carry the client address and agent."""
    if not config.db:
        raise HTTPException(status_code=503, detail="Database not initialized")
    with config.db.get_session() as session:
        user_agent = request.headers.get("user-agent")
        AuditService.bind_request(
            session,
            request.client.host if request.client else None,
            user_agent[:500] if user_agent else None,
        )
        yield session


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security_optional),
    db: Session = Depends(get_db_session)
) -> User:
    """
    Resolve the bearer token to a user.

    Raises:
        UnauthorizedError: missing, invalid or expired token, or the user no longer exists
    """
    if credentials is None:
        raise UnauthorizedError("Authentication required")

    payload = decode_access_token(credentials.credentials, config.SECRET_KEY)
    if payload is None or payload.get("sub") is None:
        raise UnauthorizedError("Invalid authentication credentials")

    try:
        user_id = int(payload["sub"])
    except (TypeError, ValueError):
        raise UnauthorizedError("Invalid authentication credentials")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise UnauthorizedError("User not found")

    return user


async def get_identity(current_user: User = Depends(get_current_user)) -> Identity:
    return Identity.from_user(current_user)


def require_role(role: UserRole):
    """
    Dependency factory for role-based access control.

    Returns:
        Dependency yielding the caller's Identity when it holds ``role``
    """
    async def role_checker(identity: Identity = Depends(get_identity)) -> Identity:
        if identity.role != role:
            raise ForbiddenError(f"Access denied. Required role: {role.value}")
        return identity

    return role_checker


require_admin = require_role(UserRole.ADMIN)
require_student = require_role(UserRole.STUDENT)
