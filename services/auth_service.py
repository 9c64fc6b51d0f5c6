"""
Authentication service: registration, account creation, login with lockout
and password changes.
"""
from datetime import datetime, timedelta
from typing import Optional, Tuple

from email_validator import validate_email, EmailNotValidError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import User, Profile, UserRole
from auth.security import (
    verify_password, get_password_hash, validate_password, create_access_token
)
from core.exceptions import (
    ConflictError, ForbiddenError, InvalidInputError, NotFoundError, UnauthorizedError
)
from core.identity import Identity
from services.audit_service import AuditService
from services.student_id import generate_student_id
from core.logger import logger
import config


def _check_name(name: str) -> str:
    name = (name or "").strip()
    if len(name) < 2:
        raise InvalidInputError("Name must be at least 2 characters")
    if len(name) > 100:
        raise InvalidInputError("Name must be at most 100 characters")
    return name


def _check_email(email: str) -> str:
    try:
        validate_email(email or "", check_deliverability=False)
    except EmailNotValidError:
        raise InvalidInputError("Invalid email address")
    return email


def _parse_role(role) -> UserRole:
    try:
        return UserRole(str(getattr(role, "value", role)).upper())
    except ValueError:
        raise InvalidInputError(f"Invalid role: {role}")


def _check_password(password: str) -> None:
    is_valid, error_message = validate_password(password)
    if not is_valid:
        raise InvalidInputError(error_message)


class AuthService:
    """Service for authentication operations."""

    @staticmethod
    def _create_account(db: Session, name: str, email: str, password: str, role: UserRole) -> User:
        """Insert a user (plus a student profile for students) and commit."""
        existing = db.query(User).filter(User.email == email).first()
        if existing:
            raise ConflictError("Email already registered")

        user = User(
            name=name,
            email=email,
            hashed_password=get_password_hash(password),
            role=role,
            password_changed_at=datetime.utcnow(),
        )
        db.add(user)
        if role == UserRole.STUDENT:
            user.profile = Profile(student_id=generate_student_id(db))
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Email already registered")
        db.refresh(user)
        return user

    @staticmethod
    def register(db: Session, name: str, email: str, password: str, role: UserRole) -> User:
        """
        Public self-registration.

        Admin accounts are refused before any other check. Students receive a
        profile with a generated student ID.

        Raises:
            ForbiddenError: role is ADMIN
            InvalidInputError: bad name, email or weak password
            ConflictError: email already registered
        """
        role = _parse_role(role)
        if role == UserRole.ADMIN:
            logger.warning(f"Rejected public admin registration for {email}")
            raise ForbiddenError(
                "Admin accounts cannot be created through public registration. Contact an administrator."
            )
        name = _check_name(name)
        _check_email(email)
        _check_password(password)

        user = AuthService._create_account(db, name, email, password, role)
        logger.info(f"Registered user: {user.email} (role: {user.role.value})")
        return user

    @staticmethod
    def create_user(
        db: Session,
        identity: Identity,
        name: str,
        email: str,
        password: str,
        role: UserRole
    ) -> User:
        """Admin-created account; may be ADMIN or STUDENT."""
        identity.require(UserRole.ADMIN)
        role = _parse_role(role)
        name = _check_name(name)
        _check_email(email)
        _check_password(password)

        user = AuthService._create_account(db, name, email, password, role)
        AuditService.record(
            db, identity.user_id, "CREATE", "USER", user.id,
            f"Created {role.value.lower()} account: {user.email}"
        )
        db.commit()
        logger.info(f"Admin {identity.user_id} created user {user.email} (role: {role.value})")
        return user

    @staticmethod
    def bootstrap_admin(db: Session, name: str, email: str, password: str) -> User:
        """Create an admin account without a calling identity (seed script only)."""
        name = _check_name(name)
        _check_email(email)
        _check_password(password)

        user = AuthService._create_account(db, name, email, password, UserRole.ADMIN)
        AuditService.record(
            db, None, "CREATE", "USER", user.id,
            f"Created admin account: {user.email}"
        )
        db.commit()
        logger.info(f"Bootstrapped admin account {user.email}")
        return user

    @staticmethod
    def authenticate_user(db: Session, email: str, password: str) -> Optional[User]:
        """
        Authenticate a user with account lockout protection.

        Returns:
            User if authenticated, None otherwise
        """
        user = db.query(User).filter(User.email == email).first()
        if not user:
            return None

        if user.locked_until:
            if user.locked_until > datetime.utcnow():
                logger.warning(f"Login attempt for locked account: {email}")
                return None
            # Lockout expired
            user.locked_until = None
            user.failed_login_attempts = 0

        if not verify_password(password, user.hashed_password):
            user.failed_login_attempts += 1
            if user.failed_login_attempts >= config.MAX_LOGIN_ATTEMPTS:
                user.locked_until = datetime.utcnow() + timedelta(minutes=config.LOCKOUT_DURATION_MINUTES)
                logger.warning(f"Account locked due to too many failed attempts: {email}")
            db.commit()
            return None

        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()
        db.commit()
        return user

    @staticmethod
    def login(db: Session, email: str, password: str) -> Tuple[User, str]:
        """Authenticate and issue an access token; raises UnauthorizedError on failure."""
        user = AuthService.authenticate_user(db, email, password)
        if user is None:
            raise UnauthorizedError("Invalid email or password")
        logger.info(f"User logged in: {user.email}")
        return user, AuthService.create_token(user)

    @staticmethod
    def create_token(user: User) -> str:
        """Create an access token carrying the session identity."""
        data = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role.value,
        }
        return create_access_token(data, config.SECRET_KEY)

    @staticmethod
    def change_password(db: Session, identity: Identity, current_password: str, new_password: str) -> None:
        user = db.query(User).filter(User.id == identity.user_id).first()
        if not user:
            raise NotFoundError("User not found")
        if not verify_password(current_password, user.hashed_password):
            raise InvalidInputError("Current password is incorrect")
        if current_password == new_password:
            raise InvalidInputError("New password must be different from the current password")
        _check_password(new_password)

        user.hashed_password = get_password_hash(new_password)
        user.password_changed_at = datetime.utcnow()
        db.commit()
        logger.info(f"Password changed for user {user.id}")
