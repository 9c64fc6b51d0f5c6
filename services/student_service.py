"""
Student management (admin) and student self-service profile.
"""
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from database.models import Enrollment, Profile, User, UserRole
from core.exceptions import InvalidInputError, NotFoundError
from core.identity import Identity
from core.validators import clean_search_term
from services.audit_service import AuditService
from core.logger import logger

PROFILE_FIELDS = ("phone", "address", "date_of_birth", "bio")


class StudentService:
    """Service for student records."""

    @staticmethod
    def list_students(
        db: Session,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 20
    ) -> Tuple[List[User], int]:
        """
        Students newest first, optionally filtered on name, email or student ID.

        Returns:
            (students on the requested page, total matching)
        """
        query = (
            db.query(User)
            .outerjoin(Profile, Profile.user_id == User.id)
            .options(joinedload(User.profile))
            .filter(User.role == UserRole.STUDENT)
        )
        search = clean_search_term(search)
        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                User.name.ilike(pattern),
                User.email.ilike(pattern),
                Profile.student_id.ilike(pattern)
            ))

        total = query.count()
        offset = (page - 1) * limit
        students = query.order_by(User.created_at.desc(), User.id.desc()).offset(offset).limit(limit).all()
        return students, total

    @staticmethod
    def get_student(db: Session, user_id: int) -> User:
        """Student with profile and enrollments (and their courses) loaded."""
        student = (
            db.query(User)
            .options(
                joinedload(User.profile),
                joinedload(User.enrollments).joinedload(Enrollment.course)
            )
            .filter(User.id == user_id)
            .first()
        )
        if not student or student.role != UserRole.STUDENT:
            raise NotFoundError("Student not found")
        return student

    @staticmethod
    def delete_student(db: Session, identity: Identity, user_id: int) -> None:
        """Delete a student and their profile, enrollments and attendance."""
        identity.require(UserRole.ADMIN)
        student = db.query(User).filter(User.id == user_id).first()
        if not student or student.role != UserRole.STUDENT:
            raise NotFoundError("Student not found")

        email = student.email
        db.delete(student)
        AuditService.record(
            db, identity.user_id, "DELETE", "STUDENT", user_id,
            f"Deleted student: {email}"
        )
        db.commit()
        logger.info(f"Admin {identity.user_id} deleted student {email}")

    @staticmethod
    def get_own_profile(db: Session, identity: Identity) -> User:
        identity.require(UserRole.STUDENT)
        user = (
            db.query(User)
            .options(joinedload(User.profile))
            .filter(User.id == identity.user_id)
            .first()
        )
        if not user:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def update_own_profile(
        db: Session,
        identity: Identity,
        name: str,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        date_of_birth: Optional[date] = None,
        bio: Optional[str] = None
    ) -> User:
        """
        Replace the caller's name and profile fields; blank values clear a field.

        The profile row is created if the student does not have one yet.
        """
        user = StudentService.get_own_profile(db, identity)
        name = (name or "").strip()
        if not name:
            raise InvalidInputError("Name is required")

        user.name = name
        if user.profile is None:
            user.profile = Profile()
        values = {
            "phone": phone,
            "address": address,
            "date_of_birth": date_of_birth,
            "bio": bio,
        }
        for field in PROFILE_FIELDS:
            value = values[field]
            if isinstance(value, str):
                value = value.strip() or None
            setattr(user.profile, field, value)

        db.commit()
        db.refresh(user)
        logger.info(f"User {identity.user_id} updated profile")
        return user
