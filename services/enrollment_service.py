"""
Enrollment rules: enroll, self-service drop, admin drop and grade assignment.

The capacity check and the insert run in one transaction with the course row
locked (SELECT ... FOR UPDATE on PostgreSQL), and the (user, course) unique
constraint turns a lost race into a Conflict rather than a duplicate row.
"""
from typing import List

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from database.models import Course, Enrollment, EnrollmentStatus, UserRole
from core.exceptions import (
    CapacityExceededError, ConflictError, ForbiddenError, InvalidInputError,
    InvalidStateError, NotFoundError
)
from core.identity import Identity
from services.audit_service import AuditService
from core.logger import logger

MAX_GRADE_LENGTH = 10


def count_active_enrollments(db: Session, course_id: int) -> int:
    """Number of ACTIVE enrollments counted against the course capacity."""
    return db.query(func.count(Enrollment.id)).filter(
        Enrollment.course_id == course_id,
        Enrollment.status == EnrollmentStatus.ACTIVE
    ).scalar() or 0


class EnrollmentService:
    """Service for enrollment operations."""

    @staticmethod
    def _get_with_relations(db: Session, enrollment_id: int) -> Enrollment:
        enrollment = (
            db.query(Enrollment)
            .options(joinedload(Enrollment.user), joinedload(Enrollment.course))
            .filter(Enrollment.id == enrollment_id)
            .first()
        )
        if not enrollment:
            raise NotFoundError("Enrollment not found")
        return enrollment

    @staticmethod
    def enroll(db: Session, identity: Identity, course_id: int) -> Enrollment:
        """
        Enroll the calling student in a course.

        Checks run in order: course exists, course active, seat available,
        no existing enrollment row for this (student, course) pair.

        Raises:
            ForbiddenError: caller is not a student
            NotFoundError: course does not exist
            InvalidStateError: course is inactive
            CapacityExceededError: active enrollments already at capacity
            ConflictError: an enrollment row already exists, whatever its status
        """
        identity.require(UserRole.STUDENT)

        course = db.query(Course).filter(Course.id == course_id).with_for_update().first()
        if not course:
            raise NotFoundError("Course not found")
        if not course.is_active:
            raise InvalidStateError("Course is not active")

        if count_active_enrollments(db, course.id) >= course.capacity:
            logger.warning(f"Enrollment rejected, course {course.code} is full")
            raise CapacityExceededError("Course is full")

        existing = db.query(Enrollment).filter(
            Enrollment.user_id == identity.user_id,
            Enrollment.course_id == course.id
        ).first()
        if existing:
            if existing.status == EnrollmentStatus.DROPPED:
                raise ConflictError("You previously dropped this course. Contact an administrator to re-enroll.")
            raise ConflictError("Already enrolled in this course")

        enrollment = Enrollment(
            user_id=identity.user_id,
            course_id=course.id,
            status=EnrollmentStatus.ACTIVE,
        )
        db.add(enrollment)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Already enrolled in this course")

        db.refresh(enrollment)
        logger.info(f"User {identity.user_id} enrolled in course {course.code}")
        return enrollment

    @staticmethod
    def drop(db: Session, identity: Identity, enrollment_id: int) -> Enrollment:
        """Self-service drop; the row is kept with status DROPPED."""
        identity.require(UserRole.STUDENT)

        enrollment = db.query(Enrollment).filter(Enrollment.id == enrollment_id).first()
        if not enrollment:
            raise NotFoundError("Enrollment not found")
        if enrollment.user_id != identity.user_id:
            raise ForbiddenError("You can only drop your own enrollments")
        if enrollment.status == EnrollmentStatus.DROPPED:
            return enrollment

        enrollment.status = EnrollmentStatus.DROPPED
        db.commit()
        logger.info(f"User {identity.user_id} dropped enrollment {enrollment_id}")
        return enrollment

    @staticmethod
    def admin_drop(db: Session, identity: Identity, enrollment_id: int) -> Enrollment:
        """
        Admin drop of any student's enrollment in any status; audited as DROP_STUDENT.

        An enrollment that is already DROPPED is returned as is, without an audit entry.
        """
        identity.require(UserRole.ADMIN)

        enrollment = EnrollmentService._get_with_relations(db, enrollment_id)
        if enrollment.status == EnrollmentStatus.DROPPED:
            return enrollment

        enrollment.status = EnrollmentStatus.DROPPED
        AuditService.record(
            db, identity.user_id, "DROP_STUDENT", "ENROLLMENT", enrollment.id,
            f"Dropped {enrollment.user.name} from {enrollment.course.name}"
        )
        db.commit()
        logger.info(f"Admin {identity.user_id} dropped enrollment {enrollment_id}")
        return enrollment

    @staticmethod
    def assign_grade(db: Session, identity: Identity, enrollment_id: int, grade: str) -> Enrollment:
        """Set the grade on an enrollment of any status; audited as ASSIGN_GRADE."""
        identity.require(UserRole.ADMIN)

        grade = (grade or "").strip()
        if not grade:
            raise InvalidInputError("Grade is required")
        if len(grade) > MAX_GRADE_LENGTH:
            raise InvalidInputError("Grade too long")

        enrollment = EnrollmentService._get_with_relations(db, enrollment_id)
        enrollment.grade = grade
        AuditService.record(
            db, identity.user_id, "ASSIGN_GRADE", "ENROLLMENT", enrollment.id,
            f"Assigned grade {grade} to {enrollment.user.name} for {enrollment.course.name}"
        )
        db.commit()
        logger.info(f"Admin {identity.user_id} assigned grade {grade} on enrollment {enrollment_id}")
        return enrollment

    @staticmethod
    def list_for_student(db: Session, identity: Identity) -> List[Enrollment]:
        """The caller's enrollments, newest first, with course data loaded."""
        identity.require(UserRole.STUDENT)
        return (
            db.query(Enrollment)
            .options(joinedload(Enrollment.course))
            .filter(Enrollment.user_id == identity.user_id)
            .order_by(Enrollment.enrolled_at.desc(), Enrollment.id.desc())
            .all()
        )
