"""
Course management (admin) and the student course catalog.
"""
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from database.models import Course, Enrollment, EnrollmentStatus, UserRole
from core.exceptions import ConflictError, InvalidStateError, NotFoundError
from core.identity import Identity
from services.audit_service import AuditService
from services.enrollment_service import count_active_enrollments
from core.logger import logger

UPDATABLE_FIELDS = (
    "code", "name", "description", "credits", "capacity", "instructor", "schedule", "is_active"
)


def _active_counts(db: Session) -> Dict[int, int]:
    rows = (
        db.query(Enrollment.course_id, func.count(Enrollment.id))
        .filter(Enrollment.status == EnrollmentStatus.ACTIVE)
        .group_by(Enrollment.course_id)
        .all()
    )
    return {course_id: count for course_id, count in rows}


class CourseService:
    """Service for course operations."""

    @staticmethod
    def get_course(db: Session, course_id: int) -> Course:
        course = db.query(Course).filter(Course.id == course_id).first()
        if not course:
            raise NotFoundError("Course not found")
        return course

    @staticmethod
    def get_course_detail(db: Session, course_id: int) -> Course:
        """Course with its enrollments and enrolled users loaded."""
        course = (
            db.query(Course)
            .options(joinedload(Course.enrollments).joinedload(Enrollment.user))
            .filter(Course.id == course_id)
            .first()
        )
        if not course:
            raise NotFoundError("Course not found")
        return course

    @staticmethod
    def create_course(db: Session, identity: Identity, data: Dict[str, Any]) -> Course:
        identity.require(UserRole.ADMIN)

        if db.query(Course.id).filter(Course.code == data["code"]).first():
            raise ConflictError("Course code already exists")

        course = Course(**{k: v for k, v in data.items() if k in UPDATABLE_FIELDS})
        db.add(course)
        try:
            db.flush()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Course code already exists")

        AuditService.record(
            db, identity.user_id, "CREATE", "COURSE", course.id,
            f"Created course: {course.code} - {course.name}"
        )
        db.commit()
        db.refresh(course)
        logger.info(f"Admin {identity.user_id} created course {course.code}")
        return course

    @staticmethod
    def update_course(db: Session, identity: Identity, course_id: int, changes: Dict[str, Any]) -> Course:
        """
        Partial update. The code stays unique and capacity may not drop below
        the number of active enrollments.
        """
        identity.require(UserRole.ADMIN)
        course = db.query(Course).filter(Course.id == course_id).with_for_update().first()
        if not course:
            raise NotFoundError("Course not found")

        new_code = changes.get("code")
        if new_code and new_code != course.code:
            if db.query(Course.id).filter(Course.code == new_code, Course.id != course.id).first():
                raise ConflictError("Course code already exists")

        new_capacity = changes.get("capacity")
        if new_capacity is not None:
            active = count_active_enrollments(db, course.id)
            if new_capacity < active:
                raise InvalidStateError(
                    f"Capacity cannot be lower than the {active} active enrollments"
                )

        for field in UPDATABLE_FIELDS:
            if field in changes and changes[field] is not None:
                setattr(course, field, changes[field])

        AuditService.record(
            db, identity.user_id, "UPDATE", "COURSE", course.id,
            f"Updated course: {course.code}"
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ConflictError("Course code already exists")
        db.refresh(course)
        logger.info(f"Admin {identity.user_id} updated course {course.code}")
        return course

    @staticmethod
    def delete_course(db: Session, identity: Identity, course_id: int) -> None:
        """Delete a course together with its enrollments, attendance, materials and announcements."""
        identity.require(UserRole.ADMIN)
        course = CourseService.get_course(db, course_id)
        code = course.code

        db.delete(course)
        AuditService.record(
            db, identity.user_id, "DELETE", "COURSE", course_id,
            f"Deleted course: {code}"
        )
        db.commit()
        logger.info(f"Admin {identity.user_id} deleted course {code}")

    @staticmethod
    def list_courses(db: Session) -> List[dict]:
        """All courses, newest first, with enrollment counts."""
        counts = _active_counts(db)
        totals = dict(
            db.query(Enrollment.course_id, func.count(Enrollment.id))
            .group_by(Enrollment.course_id)
            .all()
        )
        courses = db.query(Course).order_by(Course.created_at.desc(), Course.id.desc()).all()
        return [
            {
                "course": course,
                "activeEnrollments": counts.get(course.id, 0),
                "totalEnrollments": totals.get(course.id, 0),
            }
            for course in courses
        ]

    @staticmethod
    def catalog_for_student(db: Session, identity: Identity, search: Optional[str] = None) -> List[dict]:
        """Active courses by name with the caller's enrollment flag and free seats."""
        identity.require(UserRole.STUDENT)
        query = db.query(Course).filter(Course.is_active == True)
        if search:
            query = query.filter(
                Course.name.ilike(f"%{search}%") | Course.code.ilike(f"%{search}%")
            )
        courses = query.order_by(Course.name.asc()).all()

        counts = _active_counts(db)
        enrolled = {
            course_id for (course_id,) in db.query(Enrollment.course_id)
            .filter(Enrollment.user_id == identity.user_id)
            .all()
        }
        return [
            {
                "course": course,
                "isEnrolled": course.id in enrolled,
                "availableSeats": max(course.capacity - counts.get(course.id, 0), 0),
            }
            for course in courses
        ]
