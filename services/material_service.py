"""
Course materials: inline-stored files attached to a course.
"""
from typing import List, Optional

from sqlalchemy.orm import Session, load_only

from database.models import Course, CourseMaterial, Enrollment, EnrollmentStatus, UserRole
from core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from core.identity import Identity
from core.validators import sanitize_filename, validate_file_size
from services.audit_service import AuditService
from core.logger import logger
import config

DEFAULT_MIME_TYPE = "application/octet-stream"

# Listing never pulls the payload column
_LISTING_COLUMNS = (
    CourseMaterial.id, CourseMaterial.course_id, CourseMaterial.title, CourseMaterial.description,
    CourseMaterial.file_name, CourseMaterial.file_type, CourseMaterial.file_size,
    CourseMaterial.week, CourseMaterial.module, CourseMaterial.is_active, CourseMaterial.created_at,
)


def max_material_size_bytes() -> int:
    return config.MAX_MATERIAL_SIZE_MB * 1024 * 1024


def has_active_enrollment(db: Session, user_id: int, course_id: int) -> bool:
    return db.query(Enrollment.id).filter(
        Enrollment.user_id == user_id,
        Enrollment.course_id == course_id,
        Enrollment.status == EnrollmentStatus.ACTIVE
    ).first() is not None


def _find(db: Session, material_id: int, course_id: Optional[int]) -> Optional[CourseMaterial]:
    query = db.query(CourseMaterial).filter(CourseMaterial.id == material_id)
    if course_id is not None:
        query = query.filter(CourseMaterial.course_id == course_id)
    return query.first()


class MaterialService:
    """Service for course material operations."""

    @staticmethod
    def upload(
        db: Session,
        identity: Identity,
        course_id: int,
        title: str,
        file_name: str,
        file_type: Optional[str],
        content: bytes,
        description: Optional[str] = None,
        week: Optional[int] = None,
        module: Optional[str] = None
    ) -> CourseMaterial:
        """
        Store an uploaded file for a course.

        Raises:
            NotFoundError: course does not exist
            InvalidInputError: missing title, bad file name, empty or oversized file
        """
        identity.require(UserRole.ADMIN)
        title = (title or "").strip()
        if not title:
            raise InvalidInputError("Title is required")

        if not db.query(Course.id).filter(Course.id == course_id).first():
            raise NotFoundError("Course not found")

        try:
            stored_name = sanitize_filename(file_name)
        except ValueError as e:
            raise InvalidInputError(f"Invalid filename: {str(e)}")

        is_valid_size, size_error = validate_file_size(len(content), max_material_size_bytes())
        if not is_valid_size:
            raise InvalidInputError(size_error)

        material = CourseMaterial(
            course_id=course_id,
            title=title,
            description=description,
            file_name=stored_name,
            file_type=file_type or DEFAULT_MIME_TYPE,
            file_size=len(content),
            file_data=content,
            week=week,
            module=module,
            uploaded_by=identity.user_id,
        )
        db.add(material)
        db.flush()
        AuditService.record(
            db, identity.user_id, "UPLOAD", "COURSE_MATERIAL", material.id,
            f"Uploaded material: {title}"
        )
        db.commit()
        db.refresh(material)
        logger.info(f"Admin {identity.user_id} uploaded material {material.id} ({len(content)} bytes) to course {course_id}")
        return material

    @staticmethod
    def list_for_course(db: Session, identity: Identity, course_id: int) -> List[CourseMaterial]:
        """Active materials ordered by week then newest; students need an active enrollment."""
        course = db.query(Course).filter(Course.id == course_id).first()
        if not course:
            raise NotFoundError("Course not found")
        if not identity.is_admin and not has_active_enrollment(db, identity.user_id, course_id):
            raise ForbiddenError("You are not enrolled in this course")

        return (
            db.query(CourseMaterial)
            .options(load_only(*_LISTING_COLUMNS))
            .filter(CourseMaterial.course_id == course_id, CourseMaterial.is_active == True)
            .order_by(
                CourseMaterial.week.is_(None),
                CourseMaterial.week.asc(),
                CourseMaterial.created_at.desc(),
                CourseMaterial.id.desc()
            )
            .all()
        )

    @staticmethod
    def download(
        db: Session,
        identity: Identity,
        material_id: int,
        course_id: Optional[int] = None
    ) -> CourseMaterial:
        """Material with its payload; students need an active enrollment in its course."""
        material = _find(db, material_id, course_id)
        if not material or (not material.is_active and not identity.is_admin):
            raise NotFoundError("Material not found")
        if not identity.is_admin and not has_active_enrollment(db, identity.user_id, material.course_id):
            raise ForbiddenError("You are not enrolled in this course")
        return material

    @staticmethod
    def delete(db: Session, identity: Identity, material_id: int, course_id: Optional[int] = None) -> None:
        identity.require(UserRole.ADMIN)
        material = _find(db, material_id, course_id)
        if not material:
            raise NotFoundError("Material not found")

        title = material.title
        db.delete(material)
        AuditService.record(
            db, identity.user_id, "DELETE", "COURSE_MATERIAL", material_id,
            f"Deleted material: {title}"
        )
        db.commit()
        logger.info(f"Admin {identity.user_id} deleted material {material_id}")
