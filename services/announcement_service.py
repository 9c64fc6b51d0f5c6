"""
Announcements: admin publishing and the student feed.
"""
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from database.models import (
    Announcement, AnnouncementPriority, Course, Enrollment, EnrollmentStatus, UserRole
)
from core.exceptions import InvalidInputError, NotFoundError
from core.identity import Identity
from services.audit_service import AuditService
from core.logger import logger


class AnnouncementService:
    """Service for announcement operations."""

    @staticmethod
    def create(
        db: Session,
        identity: Identity,
        title: str,
        content: str,
        priority: AnnouncementPriority = AnnouncementPriority.NORMAL,
        course_id: Optional[int] = None,
        is_active: bool = True
    ) -> Announcement:
        identity.require(UserRole.ADMIN)
        title = (title or "").strip()
        content = (content or "").strip()
        if not title:
            raise InvalidInputError("Title is required")
        if not content:
            raise InvalidInputError("Content is required")
        if course_id is not None and not db.query(Course.id).filter(Course.id == course_id).first():
            raise NotFoundError("Course not found")

        announcement = Announcement(
            title=title,
            content=content,
            priority=AnnouncementPriority(priority),
            course_id=course_id,
            is_active=is_active,
        )
        db.add(announcement)
        db.flush()
        AuditService.record(
            db, identity.user_id, "CREATE", "ANNOUNCEMENT", announcement.id,
            f"Created announcement: {title}"
        )
        db.commit()
        db.refresh(announcement)
        logger.info(f"Admin {identity.user_id} created announcement {announcement.id}")
        return announcement

    @staticmethod
    def delete(db: Session, identity: Identity, announcement_id: int) -> None:
        identity.require(UserRole.ADMIN)
        announcement = db.query(Announcement).filter(Announcement.id == announcement_id).first()
        if not announcement:
            raise NotFoundError("Announcement not found")

        title = announcement.title
        db.delete(announcement)
        AuditService.record(
            db, identity.user_id, "DELETE", "ANNOUNCEMENT", announcement_id,
            f"Deleted announcement: {title}"
        )
        db.commit()
        logger.info(f"Admin {identity.user_id} deleted announcement {announcement_id}")

    @staticmethod
    def list_all(db: Session) -> List[Announcement]:
        return (
            db.query(Announcement)
            .options(joinedload(Announcement.course))
            .order_by(Announcement.created_at.desc(), Announcement.id.desc())
            .all()
        )

    @staticmethod
    def feed_for_student(db: Session, identity: Identity) -> List[Announcement]:
        """Active announcements that are global or for a course the caller is actively enrolled in."""
        identity.require(UserRole.STUDENT)
        course_ids = [
            course_id for (course_id,) in db.query(Enrollment.course_id).filter(
                Enrollment.user_id == identity.user_id,
                Enrollment.status == EnrollmentStatus.ACTIVE
            ).all()
        ]
        scope = Announcement.course_id.is_(None)
        if course_ids:
            scope = or_(scope, Announcement.course_id.in_(course_ids))
        return (
            db.query(Announcement)
            .options(joinedload(Announcement.course))
            .filter(Announcement.is_active == True, scope)
            .order_by(Announcement.created_at.desc(), Announcement.id.desc())
            .all()
        )
