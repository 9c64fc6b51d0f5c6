"""
Announcement APIs (Admin).
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional

from database.models import AnnouncementPriority
from auth.dependencies import get_db_session, require_admin
from core.identity import Identity
from core.utils import announcement_to_dict
from services.announcement_service import AnnouncementService


router = APIRouter(prefix="/api/admin/announcements", tags=["announcements"])


class AnnouncementCreate(BaseModel):
    title: str = Field(..., max_length=200)
    content: str
    priority: AnnouncementPriority = AnnouncementPriority.NORMAL
    courseId: Optional[int] = None  # None means all students
    isActive: bool = True


@router.get("")
async def list_announcements(
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    return {"data": [announcement_to_dict(a) for a in AnnouncementService.list_all(db)]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_announcement(
    announcement_data: AnnouncementCreate,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    announcement = AnnouncementService.create(
        db,
        identity,
        title=announcement_data.title,
        content=announcement_data.content,
        priority=announcement_data.priority,
        course_id=announcement_data.courseId,
        is_active=announcement_data.isActive
    )
    return announcement_to_dict(announcement)


@router.delete("/{announcement_id}")
async def delete_announcement(
    announcement_id: int,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    AnnouncementService.delete(db, identity, announcement_id)
    return {"success": True, "message": "Announcement deleted successfully"}
