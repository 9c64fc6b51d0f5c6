"""
Course management APIs (Admin).
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional

from auth.dependencies import get_db_session, require_admin
from core.identity import Identity
from core.utils import course_to_dict, enrollment_to_dict
from services.course_service import CourseService
from services.enrollment_service import count_active_enrollments


router = APIRouter(prefix="/api/admin/courses", tags=["courses"])


class CourseCreate(BaseModel):
    code: str = Field(..., min_length=3, max_length=20)
    name: str = Field(..., min_length=3, max_length=200)
    description: Optional[str] = Field(None, max_length=1000)
    credits: int = Field(..., ge=1, le=10)
    capacity: int = Field(..., ge=1, le=500)
    instructor: Optional[str] = Field(None, max_length=100)
    schedule: Optional[str] = Field(None, max_length=200)
    isActive: bool = True

    def to_fields(self) -> dict:
        data = self.model_dump(exclude_unset=True)
        if "isActive" in data:
            data["is_active"] = data.pop("isActive")
        return data


class CourseUpdate(CourseCreate):
    """Partial update; omitted fields are left unchanged."""
    code: Optional[str] = Field(None, min_length=3, max_length=20)
    name: Optional[str] = Field(None, min_length=3, max_length=200)
    credits: Optional[int] = Field(None, ge=1, le=10)
    capacity: Optional[int] = Field(None, ge=1, le=500)
    isActive: Optional[bool] = None


@router.get("")
async def list_courses(
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """All courses with active and total enrollment counts."""
    return {
        "data": [
            {
                **course_to_dict(row["course"]),
                "activeEnrollments": row["activeEnrollments"],
                "totalEnrollments": row["totalEnrollments"],
            }
            for row in CourseService.list_courses(db)
        ]
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_course(
    course_data: CourseCreate,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    fields = course_data.to_fields()
    fields.setdefault("is_active", True)
    course = CourseService.create_course(db, identity, fields)
    return course_to_dict(course)


@router.get("/{course_id}")
async def get_course(
    course_id: int,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Course with every enrollment and its student."""
    course = CourseService.get_course_detail(db, course_id)
    enrollments = sorted(course.enrollments, key=lambda e: e.enrolled_at, reverse=True)
    return {
        **course_to_dict(course),
        "activeEnrollments": count_active_enrollments(db, course.id),
        "enrollments": [enrollment_to_dict(e, include_user=True) for e in enrollments],
    }


@router.patch("/{course_id}")
async def update_course(
    course_id: int,
    course_data: CourseUpdate,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    course = CourseService.update_course(db, identity, course_id, course_data.to_fields())
    return course_to_dict(course)


@router.delete("/{course_id}")
async def delete_course(
    course_id: int,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    CourseService.delete_course(db, identity, course_id)
    return {"success": True, "message": "Course deleted successfully"}
