"""
Student portal APIs: course catalog, enrollments, attendance, announcements
and course materials.
"""
from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import Optional

from auth.dependencies import get_db_session, require_student
from core.identity import Identity
from core.utils import (
    announcement_to_dict, content_disposition, course_to_dict, enrollment_to_dict, material_to_dict
)
from services.announcement_service import AnnouncementService
from services.attendance_service import AttendanceService
from services.course_service import CourseService
from services.enrollment_service import EnrollmentService
from services.material_service import MaterialService


router = APIRouter(prefix="/api/student", tags=["student"])


class EnrollRequest(BaseModel):
    courseId: int


@router.get("/courses")
async def list_courses(
    search: Optional[str] = Query(None),
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    """Active courses with the caller's enrollment flag and the seats left."""
    return {
        "data": [
            {
                **course_to_dict(row["course"]),
                "isEnrolled": row["isEnrolled"],
                "availableSeats": row["availableSeats"],
            }
            for row in CourseService.catalog_for_student(db, identity, search)
        ]
    }


@router.get("/enrollments")
async def list_enrollments(
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    enrollments = EnrollmentService.list_for_student(db, identity)
    return {"data": [enrollment_to_dict(e, include_course=True) for e in enrollments]}


@router.post("/enrollments", status_code=status.HTTP_201_CREATED)
async def enroll(
    enroll_data: EnrollRequest,
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    enrollment = EnrollmentService.enroll(db, identity, enroll_data.courseId)
    return {
        "success": True,
        "message": "Enrolled successfully",
        "enrollment": enrollment_to_dict(enrollment, include_course=True),
    }


@router.delete("/enrollments/{enrollment_id}")
async def drop_enrollment(
    enrollment_id: int,
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    """Drop one of the caller's enrollments; the record is kept as DROPPED."""
    enrollment = EnrollmentService.drop(db, identity, enrollment_id)
    return {
        "success": True,
        "message": "Course dropped",
        "enrollment": enrollment_to_dict(enrollment),
    }


@router.get("/attendance")
async def attendance_summary(
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    return {"data": AttendanceService.student_summary(db, identity)}


@router.get("/announcements")
async def announcements(
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    return {"data": [announcement_to_dict(a) for a in AnnouncementService.feed_for_student(db, identity)]}


@router.get("/courses/{course_id}/materials")
async def list_materials(
    course_id: int,
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    materials = MaterialService.list_for_course(db, identity, course_id)
    return {"data": [material_to_dict(m) for m in materials]}


@router.get("/materials/{material_id}/download")
async def download_material(
    material_id: int,
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    material = MaterialService.download(db, identity, material_id)
    return Response(
        content=material.file_data,
        media_type=material.file_type,
        headers={"Content-Disposition": content_disposition(material.file_name)}
    )
