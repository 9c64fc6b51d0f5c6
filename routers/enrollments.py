"""
Enrollment administration: dropping students and assigning grades (Admin).
"""
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel

from auth.dependencies import get_db_session, require_admin
from core.identity import Identity
from core.utils import enrollment_to_dict
from services.enrollment_service import EnrollmentService


router = APIRouter(prefix="/api/admin/enrollments", tags=["enrollments"])


class GradeRequest(BaseModel):
    grade: str


@router.post("/{enrollment_id}/drop")
async def drop_student(
    enrollment_id: int,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    enrollment = EnrollmentService.admin_drop(db, identity, enrollment_id)
    return {
        "success": True,
        "message": "Student dropped from course",
        "enrollment": enrollment_to_dict(enrollment),
    }


@router.post("/{enrollment_id}/grade")
async def assign_grade(
    enrollment_id: int,
    grade_data: GradeRequest,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    enrollment = EnrollmentService.assign_grade(db, identity, enrollment_id, grade_data.grade)
    return {
        "success": True,
        "message": "Grade assigned",
        "enrollment": enrollment_to_dict(enrollment),
    }
