"""
Student management APIs (Admin).
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List, Optional

from auth.dependencies import get_db_session, require_admin
from core.identity import Identity
from core.utils import enrollment_to_dict, iso, user_to_dict
from services.attendance_service import AttendanceService
from services.student_service import StudentService


router = APIRouter(prefix="/api/admin/students", tags=["students"])


class StudentListResponse(BaseModel):
    """Paginated student list."""
    data: List[dict]
    total: int
    page: int
    limit: int


@router.get("", response_model=StudentListResponse)
async def list_students(
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """List students, searching name, email and student ID."""
    students, total = StudentService.list_students(db, search=search, page=page, limit=limit)
    return StudentListResponse(
        data=[
            {
                "id": student.id,
                "studentId": student.profile.student_id if student.profile else None,
                "name": student.name,
                "email": student.email,
                "createdAt": iso(student.created_at),
            }
            for student in students
        ],
        total=total,
        page=page,
        limit=limit
    )


@router.get("/{student_id}")
async def get_student(
    student_id: int,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Student with profile and enrollments, each with its attendance percentage."""
    student = StudentService.get_student(db, student_id)
    enrollments = sorted(student.enrollments, key=lambda e: e.enrolled_at, reverse=True)
    return {
        **user_to_dict(student),
        "enrollments": [
            {
                **enrollment_to_dict(e, include_course=True),
                "attendancePercentage": AttendanceService.percentage_for(db, student.id, e.course_id),
            }
            for e in enrollments
        ],
    }


@router.delete("/{student_id}")
async def delete_student(
    student_id: int,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    StudentService.delete_student(db, identity, student_id)
    return {"success": True, "message": "Student deleted successfully"}
