"""
Attendance APIs (Admin): batch marking and the per-date roster.
"""
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from typing import List

from database.models import AttendanceStatus
from auth.dependencies import get_db_session, require_admin
from core.identity import Identity
from services.attendance_service import AttendanceService


router = APIRouter(prefix="/api/admin/attendance", tags=["attendance"])


class AttendanceMark(BaseModel):
    userId: int
    status: AttendanceStatus


class MarkAttendanceRequest(BaseModel):
    courseId: int
    date: str  # ISO date or datetime; only the calendar date is kept
    attendance: List[AttendanceMark]


@router.post("")
async def mark_attendance(
    attendance_data: MarkAttendanceRequest,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    marked = AttendanceService.mark_attendance(
        db,
        identity,
        attendance_data.courseId,
        attendance_data.date,
        [(mark.userId, mark.status) for mark in attendance_data.attendance]
    )
    return {"success": True, "marked": marked}


@router.get("")
async def get_roster(
    course_id: int = Query(..., alias="courseId"),
    attendance_date: str = Query(..., alias="date"),
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """Actively enrolled students with their status for the date (null when unmarked)."""
    return AttendanceService.course_roster_for_date(db, course_id, attendance_date)
