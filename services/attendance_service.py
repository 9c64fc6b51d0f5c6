"""
Attendance rules: batch marking with per-day upsert, and attendance
percentages for students.
"""
from datetime import date, datetime
from typing import Dict, Iterable, List, Tuple, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from database.models import (
    Attendance, AttendanceStatus, Course, Enrollment, EnrollmentStatus, User, UserRole
)
from core.exceptions import ConflictError, InvalidInputError, NotFoundError
from core.identity import Identity
from services.audit_service import AuditService
from core.logger import logger
import config


def normalize_attendance_date(value: Union[date, datetime, str]) -> date:
    """Reduce a date, datetime or ISO-8601 string to its calendar date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
        except ValueError:
            pass
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            raise InvalidInputError(f"Invalid date: {value}")
    raise InvalidInputError(f"Invalid date: {value}")


def attendance_percentage(statuses: Iterable[AttendanceStatus]) -> int:
    """
    Percentage of sessions attended, counting LATE as attended.

    Rounds half up; 0 when there are no records.
    """
    total = 0
    attended = 0
    for status in statuses:
        total += 1
        if status in (AttendanceStatus.PRESENT, AttendanceStatus.LATE):
            attended += 1
    if total == 0:
        return 0
    return (200 * attended + total) // (2 * total)


class AttendanceService:
    """Service for attendance operations."""

    @staticmethod
    def mark_attendance(
        db: Session,
        identity: Identity,
        course_id: int,
        attendance_date: Union[date, datetime, str],
        records: List[Tuple[int, AttendanceStatus]]
    ) -> int:
        """
        Upsert one attendance row per student for the course and calendar date.

        The batch is applied in a single transaction. A student listed twice
        keeps the last status given.

        Args:
            db: Database session
            identity: Caller (must be admin)
            course_id: Course being marked
            attendance_date: Date, datetime or ISO string; time of day is dropped
            records: (student_id, status) pairs

        Returns:
            Number of students marked
        """
        identity.require(UserRole.ADMIN)
        day = normalize_attendance_date(attendance_date)

        course = db.query(Course).filter(Course.id == course_id).first()
        if not course:
            raise NotFoundError("Course not found")

        marks: Dict[int, AttendanceStatus] = {}
        for student_id, status in records:
            try:
                marks[int(student_id)] = AttendanceStatus(status)
            except ValueError:
                raise InvalidInputError(f"Invalid attendance status: {status}")

        if marks:
            found = {
                user_id for (user_id,) in db.query(User.id).filter(
                    User.id.in_(list(marks)),
                    User.role == UserRole.STUDENT
                ).all()
            }
            missing = sorted(set(marks) - found)
            if missing:
                raise NotFoundError(f"Students not found: {', '.join(str(m) for m in missing)}")

        existing = {
            row.user_id: row for row in db.query(Attendance).filter(
                Attendance.course_id == course.id,
                Attendance.date == day,
                Attendance.user_id.in_(list(marks))
            ).all()
        } if marks else {}

        for student_id, status in marks.items():
            row = existing.get(student_id)
            if row:
                row.status = status
                row.marked_by = identity.user_id
            else:
                db.add(Attendance(
                    user_id=student_id,
                    course_id=course.id,
                    date=day,
                    status=status,
                    marked_by=identity.user_id,
                ))

        AuditService.record(
            db, identity.user_id, "MARK_ATTENDANCE", "ATTENDANCE", course.id,
            f"Marked attendance for {len(marks)} students on {day.isoformat()}"
        )
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning(f"Concurrent attendance marking on course {course_id} for {day}")
            raise ConflictError("Attendance for this date was modified concurrently. Please retry.")

        logger.info(f"Admin {identity.user_id} marked attendance for {len(marks)} students in course {course_id} on {day}")
        return len(marks)

    @staticmethod
    def percentage_for(db: Session, student_id: int, course_id: int) -> int:
        """AttendancePercentage for one (student, course) pair."""
        statuses = [
            status for (status,) in db.query(Attendance.status).filter(
                Attendance.user_id == student_id,
                Attendance.course_id == course_id
            ).all()
        ]
        return attendance_percentage(statuses)

    @staticmethod
    def course_roster_for_date(db: Session, course_id: int, attendance_date) -> dict:
        """Actively enrolled students with their mark (or None) for the date."""
        day = normalize_attendance_date(attendance_date)
        course = db.query(Course).filter(Course.id == course_id).first()
        if not course:
            raise NotFoundError("Course not found")

        enrollments = (
            db.query(Enrollment)
            .options(joinedload(Enrollment.user))
            .filter(Enrollment.course_id == course_id, Enrollment.status == EnrollmentStatus.ACTIVE)
            .all()
        )
        marks = {
            row.user_id: row.status for row in db.query(Attendance).filter(
                Attendance.course_id == course_id,
                Attendance.date == day
            ).all()
        }
        students = sorted(
            (
                {
                    "userId": e.user.id,
                    "name": e.user.name,
                    "email": e.user.email,
                    "status": marks[e.user_id].value if e.user_id in marks else None,
                }
                for e in enrollments
            ),
            key=lambda s: s["name"].lower()
        )
        return {
            "courseId": course.id,
            "courseName": course.name,
            "date": day.isoformat(),
            "students": students,
        }

    @staticmethod
    def student_summary(db: Session, identity: Identity) -> List[dict]:
        """Per-course attendance for the calling student, including at-risk flags."""
        identity.require(UserRole.STUDENT)

        enrollments = (
            db.query(Enrollment)
            .options(joinedload(Enrollment.course))
            .filter(Enrollment.user_id == identity.user_id)
            .order_by(Enrollment.enrolled_at.desc())
            .all()
        )
        summary = []
        for enrollment in enrollments:
            records = (
                db.query(Attendance)
                .filter(Attendance.user_id == identity.user_id, Attendance.course_id == enrollment.course_id)
                .order_by(Attendance.date.desc())
                .all()
            )
            percentage = attendance_percentage(r.status for r in records)
            summary.append({
                "courseId": enrollment.course.id,
                "courseCode": enrollment.course.code,
                "courseName": enrollment.course.name,
                "enrollmentStatus": enrollment.status.value,
                "totalClasses": len(records),
                "present": sum(1 for r in records if r.status == AttendanceStatus.PRESENT),
                "late": sum(1 for r in records if r.status == AttendanceStatus.LATE),
                "absent": sum(1 for r in records if r.status == AttendanceStatus.ABSENT),
                "percentage": percentage,
                "atRisk": bool(records) and percentage < config.ATTENDANCE_RISK_THRESHOLD,
                "records": [
                    {"date": r.date.isoformat(), "status": r.status.value} for r in records
                ],
            })
        return summary
