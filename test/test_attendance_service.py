from datetime import date, datetime

import pytest

from database.models import Attendance, AttendanceStatus, AuditLog, UserRole
from core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from core.identity import Identity
from services.attendance_service import (
    AttendanceService, attendance_percentage, normalize_attendance_date
)
from services.enrollment_service import EnrollmentService

P, A, L = AttendanceStatus.PRESENT, AttendanceStatus.ABSENT, AttendanceStatus.LATE


def test_percentage_with_no_records_is_zero():
    assert attendance_percentage([]) == 0


def test_percentage_counts_late_as_attended():
    assert attendance_percentage([P, P, P, L, A]) == 80


@pytest.mark.parametrize("statuses, expected", [
    ([P], 100),
    ([A], 0),
    ([P, A], 50),
    ([P, P, A], 67),
    ([P] + [A] * 7, 13),  # 12.5 rounds half up
])
def test_percentage_rounding(statuses, expected):
    assert attendance_percentage(statuses) == expected


def test_normalize_attendance_date():
    assert normalize_attendance_date(date(2024, 3, 5)) == date(2024, 3, 5)
    assert normalize_attendance_date(datetime(2024, 3, 5, 23, 59)) == date(2024, 3, 5)
    assert normalize_attendance_date("2024-03-05") == date(2024, 3, 5)
    assert normalize_attendance_date("2024-03-05T09:15:00Z") == date(2024, 3, 5)
    with pytest.raises(InvalidInputError):
        normalize_attendance_date("next tuesday")
    with pytest.raises(InvalidInputError):
        normalize_attendance_date(20240305)


def test_marking_twice_on_same_day_overwrites(db_session, admin_identity, student, make_course):
    course = make_course()

    AttendanceService.mark_attendance(db_session, admin_identity, course.id, "2024-03-05T08:00:00", [(student.id, P)])
    AttendanceService.mark_attendance(db_session, admin_identity, course.id, "2024-03-05T16:30:00", [(student.id, L)])

    db_session.expire_all()
    rows = db_session.query(Attendance).filter(Attendance.user_id == student.id).all()
    assert len(rows) == 1
    assert rows[0].status == L
    assert rows[0].date == date(2024, 3, 5)
    assert rows[0].marked_by == admin_identity.user_id


def test_different_days_create_separate_rows(db_session, admin_identity, student, make_course):
    course = make_course()

    AttendanceService.mark_attendance(db_session, admin_identity, course.id, date(2024, 3, 5), [(student.id, P)])
    AttendanceService.mark_attendance(db_session, admin_identity, course.id, date(2024, 3, 6), [(student.id, A)])

    assert db_session.query(Attendance).count() == 2
    assert AttendanceService.percentage_for(db_session, student.id, course.id) == 50


def test_duplicate_student_in_batch_keeps_last_status(db_session, admin_identity, student, make_course):
    course = make_course()

    marked = AttendanceService.mark_attendance(
        db_session, admin_identity, course.id, "2024-03-05", [(student.id, P), (student.id, A)]
    )

    assert marked == 1
    rows = db_session.query(Attendance).all()
    assert len(rows) == 1
    assert rows[0].status == A


def test_mark_attendance_writes_one_audit_entry(db_session, admin_identity, make_user, make_course):
    course = make_course()
    students = [make_user(UserRole.STUDENT) for _ in range(3)]

    AttendanceService.mark_attendance(
        db_session, admin_identity, course.id, "2024-03-05", [(s.id, P) for s in students]
    )

    logs = db_session.query(AuditLog).all()
    assert len(logs) == 1
    assert logs[0].action == "MARK_ATTENDANCE"
    assert logs[0].entity == "ATTENDANCE"
    assert logs[0].entity_id == str(course.id)
    assert logs[0].details == "Marked attendance for 3 students on 2024-03-05"


def test_mark_attendance_validation(db_session, admin, admin_identity, student, student_identity, make_course):
    course = make_course()

    with pytest.raises(ForbiddenError):
        AttendanceService.mark_attendance(db_session, student_identity, course.id, "2024-03-05", [(student.id, P)])
    with pytest.raises(NotFoundError):
        AttendanceService.mark_attendance(db_session, admin_identity, 9999, "2024-03-05", [(student.id, P)])
    with pytest.raises(NotFoundError, match="Students not found"):
        AttendanceService.mark_attendance(db_session, admin_identity, course.id, "2024-03-05", [(9999, P)])
    with pytest.raises(NotFoundError):
        # Admins are not students
        AttendanceService.mark_attendance(db_session, admin_identity, course.id, "2024-03-05", [(admin.id, P)])
    with pytest.raises(InvalidInputError):
        AttendanceService.mark_attendance(db_session, admin_identity, course.id, "2024-03-05", [(student.id, "HERE")])

    db_session.commit()
    assert db_session.query(Attendance).count() == 0
    assert db_session.query(AuditLog).count() == 0


def test_batch_with_unknown_student_writes_nothing(db_session, admin_identity, student, make_course):
    course = make_course()

    with pytest.raises(NotFoundError):
        AttendanceService.mark_attendance(
            db_session, admin_identity, course.id, "2024-03-05", [(student.id, P), (9999, P)]
        )

    assert db_session.query(Attendance).count() == 0


def test_student_summary(db_session, admin_identity, student, student_identity, make_course):
    marked = make_course(code="CS201", name="Algorithms")
    unmarked = make_course(code="CS202", name="Compilers")
    EnrollmentService.enroll(db_session, student_identity, marked.id)
    EnrollmentService.enroll(db_session, student_identity, unmarked.id)
    AttendanceService.mark_attendance(db_session, admin_identity, marked.id, "2024-03-04", [(student.id, P)])
    AttendanceService.mark_attendance(db_session, admin_identity, marked.id, "2024-03-05", [(student.id, A)])

    summary = {row["courseCode"]: row for row in AttendanceService.student_summary(db_session, student_identity)}

    assert summary["CS201"]["totalClasses"] == 2
    assert summary["CS201"]["present"] == 1
    assert summary["CS201"]["absent"] == 1
    assert summary["CS201"]["percentage"] == 50
    assert summary["CS201"]["atRisk"] is True
    assert [r["date"] for r in summary["CS201"]["records"]] == ["2024-03-05", "2024-03-04"]

    assert summary["CS202"]["totalClasses"] == 0
    assert summary["CS202"]["percentage"] == 0
    assert summary["CS202"]["atRisk"] is False


def test_course_roster_for_date(db_session, admin_identity, make_user, make_course):
    course = make_course()
    alice = make_user(UserRole.STUDENT, name="Alice")
    bob = make_user(UserRole.STUDENT, name="Bob")
    for user in (alice, bob):
        EnrollmentService.enroll(db_session, Identity.from_user(user), course.id)
    AttendanceService.mark_attendance(db_session, admin_identity, course.id, "2024-03-05", [(bob.id, L)])

    roster = AttendanceService.course_roster_for_date(db_session, course.id, "2024-03-05")

    assert roster["date"] == "2024-03-05"
    assert [(s["name"], s["status"]) for s in roster["students"]] == [("Alice", None), ("Bob", "LATE")]
