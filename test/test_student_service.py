from datetime import date

import pytest

from database.models import Attendance, AttendanceStatus, AuditLog, Enrollment, Profile, User, UserRole
from core.exceptions import ForbiddenError, InvalidInputError, NotFoundError
from services.attendance_service import AttendanceService
from services.enrollment_service import EnrollmentService
from services.student_service import StudentService


def test_list_students_search_and_pagination(db_session, admin, make_user):
    for name in ("Alice Smith", "Bob Jones", "Carol Smith"):
        make_user(UserRole.STUDENT, name=name)

    students, total = StudentService.list_students(db_session)
    assert total == 3
    assert all(s.role == UserRole.STUDENT for s in students)

    smiths, total = StudentService.list_students(db_session, search="smith")
    assert total == 2
    assert {s.name for s in smiths} == {"Alice Smith", "Carol Smith"}

    page, total = StudentService.list_students(db_session, page=2, limit=2)
    assert total == 3
    assert len(page) == 1


def test_search_by_student_id(db_session, student):
    students, total = StudentService.list_students(db_session, search=student.profile.student_id)

    assert total == 1
    assert students[0].id == student.id


def test_get_student(db_session, admin, student, student_identity, make_course):
    course = make_course()
    EnrollmentService.enroll(db_session, student_identity, course.id)

    found = StudentService.get_student(db_session, student.id)

    assert found.profile.student_id.startswith("STU")
    assert [e.course_id for e in found.enrollments] == [course.id]
    with pytest.raises(NotFoundError):
        StudentService.get_student(db_session, admin.id)


def test_delete_student_cascades_and_keeps_audit(db_session, admin_identity, student, student_identity, make_course):
    course = make_course()
    enrollment = EnrollmentService.enroll(db_session, student_identity, course.id)
    EnrollmentService.assign_grade(db_session, admin_identity, enrollment.id, "B")
    AttendanceService.mark_attendance(
        db_session, admin_identity, course.id, date(2024, 3, 5), [(student.id, AttendanceStatus.PRESENT)]
    )

    StudentService.delete_student(db_session, admin_identity, student.id)

    db_session.expire_all()
    assert db_session.query(User).filter(User.role == UserRole.STUDENT).count() == 0
    assert db_session.query(Profile).count() == 0
    assert db_session.query(Enrollment).count() == 0
    assert db_session.query(Attendance).count() == 0
    log = db_session.query(AuditLog).filter(AuditLog.entity == "STUDENT").one()
    assert log.details == "Deleted student: sam@university.edu"
    assert db_session.query(AuditLog).count() == 3


def test_delete_student_rules(db_session, admin, admin_identity, student_identity):
    with pytest.raises(NotFoundError):
        StudentService.delete_student(db_session, admin_identity, admin.id)
    with pytest.raises(ForbiddenError):
        StudentService.delete_student(db_session, student_identity, student_identity.user_id)


def test_update_own_profile(db_session, student, student_identity):
    user = StudentService.update_own_profile(
        db_session, student_identity,
        name="  Samuel Student ",
        phone="555-0100",
        address="",
        date_of_birth=date(2001, 2, 3),
        bio="Hi"
    )

    assert user.name == "Samuel Student"
    assert user.profile.phone == "555-0100"
    assert user.profile.address is None
    assert user.profile.date_of_birth == date(2001, 2, 3)
    assert user.profile.student_id.startswith("STU")

    with pytest.raises(InvalidInputError):
        StudentService.update_own_profile(db_session, student_identity, name=" ")


def test_update_profile_creates_missing_profile(db_session, student, student_identity):
    db_session.delete(student.profile)
    db_session.commit()

    user = StudentService.update_own_profile(db_session, student_identity, name="Sam", bio="new")

    assert user.profile.bio == "new"
    assert user.profile.student_id is None


def test_admin_cannot_use_student_profile(db_session, admin_identity):
    with pytest.raises(ForbiddenError):
        StudentService.get_own_profile(db_session, admin_identity)
