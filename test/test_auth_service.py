import re
from datetime import datetime, timedelta
from types import SimpleNamespace

import pytest

from database.models import AuditLog, Profile, User, UserRole
from auth.security import decode_access_token, validate_password
from core.exceptions import (
    ConflictError, ForbiddenError, InternalError, InvalidInputError, UnauthorizedError
)
from services.auth_service import AuthService
from services.student_id import generate_student_id
import config

STRONG = "Str0ng!Pass"


@pytest.mark.parametrize("password, ok", [
    ("weak", False),
    ("alllowercase1!", False),
    ("ALLUPPERCASE1!", False),
    ("NoDigits!!", False),
    ("NoSymbol123", False),
    ("Sh0rt!", False),
    ("A1!" + "a" * 70, False),  # over 72 bytes
    (STRONG, True),
])
def test_validate_password(password, ok):
    assert validate_password(password)[0] is ok


def test_register_admin_is_forbidden(db_session):
    with pytest.raises(ForbiddenError):
        AuthService.register(db_session, "Eve", "eve@university.edu", STRONG, "ADMIN")
    # Even with otherwise invalid input the role check wins
    with pytest.raises(ForbiddenError):
        AuthService.register(db_session, "", "not-an-email", "weak", UserRole.ADMIN)

    assert db_session.query(User).count() == 0


def test_register_weak_password_is_invalid(db_session):
    with pytest.raises(InvalidInputError, match="at least 8 characters"):
        AuthService.register(db_session, "Sam", "sam@university.edu", "weak", "STUDENT")


def test_register_student_creates_profile_with_student_id(db_session):
    user = AuthService.register(db_session, "Sam Student", "sam@university.edu", STRONG, "student")

    assert user.role == UserRole.STUDENT
    assert user.hashed_password != STRONG
    assert re.fullmatch(r"STU\d{6}", user.profile.student_id)


def test_register_validates_name_and_email(db_session):
    with pytest.raises(InvalidInputError):
        AuthService.register(db_session, "S", "sam@university.edu", STRONG, "STUDENT")
    with pytest.raises(InvalidInputError):
        AuthService.register(db_session, "Sam", "not-an-email", STRONG, "STUDENT")
    with pytest.raises(InvalidInputError):
        AuthService.register(db_session, "Sam", "sam@university.edu", STRONG, "PROFESSOR")


def test_register_duplicate_email_is_conflict(db_session):
    AuthService.register(db_session, "Sam", "sam@university.edu", STRONG, "STUDENT")

    with pytest.raises(ConflictError):
        AuthService.register(db_session, "Sam Again", "sam@university.edu", STRONG, "STUDENT")


def test_login_issues_token(db_session, student):
    user, token = AuthService.login(db_session, "sam@university.edu", STRONG)

    payload = decode_access_token(token, config.SECRET_KEY)
    assert user.id == student.id
    assert payload["sub"] == str(student.id)
    assert payload["role"] == "STUDENT"
    assert user.last_login is not None


def test_login_rejects_bad_credentials(db_session, student):
    with pytest.raises(UnauthorizedError):
        AuthService.login(db_session, "sam@university.edu", "Wr0ng!Pass")
    with pytest.raises(UnauthorizedError):
        AuthService.login(db_session, "nobody@university.edu", STRONG)


def test_account_locks_after_repeated_failures(db_session, student):
    for _ in range(config.MAX_LOGIN_ATTEMPTS):
        with pytest.raises(UnauthorizedError):
            AuthService.login(db_session, "sam@university.edu", "Wr0ng!Pass")

    with pytest.raises(UnauthorizedError):
        AuthService.login(db_session, "sam@university.edu", STRONG)

    # Lockout expires
    student.locked_until = datetime.utcnow() - timedelta(minutes=1)
    db_session.commit()
    user, _ = AuthService.login(db_session, "sam@university.edu", STRONG)
    assert user.failed_login_attempts == 0


def test_change_password(db_session, student, student_identity):
    with pytest.raises(InvalidInputError, match="incorrect"):
        AuthService.change_password(db_session, student_identity, "Wr0ng!Pass", "N3w!Passw0rd")
    with pytest.raises(InvalidInputError):
        AuthService.change_password(db_session, student_identity, STRONG, "weak")

    AuthService.change_password(db_session, student_identity, STRONG, "N3w!Passw0rd")

    AuthService.login(db_session, "sam@university.edu", "N3w!Passw0rd")
    with pytest.raises(UnauthorizedError):
        AuthService.login(db_session, "sam@university.edu", STRONG)


def test_admin_create_user_is_audited(db_session, admin_identity, student_identity):
    with pytest.raises(ForbiddenError):
        AuthService.create_user(db_session, student_identity, "New Admin", "na@university.edu", STRONG, "ADMIN")

    user = AuthService.create_user(db_session, admin_identity, "New Admin", "na@university.edu", STRONG, "ADMIN")

    assert user.role == UserRole.ADMIN
    assert user.profile is None
    logs = db_session.query(AuditLog).all()
    assert [(log.action, log.entity, log.entity_id) for log in logs] == [("CREATE", "USER", str(user.id))]


def test_bootstrap_admin(db_session):
    user = AuthService.bootstrap_admin(db_session, "Root Admin", "root@university.edu", STRONG)

    assert user.role == UserRole.ADMIN
    log = db_session.query(AuditLog).one()
    assert log.user_id is None


def test_student_id_rerolls_on_collision(db_session, student, monkeypatch):
    student.profile.student_id = "STU100000"
    db_session.commit()
    draws = iter([0, 0, 1])
    monkeypatch.setattr("services.student_id.secrets", SimpleNamespace(randbelow=lambda n: next(draws)))

    assert generate_student_id(db_session) == "STU100001"


def test_student_id_gives_up_after_max_attempts(db_session, student, monkeypatch):
    student.profile.student_id = "STU100000"
    db_session.commit()
    monkeypatch.setattr("services.student_id.secrets", SimpleNamespace(randbelow=lambda n: 0))

    with pytest.raises(InternalError):
        generate_student_id(db_session)
    assert db_session.query(Profile).count() == 1
