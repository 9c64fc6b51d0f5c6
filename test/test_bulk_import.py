import re

import pytest

from database.models import AuditLog, User, UserRole
from core.exceptions import ForbiddenError, InvalidInputError
from services import bulk_import
from services.bulk_import import BulkImportService, parse_import_csv
import config


def test_three_valid_rows_and_one_duplicate(db_session, admin_identity, student):
    csv_text = (
        "name,email,password,role\n"
        "Ann Lee,ann@university.edu,password1,STUDENT\n"
        "Ben Kim,ben@university.edu,password2,student\n"
        "Sam Dup,sam@university.edu,password3,STUDENT\n"
        "Cat Day,cat@university.edu,password4,ADMIN\n"
    )

    result = BulkImportService.import_users(db_session, admin_identity, csv_text)

    assert result["successCount"] == 3
    assert result["failedCount"] == 1
    assert len(result["errors"]) == 1
    assert "sam@university.edu" in result["errors"][0]
    assert result["errors"][0].startswith("Row 4:")


def test_imported_users_get_profiles_and_audit_entries(db_session, admin_identity):
    csv_text = (
        "Name , EMAIL,Password,Role\n"
        '"Lee, Ann",ann@university.edu,password1,STUDENT\n'
        "Root,root@university.edu,password2,ADMIN\n"
    )

    result = BulkImportService.import_users(db_session, admin_identity, csv_text)

    assert result == {"successCount": 2, "failedCount": 0, "errors": []}
    ann = db_session.query(User).filter(User.email == "ann@university.edu").one()
    assert ann.name == "Lee, Ann"
    assert re.fullmatch(r"STU\d{6}", ann.profile.student_id)
    root = db_session.query(User).filter(User.email == "root@university.edu").one()
    assert root.role == UserRole.ADMIN
    assert root.profile is None

    logs = db_session.query(AuditLog).filter(AuditLog.action == "BULK_IMPORT").all()
    assert sorted(log.details for log in logs) == [
        "Bulk imported user: Lee, Ann (ann@university.edu)",
        "Bulk imported user: Root (root@university.edu)",
    ]


def test_row_errors(db_session, admin_identity):
    csv_text = (
        "name,email,password,role\n"
        "No Email,,password1,STUDENT\n"
        "Bad Role,badrole@university.edu,password1,PROFESSOR\n"
        "Short,short@university.edu,abc,STUDENT\n"
        "Good,good@university.edu,password1,STUDENT\n"
        "Again,good@university.edu,password1,STUDENT\n"
    )

    result = BulkImportService.import_users(db_session, admin_identity, csv_text)

    assert result["successCount"] == 1
    assert result["errors"] == [
        "Row 2: Missing required fields",
        'Row 3: Invalid role "PROFESSOR"',
        "Row 4: Password must be at least 8 characters",
        'Row 6: Email "good@university.edu" already exists',
    ]


def test_missing_header_and_empty_file(db_session, admin_identity):
    with pytest.raises(InvalidInputError, match="Missing required header: role"):
        BulkImportService.import_users(db_session, admin_identity, "name,email,password\nA,a@university.edu,password1\n")
    with pytest.raises(InvalidInputError, match="at least one"):
        BulkImportService.import_users(db_session, admin_identity, "name,email,password,role\n")
    with pytest.raises(InvalidInputError):
        BulkImportService.import_users(db_session, admin_identity, "")


def test_bulk_import_requires_admin(db_session, student_identity):
    with pytest.raises(ForbiddenError):
        BulkImportService.import_users(db_session, student_identity, "name,email,password,role\nA,a@university.edu,password1,STUDENT\n")


def test_parse_import_csv_handles_quotes_and_bom():
    rows = parse_import_csv('\ufeffname,email,password,role\n"Doe, Jane","jd@university.edu","pa,ss,word",STUDENT\n')

    assert rows == [{
        "name": "Doe, Jane",
        "email": "jd@university.edu",
        "password": "pa,ss,word",
        "role": "STUDENT",
    }]


def test_student_id_exhaustion_fails_only_that_row(db_session, admin_identity, monkeypatch):
    monkeypatch.setattr(config, "STUDENT_ID_MAX_ATTEMPTS", 0)
    csv_text = (
        "name,email,password,role\n"
        "First Admin,first@university.edu,password1,ADMIN\n"
        "Some Student,some@university.edu,password2,STUDENT\n"
        "Last Admin,last@university.edu,password3,ADMIN\n"
    )

    result = BulkImportService.import_users(db_session, admin_identity, csv_text)

    assert result == {
        "successCount": 2,
        "failedCount": 1,
        "errors": ["Row 3: Could not allocate a unique student ID"],
    }
    emails = {u.email for u in db_session.query(User)}
    assert emails == {"admin@university.edu", "first@university.edu", "last@university.edu"}


def test_student_id_conflict_is_reported_as_such(db_session, admin_identity, student, monkeypatch):
    taken = student.profile.student_id
    monkeypatch.setattr(bulk_import, "generate_student_id", lambda db: taken)
    csv_text = (
        "name,email,password,role\n"
        "Twin,twin@university.edu,password1,STUDENT\n"
    )

    result = BulkImportService.import_users(db_session, admin_identity, csv_text)

    assert result["errors"] == ["Row 2: Could not allocate a unique student ID"]
    assert db_session.query(User).filter(User.email == "twin@university.edu").count() == 0
