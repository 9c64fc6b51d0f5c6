"""
Bulk user import from CSV.

Each data row is applied in its own transaction, so one bad row never blocks
the rest of the file.
"""
import csv
import io
from datetime import datetime
from typing import Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database.models import User, Profile, UserRole
from auth.security import get_password_hash, BCRYPT_MAX_BYTES
from core.exceptions import InvalidInputError, PortalError
from core.identity import Identity
from services.audit_service import AuditService
from services.student_id import generate_student_id
from core.logger import logger

REQUIRED_HEADERS = ("name", "email", "password", "role")
MIN_IMPORT_PASSWORD_LENGTH = 8


class RowError(Exception):
    """A single CSV row was rejected."""


def parse_import_csv(csv_text: str) -> List[Dict[str, str]]:
    """
    Parse CSV text into row dicts keyed by lowercased, trimmed header names.

    Raises:
        InvalidInputError: a required header is missing or there are no data rows
    """
    if csv_text.startswith("\ufeff"):
        csv_text = csv_text[1:]

    reader = csv.reader(io.StringIO(csv_text))
    rows = [row for row in reader if any(cell.strip() for cell in row)]
    if len(rows) < 2:
        raise InvalidInputError("CSV file must contain headers and at least one student")

    headers = [h.strip().lower() for h in rows[0]]
    for required in REQUIRED_HEADERS:
        if required not in headers:
            raise InvalidInputError(f"Missing required header: {required}")

    parsed = []
    for row in rows[1:]:
        parsed.append({
            header: (row[i].strip() if i < len(row) else "")
            for i, header in enumerate(headers)
        })
    return parsed


def _validate_row(db: Session, row: Dict[str, str]) -> UserRole:
    if not all(row.get(field) for field in REQUIRED_HEADERS):
        raise RowError("Missing required fields")

    try:
        role = UserRole(row["role"].upper())
    except ValueError:
        raise RowError(f'Invalid role "{row["role"]}"')

    if len(row["password"]) < MIN_IMPORT_PASSWORD_LENGTH:
        raise RowError(f"Password must be at least {MIN_IMPORT_PASSWORD_LENGTH} characters")
    if len(row["password"].encode("utf-8")) > BCRYPT_MAX_BYTES:
        raise RowError("Password cannot be longer than 72 bytes")

    if db.query(User.id).filter(User.email == row["email"]).first():
        raise RowError(f'Email "{row["email"]}" already exists')
    return role


def _describe_conflict(error: IntegrityError, row: Dict[str, str]) -> str:
    if "student_id" in str(error.orig):
        return "Could not allocate a unique student ID"
    return f'Email "{row["email"]}" already exists'


class BulkImportService:
    """Service for CSV user import."""

    @staticmethod
    def import_users(db: Session, identity: Identity, csv_text: str) -> dict:
        """
        Create one user per CSV row.

        Data rows are numbered from 2; the header is row 1. Blank lines are
        skipped before numbering.

        Returns:
            {"successCount": int, "failedCount": int, "errors": ["Row n: reason", ...]}
        """
        identity.require(UserRole.ADMIN)
        rows = parse_import_csv(csv_text)

        success_count = 0
        errors: List[str] = []
        for row_number, row in enumerate(rows, start=2):
            try:
                role = _validate_row(db, row)
                user = User(
                    name=row["name"],
                    email=row["email"],
                    hashed_password=get_password_hash(row["password"]),
                    role=role,
                    password_changed_at=datetime.utcnow(),
                )
                if role == UserRole.STUDENT:
                    user.profile = Profile(student_id=generate_student_id(db))
                db.add(user)
                db.flush()
                AuditService.record(
                    db, identity.user_id, "BULK_IMPORT", "USER", user.id,
                    f"Bulk imported user: {user.name} ({user.email})"
                )
                db.commit()
                success_count += 1
            except RowError as e:
                errors.append(f"Row {row_number}: {e}")
            except PortalError as e:
                db.rollback()
                errors.append(f"Row {row_number}: {e.message}")
            except IntegrityError as e:
                db.rollback()
                errors.append(f"Row {row_number}: {_describe_conflict(e, row)}")

        logger.info(
            f"Admin {identity.user_id} bulk import finished: {success_count} created, {len(errors)} failed"
        )
        return {
            "successCount": success_count,
            "failedCount": len(errors),
            "errors": errors,
        }
