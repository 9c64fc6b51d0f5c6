"""
User administration APIs (Admin): account creation and CSV bulk import.
"""
from fastapi import APIRouter, Depends, File, UploadFile, status
from sqlalchemy.orm import Session
from pydantic import BaseModel

from auth.dependencies import get_db_session, require_admin
from core.exceptions import InvalidInputError
from core.identity import Identity
from core.utils import user_to_dict
from core.validators import validate_extension, validate_file_size
from services.auth_service import AuthService
from services.bulk_import import BulkImportService
from core.logger import logger

MAX_IMPORT_FILE_BYTES = 5 * 1024 * 1024

router = APIRouter(prefix="/api/admin", tags=["users"])


class UserCreate(BaseModel):
    """Admin-created account; role may be ADMIN or STUDENT."""
    name: str
    email: str
    password: str
    role: str = "STUDENT"


class ImportResponse(BaseModel):
    successCount: int
    failedCount: int
    errors: list


@router.post("/users", status_code=status.HTTP_201_CREATED)
async def create_user(
    user_data: UserCreate,
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    user = AuthService.create_user(
        db,
        identity,
        name=user_data.name,
        email=user_data.email,
        password=user_data.password,
        role=user_data.role
    )
    return {
        "success": True,
        "message": "User created successfully",
        "user": user_to_dict(user),
    }


@router.post("/bulk-import", response_model=ImportResponse)
async def bulk_import(
    file: UploadFile = File(...),
    identity: Identity = Depends(require_admin),
    db: Session = Depends(get_db_session)
):
    """
    Import users from a CSV file with headers name,email,password,role.
    Rows are applied independently; failures are reported per row.
    """
    if not validate_extension(file.filename, {".csv"}):
        raise InvalidInputError("File must be a CSV")

    content = await file.read()
    is_valid_size, size_error = validate_file_size(len(content), MAX_IMPORT_FILE_BYTES)
    if not is_valid_size:
        raise InvalidInputError(size_error)

    try:
        csv_text = content.decode("utf-8")
    except UnicodeDecodeError:
        raise InvalidInputError("CSV file must be UTF-8 encoded")

    result = BulkImportService.import_users(db, identity, csv_text)
    logger.info(f"Bulk import of {file.filename}: {result['successCount']} succeeded, {result['failedCount']} failed")
    return result
