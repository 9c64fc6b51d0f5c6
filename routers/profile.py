"""
Student profile APIs (own profile).
"""
from datetime import date
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from pydantic import BaseModel, Field
from typing import Optional

from auth.dependencies import get_db_session, require_student
from core.identity import Identity
from core.utils import user_to_dict
from services.student_service import StudentService


router = APIRouter(prefix="/api/student/profile", tags=["profile"])


class ProfileUpdate(BaseModel):
    """Full replacement of the editable profile; omitted fields are cleared."""
    name: str = Field(..., min_length=1, max_length=100)
    phone: Optional[str] = Field(None, max_length=50)
    address: Optional[str] = Field(None, max_length=500)
    dateOfBirth: Optional[date] = None
    bio: Optional[str] = Field(None, max_length=1000)


@router.get("")
async def get_profile(
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    return user_to_dict(StudentService.get_own_profile(db, identity))


@router.patch("")
async def update_profile(
    profile_data: ProfileUpdate,
    identity: Identity = Depends(require_student),
    db: Session = Depends(get_db_session)
):
    user = StudentService.update_own_profile(
        db,
        identity,
        name=profile_data.name,
        phone=profile_data.phone,
        address=profile_data.address,
        date_of_birth=profile_data.dateOfBirth,
        bio=profile_data.bio
    )
    return {"success": True, "profile": user_to_dict(user)}
