"""
Authentication endpoints: registration, login, current user and password change.
"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session, joinedload
from pydantic import BaseModel

from database.models import User
from auth.dependencies import get_db_session, get_current_user, get_identity
from core.identity import Identity
from core.utils import user_to_dict
from services.auth_service import AuthService
import config


router = APIRouter(prefix="/api/auth", tags=["authentication"])


# Request Models
class RegisterRequest(BaseModel):
    """Public self-registration request. Fields are validated by AuthService so the admin check runs first."""
    name: str = ""
    email: str = ""
    password: str = ""
    role: str = "STUDENT"


class LoginRequest(BaseModel):
    email: str
    password: str


class ChangePasswordRequest(BaseModel):
    currentPassword: str
    newPassword: str


@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(
    register_data: RegisterRequest,
    db: Session = Depends(get_db_session)
):
    """Create a student account. Admin accounts are refused."""
    user = AuthService.register(
        db,
        name=register_data.name,
        email=register_data.email,
        password=register_data.password,
        role=register_data.role
    )
    return {
        "success": True,
        "message": "Registration successful",
        "user": user_to_dict(user),
    }


@router.post("/login")
async def login(
    login_data: LoginRequest,
    db: Session = Depends(get_db_session)
):
    user, token = AuthService.login(db, login_data.email, login_data.password)
    return {
        "accessToken": token,
        "tokenType": "bearer",
        "expiresIn": config.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "user": user_to_dict(user, include_profile=False),
    }


@router.get("/me")
async def me(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db_session)
):
    """Current user with profile."""
    user = db.query(User).options(joinedload(User.profile)).filter(User.id == current_user.id).first()
    return user_to_dict(user)


@router.post("/change-password")
async def change_password(
    password_data: ChangePasswordRequest,
    identity: Identity = Depends(get_identity),
    db: Session = Depends(get_db_session)
):
    AuthService.change_password(db, identity, password_data.currentPassword, password_data.newPassword)
    return {"success": True, "message": "Password changed successfully"}
