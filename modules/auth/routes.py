"""
Auth Routes
=============
Register, password login, current user.
"""

from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import EmailStr, Field
from sqlalchemy.orm import Session

from config.database import get_db
from common.schemas import CamelModel
from modules.auth.deps import get_current_user
from modules.auth.service import auth_service

router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterPayload(CamelModel):
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)
    full_name: str = Field(min_length=1, max_length=200)
    phone_number: Optional[str] = None


class LoginPayload(CamelModel):
    email: EmailStr
    password: str


class TokenResponse(CamelModel):
    access_token: str
    token_type: str = "bearer"


class UserRead(CamelModel):
    id: int
    email: str
    full_name: str
    phone_number: Optional[str] = None
    role: str


@router.post("/register", response_model=UserRead, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterPayload, db: Session = Depends(get_db)):
    user = auth_service.register(
        db,
        email=str(payload.email),
        password=payload.password,
        full_name=payload.full_name,
        phone_number=payload.phone_number,
    )
    db.commit()
    db.refresh(user)
    return user


@router.post("/login", response_model=TokenResponse)
def login(payload: LoginPayload, db: Session = Depends(get_db)):
    token = auth_service.login(db, str(payload.email), payload.password)
    return TokenResponse(access_token=token)


@router.get("/me", response_model=UserRead)
def me(user=Depends(get_current_user)):
    return user
