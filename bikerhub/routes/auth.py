from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, EmailStr, Field

from bikerhub.auth import decode_token, get_current_user, issue_tokens, load_token_user
from bikerhub.errors import AuthError
from bikerhub.responses import envelope
from bikerhub.schemas import User
from bikerhub.services import users as user_service

router = APIRouter(prefix="/api/auth", tags=["auth"])


class RegisterIn(BaseModel):
    username: str = Field(min_length=3, max_length=30, pattern=r"^[A-Za-z0-9_]+$")
    email: EmailStr
    password: str = Field(min_length=6)
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = None


class LoginIn(BaseModel):
    email: EmailStr
    password: str = Field(min_length=1)


class RefreshIn(BaseModel):
    refresh_token: str


@router.get("/test")
async def auth_test():
    return envelope("Auth route working", {"status": "active"})


@router.post("/register", status_code=201)
async def register(payload: RegisterIn):
    user = await user_service.create_user(**payload.model_dump())
    return envelope("User registered successfully", {"user": user.public(), **issue_tokens(user)})


@router.post("/login")
async def login(payload: LoginIn):
    user = await user_service.authenticate(payload.email, payload.password)
    return envelope("Login successful", {"user": user.public(), **issue_tokens(user)})


@router.post("/refresh")
async def refresh(payload: RefreshIn):
    data = decode_token(payload.refresh_token, expected_type="refresh")
    user = await load_token_user(data)
    if not user.is_active:
        raise AuthError("Account is deactivated")
    return envelope("Token refreshed", issue_tokens(user))


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return envelope("Current user", user.public())
