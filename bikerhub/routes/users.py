from __future__ import annotations

from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, EmailStr, Field, model_validator

from bikerhub.auth import ensure_owner_or_admin, get_current_user, require_admin
from bikerhub.responses import envelope, pagination
from bikerhub.schemas import AccountStatus, Role, User
from bikerhub.services import users as user_service

router = APIRouter(prefix="/api/users", tags=["users"])

PHONE_PATTERN = r"^\+?[1-9][\d\s\-()]{6,19}$"


class ProfileUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=2, max_length=50)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)


class PasswordChange(BaseModel):
    current_password: str = Field(min_length=1)
    new_password: str = Field(min_length=6)
    confirm_password: Optional[str] = None

    @model_validator(mode="after")
    def passwords_match(self) -> "PasswordChange":
        if self.confirm_password is not None and self.confirm_password != self.new_password:
            raise ValueError("New passwords do not match")
        return self


class AdminUserUpdate(BaseModel):
    role: Optional[Role] = None
    status: Optional[AccountStatus] = None
    is_verified: Optional[bool] = None
    department: Optional[str] = None


@router.get("")
async def list_users(
    role: Optional[Literal["user", "admin", "moderator"]] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    _: User = Depends(require_admin),
):
    users, total = await user_service.list_users(role, page, limit)
    return envelope(
        "Users retrieved",
        [u.public() for u in users],
        pagination=pagination(page, limit, total),
    )


@router.get("/profile")
async def get_profile(user: User = Depends(get_current_user)):
    return envelope("User profile", user.public())


@router.put("/profile")
async def update_profile(payload: ProfileUpdate, user: User = Depends(get_current_user)):
    updated = await user_service.update_user(user, payload.model_dump(exclude_unset=True))
    return envelope("Profile updated successfully", updated.public())


@router.put("/change-password")
async def change_password(payload: PasswordChange, user: User = Depends(get_current_user)):
    await user_service.change_password(user, payload.current_password, payload.new_password)
    return envelope("Password changed successfully", {"id": user.id})


@router.get("/{user_id}")
async def get_user(user_id: str, user: User = Depends(get_current_user)):
    ensure_owner_or_admin(user, user_id)
    target = await user_service.get_user(user_id)
    return envelope("User retrieved", target.public())


@router.patch("/{user_id}")
async def update_user(user_id: str, payload: AdminUserUpdate, _: User = Depends(require_admin)):
    target = await user_service.get_user(user_id)
    updated = await user_service.update_user(target, payload.model_dump(exclude_unset=True))
    return envelope("User updated successfully", updated.public())


@router.delete("/{user_id}")
async def delete_user(user_id: str, _: User = Depends(require_admin)):
    await user_service.delete_user(user_id)
    return envelope("User deleted successfully", {"id": user_id})
