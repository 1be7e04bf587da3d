"""
User account persistence: registration, credential checks, admin updates.
"""

from __future__ import annotations

from typing import Any, Optional

from loguru import logger

from bikerhub import database
from bikerhub.auth import hash_password, verify_password
from bikerhub.errors import AppError, AuthError, NotFoundError
from bikerhub.responses import skip_for
from bikerhub.schemas import User


async def get_user(user_id: str) -> User:
    doc = await database.get_document(database.USERS, user_id)
    if not doc:
        raise NotFoundError("User not found")
    return User.model_validate(doc)


async def find_user(filter_dict: dict[str, Any]) -> Optional[User]:
    docs = await database.get_documents(database.USERS, filter_dict, limit=1)
    return User.model_validate(docs[0]) if docs else None


async def create_user(username: str, email: str, password: str, **fields: Any) -> User:
    email = email.lower()
    if await find_user({"email": email}):
        raise AppError("User with this email already exists", 400)
    if await find_user({"username": username}):
        raise AppError("Username already taken", 400)

    user = User(username=username, email=email, password=hash_password(password), **fields)
    doc = await database.create_document(database.USERS, user.to_mongo())
    logger.info("Registered user {} ({})", username, email)
    return User.model_validate(doc)


async def authenticate(email: str, password: str) -> User:
    user = await find_user({"email": email.lower()})
    if user is None or not verify_password(password, user.password):
        raise AuthError("Invalid credentials")
    if not user.is_active:
        raise AuthError("Account is deactivated")

    doc = await database.update_document(database.USERS, user.id, {"last_login": database.utcnow()})
    return User.model_validate(doc)


async def list_users(role: Optional[str], page: int, limit: int) -> tuple[list[User], int]:
    filter_dict = {"role": role} if role else {}
    docs = await database.get_documents(
        database.USERS,
        filter_dict,
        limit=limit,
        skip=skip_for(page, limit),
        sort=[("created_at", -1)],
    )
    total = await database.count_documents(database.USERS, filter_dict)
    return [User.model_validate(d) for d in docs], total


async def update_user(user: User, changes: dict[str, Any]) -> User:
    if "email" in changes and changes["email"]:
        changes["email"] = changes["email"].lower()
        existing = await find_user({"email": changes["email"]})
        if existing and existing.id != user.id:
            raise AppError("User with this email already exists", 400)

    # Validate the merged document before writing it.
    merged = User.model_validate({**user.model_dump(), **changes})
    doc = await database.update_document(database.USERS, user.id, merged.to_mongo())
    return User.model_validate(doc)


async def delete_user(user_id: str) -> None:
    if not await database.delete_document(database.USERS, user_id):
        raise NotFoundError("User not found")
    logger.info("Deleted user {}", user_id)


async def change_password(user: User, current_password: str, new_password: str) -> User:
    if not verify_password(current_password, user.password):
        raise AppError("Current password is incorrect", 400)
    doc = await database.update_document(database.USERS, user.id, {"password": hash_password(new_password)})
    logger.info("Password changed for {}", user.username)
    return User.model_validate(doc)
