"""
Create the bootstrap admin account from settings.

    python -m bikerhub.create_admin
"""

from __future__ import annotations

import asyncio
import sys

from loguru import logger

from bikerhub import database
from bikerhub.config import settings
from bikerhub.logger import setup_logging
from bikerhub.schemas import User
from bikerhub.services import users as user_service


async def create_admin_user() -> tuple[User, bool]:
    """Return (admin, created). An existing admin is left untouched."""
    existing = await user_service.find_user({"role": "admin"})
    if existing:
        logger.info("Admin user already exists: {} ({})", existing.username, existing.email)
        return existing, False

    admin = await user_service.create_user(
        username=settings.ADMIN_USERNAME,
        email=settings.ADMIN_EMAIL,
        password=settings.ADMIN_PASSWORD,
        first_name="Admin",
        last_name="User",
        role="admin",
        is_verified=True,
        department="Management",
    )
    logger.info("Admin user created: {} ({})", admin.username, admin.email)
    logger.warning("Please change the admin password after first login!")
    return admin, True


async def main() -> int:
    try:
        await database.get_db()
        await database.ensure_indexes()
        await create_admin_user()
    except Exception:
        logger.exception("Error creating admin user")
        return 1
    finally:
        database.close_db()
    return 0


if __name__ == "__main__":
    setup_logging(settings)
    sys.exit(asyncio.run(main()))
