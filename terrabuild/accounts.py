"""User accounts: creation, bcrypt password checks and activation."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import bcrypt
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.db.models import UserModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import NotFoundError
from terrabuild.models import InsertUser, to_columns, validate_insert

logger = structlog.get_logger(__name__)

BCRYPT_ROUNDS = 12


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode()


def check_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        return False


async def create_user(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertUser,
) -> UserModel:
    """Create a user account (administrators only).

    Raises:
        RecordValidationError: payload rejected
        ConstraintViolationError: username already taken
    """
    ctx.require_admin()
    record = validate_insert(InsertUser, payload)

    values = to_columns(record)
    values["password"] = hash_password(record.password)
    user = UserModel(**values)
    session.add(user)
    await flush_or_raise(session, user)

    logger.info("user_created", user_id=user.id, username=user.username, role=user.role)
    return user


async def get_user(session: AsyncSession, user_id: int) -> UserModel:
    user = await session.get(UserModel, user_id)
    if user is None:
        raise NotFoundError("User", user_id)
    return user


async def get_user_by_username(session: AsyncSession, username: str) -> UserModel | None:
    result = await session.execute(select(UserModel).where(UserModel.username == username))
    return result.scalar_one_or_none()


async def authenticate(session: AsyncSession, username: str, password: str) -> UserModel | None:
    """Return the user when the credentials match an active account."""
    user = await get_user_by_username(session, username)
    if user is None or not user.is_active:
        logger.info("login_rejected", username=username)
        return None
    if not check_password(password, user.password):
        logger.info("login_rejected", username=username)
        return None
    return user


async def set_user_active(
    session: AsyncSession, ctx: RequestContext, user_id: int, active: bool
) -> UserModel:
    ctx.require_admin()
    user = await get_user(session, user_id)
    user.is_active = active
    await flush_or_raise(session, user)
    logger.info("user_active_changed", user_id=user_id, active=active)
    return user
