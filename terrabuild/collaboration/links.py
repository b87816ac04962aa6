"""Shareable project links.

A link grants its access level to whoever holds the token until
``expires_at``. After that the link is invalid even though its row remains.
"""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.collaboration.activity import record_activity
from terrabuild.collaboration.projects import require_project_role
from terrabuild.config import get_config
from terrabuild.core.context import RequestContext
from terrabuild.core.timeutil import as_utc, utcnow
from terrabuild.db.models import SharedLinkModel, SharedProjectModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import ExpiredLinkError, InvalidStateError, NotFoundError
from terrabuild.models import (
    AccessLevel,
    InsertSharedLink,
    ProjectRole,
    ProjectStatus,
    to_columns,
    validate_insert,
)

logger = structlog.get_logger(__name__)


def generate_token() -> str:
    return secrets.token_urlsafe(get_config().collaboration.shared_link_token_bytes)


def is_expired(link: SharedLinkModel, now: datetime | None = None) -> bool:
    expires_at = as_utc(link.expires_at)
    if expires_at is None:
        return False
    return (as_utc(now) or utcnow()) >= expires_at


async def create_shared_link(
    session: AsyncSession,
    ctx: RequestContext,
    project_id: int,
    access_level: str = AccessLevel.VIEW.value,
    expires_at: datetime | None = None,
    description: str | None = None,
) -> SharedLinkModel:
    """Create a link for a project (project admins only).

    Without ``expires_at`` the configured default expiry applies, if any.
    """
    await require_project_role(session, ctx, project_id, ProjectRole.ADMIN.value)

    if expires_at is None:
        expiry_days = get_config().collaboration.default_link_expiry_days
        if expiry_days:
            expires_at = utcnow() + timedelta(days=expiry_days)

    record = validate_insert(
        InsertSharedLink,
        {
            "projectId": project_id,
            "token": generate_token(),
            "accessLevel": access_level,
            "expiresAt": expires_at,
            "createdBy": ctx.user_id,
            "description": description,
        },
    )
    link = SharedLinkModel(**to_columns(record))
    session.add(link)
    await flush_or_raise(session, link)

    await record_activity(
        session,
        ctx,
        project_id,
        "link_created",
        {"linkId": link.id, "accessLevel": link.access_level},
    )
    logger.info("shared_link_created", link_id=link.id, project_id=project_id)
    return link


async def resolve_shared_link(
    session: AsyncSession, token: str, now: datetime | None = None
) -> tuple[SharedLinkModel, SharedProjectModel]:
    """Return the link and its project for a token.

    Raises:
        NotFoundError: unknown token
        ExpiredLinkError: ``expires_at`` has passed
        InvalidStateError: the project has been archived
    """
    result = await session.execute(select(SharedLinkModel).where(SharedLinkModel.token == token))
    link = result.scalar_one_or_none()
    if link is None:
        raise NotFoundError("SharedLink", "<token>")
    if is_expired(link, now):
        raise ExpiredLinkError(f"Shared link {link.id} expired at {as_utc(link.expires_at).isoformat()}")

    project = await session.get(SharedProjectModel, link.project_id)
    if project is None:
        raise NotFoundError("SharedProject", link.project_id)
    if project.status == ProjectStatus.ARCHIVED.value:
        raise InvalidStateError(f"Project {project.id} is archived")
    return link, project


async def list_shared_links(
    session: AsyncSession, ctx: RequestContext, project_id: int
) -> list[SharedLinkModel]:
    await require_project_role(
        session, ctx, project_id, ProjectRole.ADMIN.value, for_write=False
    )
    stmt = (
        select(SharedLinkModel)
        .where(SharedLinkModel.project_id == project_id)
        .order_by(SharedLinkModel.created_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def revoke_shared_link(
    session: AsyncSession, ctx: RequestContext, project_id: int, link_id: int
) -> None:
    await require_project_role(session, ctx, project_id, ProjectRole.ADMIN.value)
    link = await session.get(SharedLinkModel, link_id)
    if link is None or link.project_id != project_id:
        raise NotFoundError("SharedLink", link_id)

    await session.delete(link)
    await flush_or_raise(session, link)
    await record_activity(session, ctx, project_id, "link_revoked", {"linkId": link_id})
    logger.info("shared_link_revoked", link_id=link_id, project_id=project_id)
