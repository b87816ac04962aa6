"""Shared projects and project membership.

Project roles rank viewer < editor < admin. Reading needs viewer (or a public
project), changing project content needs editor, and managing membership needs
admin. Account administrators pass every project check.

Projects are never hard-deleted: ``archive_project`` sets ``status`` to
``archived`` and an archived project rejects further changes.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.collaboration.activity import record_activity
from terrabuild.core.context import RequestContext
from terrabuild.core.timeutil import utcnow
from terrabuild.db.models import ProjectMemberModel, SharedProjectModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import (
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    RecordValidationError,
)
from terrabuild.models import (
    InsertProjectMember,
    InsertSharedProject,
    ProjectRole,
    ProjectStatus,
    UpdateSharedProject,
    to_columns,
    validate_insert,
)

logger = structlog.get_logger(__name__)

ROLE_RANK = {
    ProjectRole.VIEWER.value: 0,
    ProjectRole.EDITOR.value: 1,
    ProjectRole.ADMIN.value: 2,
}


def parse_role(role: str) -> str:
    try:
        return ProjectRole(role).value
    except ValueError:
        allowed = ", ".join(ROLE_RANK)
        raise RecordValidationError(
            "ProjectMember", {"role": [f"Input should be one of: {allowed}"]}
        ) from None


def role_allows(role: str | None, minimum: str) -> bool:
    if role is None:
        return False
    return ROLE_RANK.get(role, -1) >= ROLE_RANK[minimum]


async def get_membership(
    session: AsyncSession, project_id: int, user_id: int
) -> ProjectMemberModel | None:
    stmt = select(ProjectMemberModel).where(
        ProjectMemberModel.project_id == project_id,
        ProjectMemberModel.user_id == user_id,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _load_project(session: AsyncSession, project_id: int) -> SharedProjectModel:
    project = await session.get(SharedProjectModel, project_id)
    if project is None:
        raise NotFoundError("SharedProject", project_id)
    return project


async def require_project_role(
    session: AsyncSession,
    ctx: RequestContext,
    project_id: int,
    minimum: str,
    *,
    for_write: bool = True,
) -> SharedProjectModel:
    """Load a project and check the caller's role in it.

    Raises:
        NotFoundError: no such project
        PermissionDeniedError: caller's role is below ``minimum``
        InvalidStateError: write requested on an archived project
    """
    project = await _load_project(session, project_id)

    if not ctx.is_admin:
        readable_publicly = (
            not for_write and minimum == ProjectRole.VIEWER.value and project.is_public
        )
        if not readable_publicly:
            member = await get_membership(session, project_id, ctx.user_id)
            if not role_allows(member.role if member else None, minimum):
                raise PermissionDeniedError(
                    f"Project {project_id} requires the {minimum} role"
                )

    if for_write and project.status == ProjectStatus.ARCHIVED.value:
        raise InvalidStateError(f"Project {project_id} is archived")
    return project


async def create_project(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertSharedProject,
) -> SharedProjectModel:
    """Create a project; the creator becomes its first admin member."""
    if isinstance(payload, Mapping) and not {"createdById", "created_by_id"} & payload.keys():
        payload = {**payload, "createdById": ctx.user_id}
    record = validate_insert(InsertSharedProject, payload)
    if record.created_by_id != ctx.user_id and not ctx.is_admin:
        raise PermissionDeniedError("Projects can only be created for your own account")

    project = SharedProjectModel(**to_columns(record))
    session.add(project)
    await flush_or_raise(session, project)

    member_record = validate_insert(
        InsertProjectMember,
        {
            "projectId": project.id,
            "userId": project.created_by_id,
            "role": ProjectRole.ADMIN,
            "invitedBy": project.created_by_id,
        },
    )
    member = ProjectMemberModel(**to_columns(member_record))
    session.add(member)
    await flush_or_raise(session, member)

    await record_activity(session, ctx, project.id, "project_created", {"name": project.name})
    logger.info("project_created", project_id=project.id, user_id=ctx.user_id)
    return project


async def get_project(
    session: AsyncSession, ctx: RequestContext, project_id: int
) -> SharedProjectModel:
    return await require_project_role(
        session, ctx, project_id, ProjectRole.VIEWER.value, for_write=False
    )


async def list_projects_for_user(
    session: AsyncSession, user_id: int, include_archived: bool = False
) -> list[SharedProjectModel]:
    """Projects the user is a member of, most recently updated first."""
    stmt = (
        select(SharedProjectModel)
        .join(ProjectMemberModel, ProjectMemberModel.project_id == SharedProjectModel.id)
        .where(ProjectMemberModel.user_id == user_id)
    )
    if not include_archived:
        stmt = stmt.where(SharedProjectModel.status == ProjectStatus.ACTIVE.value)
    stmt = stmt.order_by(SharedProjectModel.updated_at.desc(), SharedProjectModel.id.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def update_project(
    session: AsyncSession,
    ctx: RequestContext,
    project_id: int,
    payload: Mapping[str, Any] | UpdateSharedProject,
) -> SharedProjectModel:
    changes = validate_insert(UpdateSharedProject, payload)
    project = await require_project_role(session, ctx, project_id, ProjectRole.EDITOR.value)

    changed = to_columns(changes, exclude_unset=True)
    for key, value in changed.items():
        setattr(project, key, value)
    project.updated_at = utcnow()
    await flush_or_raise(session, project)

    await record_activity(
        session, ctx, project_id, "project_updated", {"fields": sorted(changed)}
    )
    return project


async def archive_project(
    session: AsyncSession, ctx: RequestContext, project_id: int
) -> SharedProjectModel:
    """Soft-delete: members, items and links stay in place but become read-only."""
    project = await require_project_role(session, ctx, project_id, ProjectRole.ADMIN.value)
    project.status = ProjectStatus.ARCHIVED.value
    project.updated_at = utcnow()
    await flush_or_raise(session, project)

    await record_activity(session, ctx, project_id, "project_archived")
    logger.info("project_archived", project_id=project_id, user_id=ctx.user_id)
    return project


async def list_members(
    session: AsyncSession, ctx: RequestContext, project_id: int
) -> list[ProjectMemberModel]:
    await get_project(session, ctx, project_id)
    stmt = (
        select(ProjectMemberModel)
        .where(ProjectMemberModel.project_id == project_id)
        .order_by(ProjectMemberModel.joined_at, ProjectMemberModel.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _admin_count(session: AsyncSession, project_id: int) -> int:
    stmt = select(func.count(ProjectMemberModel.id)).where(
        ProjectMemberModel.project_id == project_id,
        ProjectMemberModel.role == ProjectRole.ADMIN.value,
    )
    return (await session.execute(stmt)).scalar_one()


async def _member_or_404(
    session: AsyncSession, project_id: int, user_id: int
) -> ProjectMemberModel:
    member = await get_membership(session, project_id, user_id)
    if member is None:
        raise NotFoundError("ProjectMember", (project_id, user_id))
    return member


async def change_member_role(
    session: AsyncSession, ctx: RequestContext, project_id: int, user_id: int, role: str
) -> ProjectMemberModel:
    role = parse_role(role)
    await require_project_role(session, ctx, project_id, ProjectRole.ADMIN.value)
    member = await _member_or_404(session, project_id, user_id)

    if member.role == ProjectRole.ADMIN.value and role != ProjectRole.ADMIN.value:
        if await _admin_count(session, project_id) <= 1:
            raise InvalidStateError(f"Project {project_id} must keep at least one admin")

    previous = member.role
    member.role = role
    await flush_or_raise(session, member)
    await record_activity(
        session,
        ctx,
        project_id,
        "member_role_changed",
        {"userId": user_id, "from": previous, "to": role},
    )
    return member


async def remove_member(
    session: AsyncSession, ctx: RequestContext, project_id: int, user_id: int
) -> None:
    """Remove a member (hard delete). The last admin cannot be removed."""
    await require_project_role(session, ctx, project_id, ProjectRole.ADMIN.value)
    member = await _member_or_404(session, project_id, user_id)

    if member.role == ProjectRole.ADMIN.value and await _admin_count(session, project_id) <= 1:
        raise InvalidStateError(f"Project {project_id} must keep at least one admin")

    await session.delete(member)
    await flush_or_raise(session, member)
    await record_activity(session, ctx, project_id, "member_removed", {"userId": user_id})
    logger.info("project_member_removed", project_id=project_id, user_id=user_id)
