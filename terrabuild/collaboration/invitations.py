"""Project invitations: pending -> accepted | declined.

Accepting creates exactly one membership with the invited role. Accepted and
declined invitations are terminal; there is one invitation row per (project,
user), reopened when a user who is no longer a member is invited again.
"""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.accounts import get_user
from terrabuild.collaboration.activity import record_activity
from terrabuild.collaboration.projects import get_membership, parse_role, require_project_role
from terrabuild.core.context import RequestContext
from terrabuild.core.timeutil import utcnow
from terrabuild.db.models import ProjectInvitationModel, ProjectMemberModel, SharedProjectModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import (
    ConstraintViolationError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
)
from terrabuild.models import (
    InsertProjectInvitation,
    InsertProjectMember,
    InvitationStatus,
    ProjectRole,
    ProjectStatus,
    to_columns,
    validate_insert,
)

logger = structlog.get_logger(__name__)


async def invite_user(
    session: AsyncSession,
    ctx: RequestContext,
    project_id: int,
    user_id: int,
    role: str = ProjectRole.VIEWER.value,
) -> ProjectInvitationModel:
    """Invite a user to a project (project admins only).

    A user whose earlier invitation was answered (declined, or accepted and
    later removed from the project) can be invited again.

    Raises:
        ConstraintViolationError: the user is already a member
            (``project_user_idx``) or already has a pending invitation
            (``project_invitation_idx``)
    """
    role = parse_role(role)
    await require_project_role(session, ctx, project_id, ProjectRole.ADMIN.value)
    await get_user(session, user_id)

    if await get_membership(session, project_id, user_id) is not None:
        raise ConstraintViolationError(
            "project_user_idx",
            ("projectId", "userId"),
            f"User {user_id} is already a member of project {project_id}",
        )

    answered = await _answered_invitation(session, project_id, user_id)
    if answered is not None:
        # Former members and decliners get their old row back as a fresh invitation.
        answered.role = role
        answered.invited_by = ctx.user_id
        answered.status = InvitationStatus.PENDING.value
        answered.invited_at = utcnow()
        invitation = answered
        await flush_or_raise(session, invitation)
    else:
        record = validate_insert(
            InsertProjectInvitation,
            {"projectId": project_id, "userId": user_id, "invitedBy": ctx.user_id, "role": role},
        )
        invitation = ProjectInvitationModel(**to_columns(record))
        session.add(invitation)
        await flush_or_raise(session, invitation)

    await record_activity(
        session, ctx, project_id, "member_invited", {"userId": user_id, "role": role}
    )
    logger.info(
        "invitation_created",
        invitation_id=invitation.id,
        project_id=project_id,
        invited_user_id=user_id,
        role=role,
    )
    return invitation


async def _answered_invitation(
    session: AsyncSession, project_id: int, user_id: int
) -> ProjectInvitationModel | None:
    stmt = select(ProjectInvitationModel).where(
        ProjectInvitationModel.project_id == project_id,
        ProjectInvitationModel.user_id == user_id,
        ProjectInvitationModel.status != InvitationStatus.PENDING.value,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _pending_invitation_for(
    session: AsyncSession, ctx: RequestContext, invitation_id: int
) -> ProjectInvitationModel:
    invitation = await session.get(ProjectInvitationModel, invitation_id)
    if invitation is None:
        raise NotFoundError("ProjectInvitation", invitation_id)
    if invitation.user_id != ctx.user_id:
        raise PermissionDeniedError("Only the invited user can respond to an invitation")
    if invitation.status != InvitationStatus.PENDING.value:
        raise InvalidStateError(
            f"Invitation {invitation_id} is already {invitation.status}"
        )
    return invitation


async def accept_invitation(
    session: AsyncSession, ctx: RequestContext, invitation_id: int
) -> ProjectMemberModel:
    """Accept a pending invitation and join the project with the invited role."""
    invitation = await _pending_invitation_for(session, ctx, invitation_id)

    project = await session.get(SharedProjectModel, invitation.project_id)
    if project is None or project.status == ProjectStatus.ARCHIVED.value:
        raise InvalidStateError(f"Project {invitation.project_id} is no longer active")

    invitation.status = InvitationStatus.ACCEPTED.value
    member_record = validate_insert(
        InsertProjectMember,
        {
            "projectId": invitation.project_id,
            "userId": invitation.user_id,
            "role": invitation.role,
            "invitedBy": invitation.invited_by,
        },
    )
    member = ProjectMemberModel(**to_columns(member_record))
    session.add(member)
    await flush_or_raise(session, invitation, member)

    await record_activity(
        session, ctx, member.project_id, "invitation_accepted", {"role": member.role}
    )
    logger.info(
        "invitation_accepted",
        invitation_id=invitation_id,
        project_id=member.project_id,
        user_id=member.user_id,
    )
    return member


async def decline_invitation(
    session: AsyncSession, ctx: RequestContext, invitation_id: int
) -> ProjectInvitationModel:
    invitation = await _pending_invitation_for(session, ctx, invitation_id)
    invitation.status = InvitationStatus.DECLINED.value
    await flush_or_raise(session, invitation)

    await record_activity(session, ctx, invitation.project_id, "invitation_declined")
    logger.info("invitation_declined", invitation_id=invitation_id)
    return invitation


async def list_pending_invitations(
    session: AsyncSession, user_id: int
) -> list[ProjectInvitationModel]:
    stmt = (
        select(ProjectInvitationModel)
        .where(
            ProjectInvitationModel.user_id == user_id,
            ProjectInvitationModel.status == InvitationStatus.PENDING.value,
        )
        .order_by(ProjectInvitationModel.invited_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_project_invitations(
    session: AsyncSession, ctx: RequestContext, project_id: int
) -> list[ProjectInvitationModel]:
    await require_project_role(
        session, ctx, project_id, ProjectRole.ADMIN.value, for_write=False
    )
    stmt = (
        select(ProjectInvitationModel)
        .where(ProjectInvitationModel.project_id == project_id)
        .order_by(ProjectInvitationModel.invited_at.desc())
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
