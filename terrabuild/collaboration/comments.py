"""Threaded comments on calculations, matrices, estimates, scenarios and projects."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.collaboration.activity import record_activity
from terrabuild.collaboration.projects import require_project_role
from terrabuild.collaboration.targets import ensure_target_exists
from terrabuild.core.context import RequestContext
from terrabuild.core.timeutil import utcnow
from terrabuild.db.models import CommentModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import NotFoundError, PermissionDeniedError, RecordValidationError
from terrabuild.models import (
    CommentTargetType,
    InsertComment,
    ProjectRole,
    to_columns,
    to_wire,
    validate_insert,
)

logger = structlog.get_logger(__name__)


@dataclass
class CommentThread:
    comment: CommentModel
    replies: list[CommentThread] = field(default_factory=list)

    def to_wire(self) -> dict[str, Any]:
        return {**to_wire(self.comment), "replies": [reply.to_wire() for reply in self.replies]}


async def _get_comment(session: AsyncSession, comment_id: int) -> CommentModel:
    comment = await session.get(CommentModel, comment_id)
    if comment is None:
        raise NotFoundError("Comment", comment_id)
    return comment


async def _check_project_access(
    session: AsyncSession, ctx: RequestContext, target_type: str, target_id: int, *, for_write: bool
) -> None:
    # Project threads follow project membership; public projects are readable by all.
    if target_type == CommentTargetType.SHARED_PROJECT.value:
        await require_project_role(
            session, ctx, target_id, ProjectRole.VIEWER.value, for_write=for_write
        )


async def add_comment(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertComment,
) -> CommentModel:
    """Post a comment as the requesting user.

    The target must exist, and a reply must be on the same target as its parent.
    Project threads are open to project members only.
    """
    if isinstance(payload, Mapping):
        payload = {**payload, "userId": ctx.user_id}
        payload.pop("user_id", None)
    record = validate_insert(InsertComment, payload)
    if record.user_id != ctx.user_id:
        raise PermissionDeniedError("Comments are posted as the requesting user")

    await ensure_target_exists(session, record.target_type, record.target_id)
    await _check_project_access(
        session, ctx, record.target_type, record.target_id, for_write=True
    )

    if record.parent_comment_id is not None:
        parent = await _get_comment(session, record.parent_comment_id)
        if (parent.target_type, parent.target_id) != (record.target_type, record.target_id):
            raise RecordValidationError(
                "Comment",
                {"parentCommentId": ["Parent comment belongs to a different target"]},
            )

    comment = CommentModel(**to_columns(record))
    session.add(comment)
    await flush_or_raise(session, comment)

    if comment.target_type == CommentTargetType.SHARED_PROJECT.value:
        await record_activity(
            session, ctx, comment.target_id, "comment_added", {"commentId": comment.id}
        )
    logger.info(
        "comment_added",
        comment_id=comment.id,
        target_type=comment.target_type,
        target_id=comment.target_id,
    )
    return comment


async def edit_comment(
    session: AsyncSession, ctx: RequestContext, comment_id: int, content: str
) -> CommentModel:
    """Replace the text of your own comment."""
    comment = await _get_comment(session, comment_id)
    if comment.user_id != ctx.user_id:
        raise PermissionDeniedError("Only the author can edit a comment")
    content = (content or "").strip()
    if not content:
        raise RecordValidationError("Comment", {"content": ["String should have at least 1 character"]})

    comment.content = content
    comment.is_edited = True
    comment.updated_at = utcnow()
    await flush_or_raise(session, comment)
    return comment


async def resolve_comment(
    session: AsyncSession, ctx: RequestContext, comment_id: int, resolved: bool = True
) -> CommentModel:
    comment = await _get_comment(session, comment_id)
    if comment.user_id != ctx.user_id and not ctx.is_admin:
        raise PermissionDeniedError("Only the author or an administrator can resolve a comment")

    comment.is_resolved = resolved
    comment.updated_at = utcnow()
    await flush_or_raise(session, comment)
    logger.info("comment_resolved", comment_id=comment_id, resolved=resolved)
    return comment


async def list_comments(
    session: AsyncSession, ctx: RequestContext, target_type: str, target_id: int
) -> list[CommentThread]:
    """Comments on a target as threads, oldest first at every level."""
    await _check_project_access(session, ctx, target_type, target_id, for_write=False)
    stmt = (
        select(CommentModel)
        .where(CommentModel.target_type == target_type, CommentModel.target_id == target_id)
        .order_by(CommentModel.created_at, CommentModel.id)
    )
    comments = list((await session.execute(stmt)).scalars().all())

    threads = {comment.id: CommentThread(comment) for comment in comments}
    roots: list[CommentThread] = []
    for comment in comments:
        parent = threads.get(comment.parent_comment_id) if comment.parent_comment_id else None
        if parent is None:
            roots.append(threads[comment.id])
        else:
            parent.replies.append(threads[comment.id])
    return roots
