"""References from a project to calculations, matrices, estimates and scenarios."""

from __future__ import annotations

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.collaboration.activity import record_activity
from terrabuild.collaboration.projects import get_project, require_project_role
from terrabuild.collaboration.targets import ensure_target_exists
from terrabuild.core.context import RequestContext
from terrabuild.db.models import ProjectItemModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import NotFoundError
from terrabuild.models import InsertProjectItem, ProjectRole, to_columns, validate_insert

logger = structlog.get_logger(__name__)


async def add_project_item(
    session: AsyncSession,
    ctx: RequestContext,
    project_id: int,
    item_type: str,
    item_id: int,
) -> ProjectItemModel:
    """Attach an existing record to a project.

    Raises:
        NotFoundError: the referenced record does not exist
        ConstraintViolationError: already attached (``project_item_idx``)
    """
    record = validate_insert(
        InsertProjectItem,
        {"projectId": project_id, "itemType": item_type, "itemId": item_id, "addedBy": ctx.user_id},
    )
    await require_project_role(session, ctx, project_id, ProjectRole.EDITOR.value)
    await ensure_target_exists(session, record.item_type, record.item_id)

    item = ProjectItemModel(**to_columns(record))
    session.add(item)
    await flush_or_raise(session, item)

    await record_activity(
        session, ctx, project_id, "item_added", {"itemType": item.item_type, "itemId": item.item_id}
    )
    logger.info(
        "project_item_added", project_id=project_id, item_type=item.item_type, item_id=item.item_id
    )
    return item


async def remove_project_item(
    session: AsyncSession,
    ctx: RequestContext,
    project_id: int,
    item_type: str,
    item_id: int,
) -> None:
    await require_project_role(session, ctx, project_id, ProjectRole.EDITOR.value)
    stmt = select(ProjectItemModel).where(
        ProjectItemModel.project_id == project_id,
        ProjectItemModel.item_type == item_type,
        ProjectItemModel.item_id == item_id,
    )
    item = (await session.execute(stmt)).scalar_one_or_none()
    if item is None:
        raise NotFoundError("ProjectItem", (project_id, item_type, item_id))

    await session.delete(item)
    await flush_or_raise(session, item)
    await record_activity(
        session, ctx, project_id, "item_removed", {"itemType": item_type, "itemId": item_id}
    )


async def list_project_items(
    session: AsyncSession,
    ctx: RequestContext,
    project_id: int,
    item_type: str | None = None,
) -> list[ProjectItemModel]:
    await get_project(session, ctx, project_id)
    stmt = select(ProjectItemModel).where(ProjectItemModel.project_id == project_id)
    if item_type is not None:
        stmt = stmt.where(ProjectItemModel.item_type == item_type)
    stmt = stmt.order_by(ProjectItemModel.added_at, ProjectItemModel.id)
    result = await session.execute(stmt)
    return list(result.scalars().all())
