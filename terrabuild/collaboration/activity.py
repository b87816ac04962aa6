"""Project activity log (append-style audit trail for display)."""

from __future__ import annotations

from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.db.models import ProjectActivityModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.models import InsertProjectActivity, to_columns, validate_insert

logger = structlog.get_logger(__name__)


async def record_activity(
    session: AsyncSession,
    ctx: RequestContext,
    project_id: int,
    activity_type: str,
    data: Any = None,
) -> ProjectActivityModel:
    record = validate_insert(
        InsertProjectActivity,
        {
            "projectId": project_id,
            "userId": ctx.user_id,
            "activityType": activity_type,
            "activityData": data,
        },
    )
    activity = ProjectActivityModel(**to_columns(record))
    session.add(activity)
    await flush_or_raise(session, activity)
    logger.debug("project_activity", project_id=project_id, activity_type=activity_type)
    return activity


async def list_activities(
    session: AsyncSession, project_id: int, limit: int = 100
) -> list[ProjectActivityModel]:
    """Newest first."""
    stmt = (
        select(ProjectActivityModel)
        .where(ProjectActivityModel.project_id == project_id)
        .order_by(ProjectActivityModel.created_at.desc(), ProjectActivityModel.id.desc())
        .limit(limit)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())
