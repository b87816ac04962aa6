"""Dashboard summary route."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from terrabuild.core.context import RequestContext
from terrabuild.db.connection import get_session
from terrabuild.reporting.dashboard import compute_dashboard_stats
from terrabuild.web.dependencies import get_request_context

router = APIRouter(prefix="/api/dashboard", tags=["dashboard"])


@router.get("")
async def dashboard_stats(ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        stats = await compute_dashboard_stats(session)
        return stats.to_wire()
