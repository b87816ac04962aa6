"""Calculation history routes (append-only: no PUT, PATCH or DELETE).

Routes:
- GET  /api/calculations       - Caller's calculations (admins may pass userId)
- POST /api/calculations       - Record a calculation snapshot
- GET  /api/calculations/{id}  - One calculation
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status

from terrabuild.calculations import history
from terrabuild.core.context import RequestContext
from terrabuild.db.connection import get_session
from terrabuild.errors import PermissionDeniedError
from terrabuild.models import to_wire
from terrabuild.web.dependencies import get_request_context

router = APIRouter(prefix="/api/calculations", tags=["calculations"])


@router.get("")
async def list_calculations(
    user_id: int | None = Query(default=None, alias="userId"),
    region: str | None = Query(default=None),
    building_type: str | None = Query(default=None, alias="buildingType"),
    limit: int = Query(default=50, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
):
    owner = user_id if user_id is not None else ctx.user_id
    if owner != ctx.user_id and not ctx.is_admin:
        raise PermissionDeniedError("Only administrators can list other users' calculations")

    async with get_session() as session:
        rows = await history.list_calculations(
            session, user_id=owner, region=region, building_type=building_type, limit=limit
        )
        return [to_wire(row) for row in rows]


@router.post("", status_code=status.HTTP_201_CREATED)
async def record_calculation(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await history.record_calculation(session, ctx, payload))


@router.get("/{calculation_id}")
async def get_calculation(calculation_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        calculation = await history.get_calculation(session, calculation_id)
        if calculation.user_id != ctx.user_id and not ctx.is_admin:
            raise PermissionDeniedError(f"Calculation {calculation_id} belongs to another user")
        return to_wire(calculation)
