"""Cost matrix and cost factor routes.

Routes:
- GET  /api/cost-matrices                      - List matrices (filters)
- POST /api/cost-matrices                      - Create a matrix
- PUT  /api/cost-matrices                      - Upsert on (region, buildingType, matrixYear)
- GET  /api/cost-matrices/{id}                 - One matrix
- POST /api/cost-matrices/{id}/deactivate      - Mark inactive
- GET  /api/cost-factors                       - List regional factors
- POST /api/cost-factors                       - Create a factor
- GET  /api/cost-factors/presets               - Current user's presets
- POST /api/cost-factors/presets               - Create a preset
- POST /api/cost-factors/presets/{id}/default  - Make a preset the default
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, Response, status

from terrabuild.core.context import RequestContext
from terrabuild.costs import factors, matrices
from terrabuild.db.connection import get_session
from terrabuild.models import to_wire
from terrabuild.web.dependencies import get_request_context

router = APIRouter(tags=["cost-matrices"])


@router.get("/api/cost-matrices")
async def list_cost_matrices(
    region: str | None = Query(default=None),
    building_type: str | None = Query(default=None, alias="buildingType"),
    matrix_year: int | None = Query(default=None, alias="matrixYear"),
    county: str | None = Query(default=None),
    state: str | None = Query(default=None),
    is_active: bool | None = Query(default=None, alias="isActive"),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        rows = await matrices.list_cost_matrices(
            session,
            region=region,
            building_type=building_type,
            matrix_year=matrix_year,
            county=county,
            state=state,
            is_active=is_active,
        )
        return [to_wire(row) for row in rows]


@router.post("/api/cost-matrices", status_code=status.HTTP_201_CREATED)
async def create_cost_matrix(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        matrix = await matrices.create_cost_matrix(session, ctx, payload)
        return to_wire(matrix)


@router.put("/api/cost-matrices")
async def upsert_cost_matrix(
    response: Response,
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        matrix, created = await matrices.upsert_cost_matrix(session, ctx, payload)
        if created:
            response.status_code = status.HTTP_201_CREATED
        return to_wire(matrix)


@router.get("/api/cost-matrices/{matrix_id}")
async def get_cost_matrix(matrix_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        return to_wire(await matrices.get_cost_matrix(session, matrix_id))


@router.post("/api/cost-matrices/{matrix_id}/deactivate")
async def deactivate_cost_matrix(
    matrix_id: int, ctx: RequestContext = Depends(get_request_context)
):
    async with get_session() as session:
        return to_wire(await matrices.deactivate_cost_matrix(session, ctx, matrix_id))


# ============================================================================
# Cost factors
# ============================================================================


@router.get("/api/cost-factors")
async def list_cost_factors(
    region: str | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        rows = await factors.list_cost_factors(session, region=region)
        return [to_wire(row) for row in rows]


@router.post("/api/cost-factors", status_code=status.HTTP_201_CREATED)
async def create_cost_factor(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await factors.create_cost_factor(session, ctx, payload))


@router.get("/api/cost-factors/presets")
async def list_presets(ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        rows = await factors.list_cost_factor_presets(session, ctx.user_id)
        return [to_wire(row) for row in rows]


@router.post("/api/cost-factors/presets", status_code=status.HTTP_201_CREATED)
async def create_preset(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await factors.create_cost_factor_preset(session, ctx, payload))


@router.post("/api/cost-factors/presets/{preset_id}/default")
async def set_default_preset(preset_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        return to_wire(await factors.set_default_preset(session, ctx, preset_id))
