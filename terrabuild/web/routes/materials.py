"""Material type, material cost and building cost routes.

Routes:
- GET   /api/material-types
- POST  /api/material-types
- GET   /api/material-costs
- POST  /api/material-costs
- GET   /api/material-costs/resolve   - Applicable cost under a fallback policy
- PATCH /api/material-costs/{id}
- POST  /api/building-costs           - Save an estimate with its material lines
- GET   /api/building-costs/{id}
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status

from terrabuild.core.context import RequestContext
from terrabuild.costs import building_costs, materials
from terrabuild.db.connection import get_session
from terrabuild.models import to_wire
from terrabuild.web.dependencies import get_request_context

router = APIRouter(tags=["materials"])


@router.get("/api/material-types")
async def list_material_types(ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        return [to_wire(row) for row in await materials.list_material_types(session)]


@router.post("/api/material-types", status_code=status.HTTP_201_CREATED)
async def create_material_type(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await materials.create_material_type(session, ctx, payload))


@router.get("/api/material-costs")
async def list_material_costs(
    material_type_id: int | None = Query(default=None, alias="materialTypeId"),
    building_type: str | None = Query(default=None, alias="buildingType"),
    region: str | None = Query(default=None),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        rows = await materials.list_material_costs(
            session,
            material_type_id=material_type_id,
            building_type=building_type,
            region=region,
        )
        return [to_wire(row) for row in rows]


@router.post("/api/material-costs", status_code=status.HTTP_201_CREATED)
async def create_material_cost(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await materials.create_material_cost(session, ctx, payload))


@router.get("/api/material-costs/resolve")
async def resolve_material_cost(
    material_type_id: int = Query(alias="materialTypeId"),
    building_type: str = Query(alias="buildingType"),
    region: str = Query(),
    policy: str | None = Query(default=None, pattern="^(exact|default_region)$"),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        cost = await materials.resolve_material_cost(
            session, material_type_id, building_type, region, policy
        )
        return {"materialCost": to_wire(cost) if cost is not None else None}


@router.patch("/api/material-costs/{material_cost_id}")
async def update_material_cost(
    material_cost_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        cost = await materials.update_material_cost(session, ctx, material_cost_id, payload)
        return to_wire(cost)


@router.post("/api/building-costs", status_code=status.HTTP_201_CREATED)
async def save_building_cost(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    payload = dict(payload)
    lines = payload.pop("materials", None) or []
    async with get_session() as session:
        estimate, rows = await building_costs.save_building_cost(session, ctx, payload, lines)
        return {
            **to_wire(estimate),
            "materials": [to_wire(row) for row in rows],
            "materialTotalMismatch": str(building_costs.material_total_mismatch(estimate, rows)),
        }


@router.get("/api/building-costs/{building_cost_id}")
async def get_building_cost(
    building_cost_id: int, ctx: RequestContext = Depends(get_request_context)
):
    async with get_session() as session:
        estimate = await building_costs.get_building_cost(session, building_cost_id)
        rows = await building_costs.list_building_cost_materials(session, building_cost_id)
        return {**to_wire(estimate), "materials": [to_wire(row) for row in rows]}
