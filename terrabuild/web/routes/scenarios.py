"""What-if scenario routes.

Routes:
- GET    /api/scenarios                   - Caller's scenarios (savedOnly filter)
- POST   /api/scenarios                   - Create a scenario
- GET    /api/scenarios/{id}              - Scenario with variations and impacts
- POST   /api/scenarios/{id}/variations   - Add a parameter variation
- POST   /api/scenarios/{id}/impacts      - Record an impact analysis
- POST   /api/scenarios/{id}/save         - Mark saved
- PUT    /api/scenarios/{id}/results      - Replace computed results
- DELETE /api/scenarios/{id}              - Delete with variations and impacts
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from terrabuild.core.context import RequestContext
from terrabuild.db.connection import get_session
from terrabuild.models import to_wire
from terrabuild.scenarios import whatif
from terrabuild.web.dependencies import get_request_context

router = APIRouter(prefix="/api/scenarios", tags=["scenarios"])


class ImpactRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    analysis_type: str
    impact_summary: dict[str, Any]


@router.get("")
async def list_scenarios(
    saved_only: bool = Query(default=False, alias="savedOnly"),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        rows = await whatif.list_scenarios(session, ctx.user_id, saved_only)
        return [to_wire(row) for row in rows]


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_scenario(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await whatif.create_scenario(session, ctx, payload))


@router.get("/{scenario_id}")
async def get_scenario(scenario_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        detail = await whatif.get_scenario_detail(session, ctx, scenario_id)
        return detail.to_wire()


@router.post("/{scenario_id}/variations", status_code=status.HTTP_201_CREATED)
async def add_variation(
    scenario_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await whatif.add_variation(session, ctx, scenario_id, payload))


@router.post("/{scenario_id}/impacts", status_code=status.HTTP_201_CREATED)
async def record_impact(
    scenario_id: int,
    body: ImpactRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        impact = await whatif.record_impact(
            session, ctx, scenario_id, body.analysis_type, body.impact_summary
        )
        return to_wire(impact)


@router.post("/{scenario_id}/save")
async def save_scenario(scenario_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        return to_wire(await whatif.save_scenario(session, ctx, scenario_id))


@router.put("/{scenario_id}/results")
async def update_results(
    scenario_id: int,
    results: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await whatif.update_results(session, ctx, scenario_id, results))


@router.delete("/{scenario_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_scenario(scenario_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        await whatif.delete_scenario(session, ctx, scenario_id)
