"""What-if scenarios: parameter variations on a base calculation.

Scenarios belong to their creator; only the owner or an administrator may
change them. Deleting a scenario removes its variations and impact records.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, DecimalException, InvalidOperation
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.calculations.history import get_calculation
from terrabuild.core.context import RequestContext
from terrabuild.core.timeutil import utcnow
from terrabuild.db.models import ScenarioImpactModel, ScenarioVariationModel, WhatIfScenarioModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import NotFoundError, PermissionDeniedError
from terrabuild.models import (
    InsertScenarioImpact,
    InsertScenarioVariation,
    InsertWhatIfScenario,
    to_columns,
    to_wire,
    validate_insert,
)

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")
# numeric(14, 2) upper bound for impact_value
MAX_IMPACT = Decimal("999999999999.99")
# numeric(5, 2) upper bound for impact_percentage
MAX_PERCENTAGE = Decimal("999.99")


@dataclass
class ScenarioDetail:
    scenario: WhatIfScenarioModel
    variations: list[ScenarioVariationModel]
    impacts: list[ScenarioImpactModel]

    def to_wire(self) -> dict[str, Any]:
        return {
            **to_wire(self.scenario),
            "variations": [to_wire(variation) for variation in self.variations],
            "impacts": [to_wire(impact) for impact in self.impacts],
        }


def _as_decimal(value: Any) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        parsed = Decimal(str(value))
    except InvalidOperation:
        return None
    return parsed if parsed.is_finite() else None


def compute_impact(original: Any, new: Any) -> tuple[Decimal | None, Decimal | None]:
    """Absolute and percentage change between two numeric values.

    Non-numeric values yield ``(None, None)``, as does a change too large for
    the stored precision. A zero original yields no percentage, as does one
    too large to store.
    """
    before = _as_decimal(original)
    after = _as_decimal(new)
    if before is None or after is None:
        return None, None

    try:
        impact = (after - before).quantize(CENTS, rounding=ROUND_HALF_UP)
    except DecimalException:
        return None, None
    if abs(impact) > MAX_IMPACT:
        return None, None
    if before == 0:
        return impact, None
    try:
        percentage = ((after - before) / before * 100).quantize(CENTS, rounding=ROUND_HALF_UP)
    except DecimalException:
        return impact, None
    if abs(percentage) > MAX_PERCENTAGE:
        return impact, None
    return impact, percentage


async def _owned_scenario(
    session: AsyncSession, ctx: RequestContext, scenario_id: int
) -> WhatIfScenarioModel:
    scenario = await session.get(WhatIfScenarioModel, scenario_id)
    if scenario is None:
        raise NotFoundError("WhatIfScenario", scenario_id)
    if scenario.user_id != ctx.user_id and not ctx.is_admin:
        raise PermissionDeniedError(f"Scenario {scenario_id} belongs to another user")
    return scenario


async def create_scenario(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertWhatIfScenario,
) -> WhatIfScenarioModel:
    if isinstance(payload, Mapping) and not {"userId", "user_id"} & payload.keys():
        payload = {**payload, "userId": ctx.user_id}
    record = validate_insert(InsertWhatIfScenario, payload)
    if record.user_id != ctx.user_id and not ctx.is_admin:
        raise PermissionDeniedError("Scenarios can only be created for your own account")
    if record.base_calculation_id is not None:
        await get_calculation(session, record.base_calculation_id)

    scenario = WhatIfScenarioModel(**to_columns(record))
    session.add(scenario)
    await flush_or_raise(session, scenario)
    logger.info("scenario_created", scenario_id=scenario.id, user_id=scenario.user_id)
    return scenario


async def add_variation(
    session: AsyncSession,
    ctx: RequestContext,
    scenario_id: int,
    payload: Mapping[str, Any],
) -> ScenarioVariationModel:
    """Add a parameter change; impact figures are derived when not supplied."""
    await _owned_scenario(session, ctx, scenario_id)
    record = validate_insert(InsertScenarioVariation, {**payload, "scenarioId": scenario_id})

    if record.impact_value is None and record.impact_percentage is None:
        impact, percentage = compute_impact(record.original_value, record.new_value)
        record = validate_insert(
            InsertScenarioVariation,
            {**record.model_dump(), "impact_value": impact, "impact_percentage": percentage},
        )

    variation = ScenarioVariationModel(**to_columns(record))
    session.add(variation)
    await flush_or_raise(session, variation)
    logger.info(
        "scenario_variation_added",
        scenario_id=scenario_id,
        variation_id=variation.id,
        parameter_key=variation.parameter_key,
    )
    return variation


async def record_impact(
    session: AsyncSession,
    ctx: RequestContext,
    scenario_id: int,
    analysis_type: str,
    impact_summary: dict[str, Any],
) -> ScenarioImpactModel:
    await _owned_scenario(session, ctx, scenario_id)
    record = validate_insert(
        InsertScenarioImpact,
        {"scenarioId": scenario_id, "analysisType": analysis_type, "impactSummary": impact_summary},
    )
    impact = ScenarioImpactModel(**to_columns(record))
    session.add(impact)
    await flush_or_raise(session, impact)
    return impact


async def list_scenarios(
    session: AsyncSession, user_id: int, saved_only: bool = False
) -> list[WhatIfScenarioModel]:
    stmt = select(WhatIfScenarioModel).where(WhatIfScenarioModel.user_id == user_id)
    if saved_only:
        stmt = stmt.where(WhatIfScenarioModel.is_saved.is_(True))
    stmt = stmt.order_by(WhatIfScenarioModel.updated_at.desc(), WhatIfScenarioModel.id.desc())
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def get_scenario_detail(
    session: AsyncSession, ctx: RequestContext, scenario_id: int
) -> ScenarioDetail:
    scenario = await _owned_scenario(session, ctx, scenario_id)
    variations = await session.execute(
        select(ScenarioVariationModel)
        .where(ScenarioVariationModel.scenario_id == scenario_id)
        .order_by(ScenarioVariationModel.id)
    )
    impacts = await session.execute(
        select(ScenarioImpactModel)
        .where(ScenarioImpactModel.scenario_id == scenario_id)
        .order_by(ScenarioImpactModel.calculated_at.desc(), ScenarioImpactModel.id.desc())
    )
    return ScenarioDetail(
        scenario=scenario,
        variations=list(variations.scalars().all()),
        impacts=list(impacts.scalars().all()),
    )


async def save_scenario(
    session: AsyncSession, ctx: RequestContext, scenario_id: int
) -> WhatIfScenarioModel:
    scenario = await _owned_scenario(session, ctx, scenario_id)
    scenario.is_saved = True
    scenario.updated_at = utcnow()
    await flush_or_raise(session, scenario)
    return scenario


async def update_results(
    session: AsyncSession, ctx: RequestContext, scenario_id: int, results: dict[str, Any]
) -> WhatIfScenarioModel:
    scenario = await _owned_scenario(session, ctx, scenario_id)
    scenario.results = dict(results)
    scenario.updated_at = utcnow()
    await flush_or_raise(session, scenario)
    return scenario


async def delete_scenario(session: AsyncSession, ctx: RequestContext, scenario_id: int) -> None:
    scenario = await _owned_scenario(session, ctx, scenario_id)
    await session.execute(
        delete(ScenarioVariationModel).where(ScenarioVariationModel.scenario_id == scenario_id)
    )
    await session.execute(
        delete(ScenarioImpactModel).where(ScenarioImpactModel.scenario_id == scenario_id)
    )
    await session.delete(scenario)
    await flush_or_raise(session, scenario)
    logger.info("scenario_deleted", scenario_id=scenario_id, user_id=ctx.user_id)
