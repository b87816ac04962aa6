"""Resolution of polymorphic (type, id) references.

Comments and project items point at rows in several tables without a foreign
key. This registry maps each reference type to its table so the reference can
be checked before insert.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.db.models import (
    Base,
    BuildingCostModel,
    CalculationHistoryModel,
    CostMatrixModel,
    SharedProjectModel,
    WhatIfScenarioModel,
)
from terrabuild.errors import NotFoundError

TARGET_MODELS: dict[str, type[Base]] = {
    "calculation": CalculationHistoryModel,
    "cost_matrix": CostMatrixModel,
    "building_cost": BuildingCostModel,
    "what_if_scenario": WhatIfScenarioModel,
    "shared_project": SharedProjectModel,
}

async def ensure_target_exists(session: AsyncSession, target_type: str, target_id: int) -> None:
    """Raise NotFoundError unless the referenced row exists."""
    model = TARGET_MODELS.get(target_type)
    if model is None:
        raise NotFoundError("TargetType", target_type)

    result = await session.execute(select(model.id).where(model.id == target_id))
    if result.scalar_one_or_none() is None:
        raise NotFoundError(model.__name__.removesuffix("Model"), target_id)
