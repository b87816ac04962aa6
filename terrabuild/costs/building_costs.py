"""Saved building cost estimates and their material breakdowns."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.db.models import BuildingCostMaterialModel, BuildingCostModel, MaterialTypeModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import NotFoundError, RecordValidationError
from terrabuild.models import (
    BuildingCostMaterialLine,
    InsertBuildingCost,
    to_columns,
    validate_insert,
)

logger = structlog.get_logger(__name__)


async def save_building_cost(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertBuildingCost,
    materials: Sequence[Mapping[str, Any] | BuildingCostMaterialLine] = (),
) -> tuple[BuildingCostModel, list[BuildingCostMaterialModel]]:
    """Save an estimate and its material lines in the caller's transaction.

    Every line is validated before anything is written; line errors are
    reported as ``materials.<index>.<field>``.
    """
    ctx.require_writer()
    record = validate_insert(InsertBuildingCost, payload)

    lines: list[BuildingCostMaterialLine] = []
    line_errors: dict[str, list[str]] = {}
    for index, line in enumerate(materials):
        try:
            lines.append(validate_insert(BuildingCostMaterialLine, line))
        except RecordValidationError as exc:
            for field, messages in exc.fields.items():
                line_errors[f"materials.{index}.{field}"] = messages
    if line_errors:
        raise RecordValidationError("BuildingCost", line_errors)

    material_type_ids = {line.material_type_id for line in lines}
    if material_type_ids:
        result = await session.execute(
            select(MaterialTypeModel.id).where(MaterialTypeModel.id.in_(material_type_ids))
        )
        missing = material_type_ids - set(result.scalars().all())
        if missing:
            raise NotFoundError("MaterialType", sorted(missing)[0])

    building_cost = BuildingCostModel(**to_columns(record))
    session.add(building_cost)
    await flush_or_raise(session, building_cost)

    rows = [
        BuildingCostMaterialModel(building_cost_id=building_cost.id, **to_columns(line))
        for line in lines
    ]
    if rows:
        session.add_all(rows)
        await flush_or_raise(session, *rows)

    mismatch = material_total_mismatch(building_cost, rows)
    logger.info(
        "building_cost_saved",
        building_cost_id=building_cost.id,
        material_lines=len(rows),
        material_total_mismatch=str(mismatch) if rows and mismatch else None,
        user_id=ctx.user_id,
    )
    return building_cost, rows


def material_total_mismatch(
    building_cost: BuildingCostModel, lines: Iterable[BuildingCostMaterialModel]
) -> Decimal:
    """Estimate total minus the sum of its material line totals.

    Zero when the breakdown accounts for the whole estimate. Storage does not
    enforce this; callers decide whether a difference matters.
    """
    line_total = sum((Decimal(line.total_cost) for line in lines), Decimal("0"))
    return Decimal(building_cost.total_cost) - line_total


async def get_building_cost(session: AsyncSession, building_cost_id: int) -> BuildingCostModel:
    building_cost = await session.get(BuildingCostModel, building_cost_id)
    if building_cost is None:
        raise NotFoundError("BuildingCost", building_cost_id)
    return building_cost


async def list_building_cost_materials(
    session: AsyncSession, building_cost_id: int
) -> list[BuildingCostMaterialModel]:
    stmt = (
        select(BuildingCostMaterialModel)
        .where(BuildingCostMaterialModel.building_cost_id == building_cost_id)
        .order_by(BuildingCostMaterialModel.id)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_building_costs(
    session: AsyncSession,
    *,
    region: str | None = None,
    building_type: str | None = None,
) -> list[BuildingCostModel]:
    stmt = select(BuildingCostModel)
    if region is not None:
        stmt = stmt.where(BuildingCostModel.region == region)
    if building_type is not None:
        stmt = stmt.where(BuildingCostModel.building_type == building_type)
    result = await session.execute(stmt.order_by(BuildingCostModel.created_at.desc()))
    return list(result.scalars().all())
