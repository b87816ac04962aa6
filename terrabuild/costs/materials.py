"""Material types and their per-region, per-building-type unit costs."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.config import get_config
from terrabuild.core.context import RequestContext
from terrabuild.core.timeutil import utcnow
from terrabuild.db.models import MaterialCostModel, MaterialTypeModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import NotFoundError
from terrabuild.models import (
    InsertMaterialCost,
    InsertMaterialType,
    UpdateMaterialCost,
    to_columns,
    validate_insert,
)

logger = structlog.get_logger(__name__)

FALLBACK_POLICIES = ("exact", "default_region")


async def create_material_type(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertMaterialType,
) -> MaterialTypeModel:
    """Raises ConstraintViolationError when the code is already registered."""
    ctx.require_writer()
    record = validate_insert(InsertMaterialType, payload)
    material_type = MaterialTypeModel(**to_columns(record))
    session.add(material_type)
    await flush_or_raise(session, material_type)
    logger.info("material_type_created", material_type_id=material_type.id, code=material_type.code)
    return material_type


async def get_material_type(session: AsyncSession, material_type_id: int) -> MaterialTypeModel:
    material_type = await session.get(MaterialTypeModel, material_type_id)
    if material_type is None:
        raise NotFoundError("MaterialType", material_type_id)
    return material_type


async def list_material_types(session: AsyncSession) -> list[MaterialTypeModel]:
    result = await session.execute(select(MaterialTypeModel).order_by(MaterialTypeModel.code))
    return list(result.scalars().all())


async def create_material_cost(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertMaterialCost,
) -> MaterialCostModel:
    """Add the unit cost of a material for one building type and region.

    Raises:
        NotFoundError: material type does not exist
        ConstraintViolationError: a cost already exists for
            (materialTypeId, buildingType, region)
    """
    ctx.require_writer()
    record = validate_insert(InsertMaterialCost, payload)
    await get_material_type(session, record.material_type_id)

    cost = MaterialCostModel(**to_columns(record))
    session.add(cost)
    await flush_or_raise(session, cost)
    logger.info(
        "material_cost_created",
        material_cost_id=cost.id,
        material_type_id=cost.material_type_id,
        region=cost.region,
        building_type=cost.building_type,
    )
    return cost


async def update_material_cost(
    session: AsyncSession,
    ctx: RequestContext,
    material_cost_id: int,
    payload: Mapping[str, Any] | UpdateMaterialCost,
) -> MaterialCostModel:
    ctx.require_writer()
    changes = validate_insert(UpdateMaterialCost, payload)
    cost = await session.get(MaterialCostModel, material_cost_id)
    if cost is None:
        raise NotFoundError("MaterialCost", material_cost_id)

    for key, value in to_columns(changes, exclude_unset=True).items():
        if value is not None:
            setattr(cost, key, value)
    cost.updated_at = utcnow()
    await flush_or_raise(session, cost)
    logger.info("material_cost_updated", material_cost_id=cost.id)
    return cost


async def list_material_costs(
    session: AsyncSession,
    *,
    material_type_id: int | None = None,
    building_type: str | None = None,
    region: str | None = None,
) -> list[MaterialCostModel]:
    stmt = select(MaterialCostModel)
    if material_type_id is not None:
        stmt = stmt.where(MaterialCostModel.material_type_id == material_type_id)
    if building_type is not None:
        stmt = stmt.where(MaterialCostModel.building_type == building_type)
    if region is not None:
        stmt = stmt.where(MaterialCostModel.region == region)
    stmt = stmt.order_by(MaterialCostModel.material_type_id, MaterialCostModel.region)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def _material_cost_row(
    session: AsyncSession, material_type_id: int, building_type: str, region: str
) -> MaterialCostModel | None:
    stmt = select(MaterialCostModel).where(
        MaterialCostModel.material_type_id == material_type_id,
        MaterialCostModel.building_type == building_type,
        MaterialCostModel.region == region,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def resolve_material_cost(
    session: AsyncSession,
    material_type_id: int,
    building_type: str,
    region: str,
    policy: str | None = None,
) -> MaterialCostModel | None:
    """Find the applicable cost for a material.

    ``exact`` returns only the row for the requested region; ``default_region``
    falls back to the configured default region's row for the same material
    and building type. Returns None when nothing applies.

    Raises:
        NotFoundError: material type does not exist
        ValueError: unknown policy
    """
    costs_config = get_config().costs
    policy = policy or costs_config.material_fallback_policy
    if policy not in FALLBACK_POLICIES:
        raise ValueError(f"Unknown material fallback policy {policy!r}")

    await get_material_type(session, material_type_id)

    cost = await _material_cost_row(session, material_type_id, building_type, region)
    if cost is not None or policy == "exact":
        return cost

    default_region = costs_config.default_region
    if default_region == region:
        return None
    cost = await _material_cost_row(session, material_type_id, building_type, default_region)
    if cost is not None:
        logger.debug(
            "material_cost_region_fallback",
            material_type_id=material_type_id,
            requested_region=region,
            used_region=default_region,
        )
    return cost
