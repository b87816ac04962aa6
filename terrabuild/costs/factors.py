"""Regional cost factors and per-user factor weight presets."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.core.timeutil import utcnow
from terrabuild.db.models import CostFactorModel, CostFactorPresetModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import NotFoundError, PermissionDeniedError
from terrabuild.models import (
    InsertCostFactor,
    InsertCostFactorPreset,
    to_columns,
    validate_insert,
)

logger = structlog.get_logger(__name__)


async def create_cost_factor(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertCostFactor,
) -> CostFactorModel:
    ctx.require_writer()
    record = validate_insert(InsertCostFactor, payload)
    factor = CostFactorModel(**to_columns(record))
    session.add(factor)
    await flush_or_raise(session, factor)
    logger.info(
        "cost_factor_created",
        factor_id=factor.id,
        region=factor.region,
        building_type=factor.building_type,
    )
    return factor


async def get_cost_factor(
    session: AsyncSession, region: str, building_type: str
) -> CostFactorModel | None:
    """Most recently added factor for the region/building type pair."""
    stmt = (
        select(CostFactorModel)
        .where(
            CostFactorModel.region == region,
            CostFactorModel.building_type == building_type,
        )
        .order_by(CostFactorModel.id.desc())
        .limit(1)
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def list_cost_factors(
    session: AsyncSession, region: str | None = None
) -> list[CostFactorModel]:
    stmt = select(CostFactorModel)
    if region is not None:
        stmt = stmt.where(CostFactorModel.region == region)
    stmt = stmt.order_by(CostFactorModel.region, CostFactorModel.building_type)
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ----------------------------------------------------------------------------
# Presets
# ----------------------------------------------------------------------------


async def _clear_default(session: AsyncSession, user_id: int, keep_id: int | None = None) -> None:
    stmt = (
        update(CostFactorPresetModel)
        .where(
            CostFactorPresetModel.user_id == user_id,
            CostFactorPresetModel.is_default.is_(True),
        )
        .values(is_default=False, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    if keep_id is not None:
        stmt = stmt.where(CostFactorPresetModel.id != keep_id)
    await session.execute(stmt)


async def create_cost_factor_preset(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertCostFactorPreset,
) -> CostFactorPresetModel:
    """Save a named set of factor weights for the requesting user."""
    if isinstance(payload, Mapping) and "userId" not in payload and "user_id" not in payload:
        payload = {**payload, "userId": ctx.user_id}
    record = validate_insert(InsertCostFactorPreset, payload)
    if record.user_id != ctx.user_id and not ctx.is_admin:
        raise PermissionDeniedError("Presets can only be created for your own account")

    if record.is_default:
        await _clear_default(session, record.user_id)

    preset = CostFactorPresetModel(**to_columns(record))
    session.add(preset)
    await flush_or_raise(session, preset)
    logger.info("cost_factor_preset_created", preset_id=preset.id, user_id=preset.user_id)
    return preset


async def list_cost_factor_presets(
    session: AsyncSession, user_id: int
) -> list[CostFactorPresetModel]:
    stmt = (
        select(CostFactorPresetModel)
        .where(CostFactorPresetModel.user_id == user_id)
        .order_by(CostFactorPresetModel.is_default.desc(), CostFactorPresetModel.name)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def set_default_preset(
    session: AsyncSession, ctx: RequestContext, preset_id: int
) -> CostFactorPresetModel:
    """Make one preset the user's default; any previous default is cleared."""
    preset = await session.get(CostFactorPresetModel, preset_id)
    if preset is None:
        raise NotFoundError("CostFactorPreset", preset_id)
    if preset.user_id != ctx.user_id and not ctx.is_admin:
        raise PermissionDeniedError("Presets can only be changed by their owner")

    await _clear_default(session, preset.user_id, keep_id=preset.id)
    preset.is_default = True
    preset.updated_at = utcnow()
    await flush_or_raise(session, preset)
    logger.info("cost_factor_preset_default_set", preset_id=preset.id, user_id=preset.user_id)
    return preset
