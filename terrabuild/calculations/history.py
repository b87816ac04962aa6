"""Append-only calculation history.

Each row freezes the factor values an estimate was computed with. Rows are
never updated or deleted; the ORM guard in ``terrabuild.db.guards`` rejects
any flush that tries.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.db.models import CalculationHistoryModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import NotFoundError, PermissionDeniedError
from terrabuild.models import InsertCalculationHistory, to_columns, validate_insert

logger = structlog.get_logger(__name__)

FACTOR_FIELDS = (
    "base_cost",
    "region_factor",
    "complexity_factor",
    "quality_factor",
    "condition_factor",
    "cost_per_sqft",
    "total_cost",
    "adjusted_cost",
    "assessed_value",
)


async def record_calculation(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertCalculationHistory,
) -> CalculationHistoryModel:
    """Append a calculation snapshot owned by the requesting user.

    The owner defaults to ``ctx.user_id``; only administrators may record on
    behalf of another user.
    """
    if isinstance(payload, Mapping) and "userId" not in payload and "user_id" not in payload:
        payload = {**payload, "userId": ctx.user_id}
    record = validate_insert(InsertCalculationHistory, payload)
    if record.user_id != ctx.user_id and not ctx.is_admin:
        raise PermissionDeniedError("Calculations can only be recorded for your own account")

    calculation = CalculationHistoryModel(**to_columns(record))
    session.add(calculation)
    await flush_or_raise(session, calculation)

    logger.info(
        "calculation_recorded",
        calculation_id=calculation.id,
        user_id=calculation.user_id,
        region=calculation.region,
        building_type=calculation.building_type,
    )
    return calculation


async def get_calculation(session: AsyncSession, calculation_id: int) -> CalculationHistoryModel:
    calculation = await session.get(CalculationHistoryModel, calculation_id)
    if calculation is None:
        raise NotFoundError("CalculationHistory", calculation_id)
    return calculation


async def list_calculations(
    session: AsyncSession,
    *,
    user_id: int | None = None,
    region: str | None = None,
    building_type: str | None = None,
    limit: int = 50,
) -> list[CalculationHistoryModel]:
    """Most recent calculations first."""
    stmt = select(CalculationHistoryModel)
    if user_id is not None:
        stmt = stmt.where(CalculationHistoryModel.user_id == user_id)
    if region is not None:
        stmt = stmt.where(CalculationHistoryModel.region == region)
    if building_type is not None:
        stmt = stmt.where(CalculationHistoryModel.building_type == building_type)
    stmt = stmt.order_by(
        CalculationHistoryModel.created_at.desc(), CalculationHistoryModel.id.desc()
    ).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


def calculation_factors(calculation: CalculationHistoryModel) -> dict[str, Decimal | None]:
    """The stored factor snapshot as exact Decimals."""
    factors: dict[str, Decimal | None] = {}
    for field in FACTOR_FIELDS:
        value = getattr(calculation, field)
        factors[field] = Decimal(value) if value is not None else None
    return factors
