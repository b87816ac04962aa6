"""Cost matrix records keyed by (region, building type, matrix year).

The unique index ``region_building_type_year_idx`` is the only concurrency
mechanism: two writers racing on the same key see exactly one insert succeed.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.core.timeutil import utcnow
from terrabuild.db.models import CostMatrixModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import ConstraintViolationError, NotFoundError
from terrabuild.models import InsertCostMatrix, to_columns, validate_insert

logger = structlog.get_logger(__name__)

MATRIX_KEY_CONSTRAINT = "region_building_type_year_idx"


async def create_cost_matrix(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertCostMatrix,
) -> CostMatrixModel:
    """Insert a new cost matrix row.

    Raises:
        RecordValidationError: payload rejected
        ConstraintViolationError: a matrix already exists for the key triple
    """
    ctx.require_writer()
    record = validate_insert(InsertCostMatrix, payload)

    matrix = CostMatrixModel(**to_columns(record))
    session.add(matrix)
    await flush_or_raise(session, matrix)

    logger.info(
        "cost_matrix_created",
        matrix_id=matrix.id,
        region=matrix.region,
        building_type=matrix.building_type,
        matrix_year=matrix.matrix_year,
        user_id=ctx.user_id,
    )
    return matrix


async def find_cost_matrix(
    session: AsyncSession, region: str, building_type: str, matrix_year: int
) -> CostMatrixModel | None:
    stmt = select(CostMatrixModel).where(
        CostMatrixModel.region == region,
        CostMatrixModel.building_type == building_type,
        CostMatrixModel.matrix_year == matrix_year,
    )
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def upsert_cost_matrix(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertCostMatrix,
) -> tuple[CostMatrixModel, bool]:
    """Insert or update the matrix for (region, buildingType, matrixYear).

    Returns ``(matrix, created)``. When another writer inserts the same key
    between our read and our insert, the constraint violation is taken as the
    signal to re-read that row and update it. A lost race rolls back the
    session transaction, so run upserts in their own unit of work.
    """
    ctx.require_writer()
    record = validate_insert(InsertCostMatrix, payload)
    values = to_columns(record)

    existing = await find_cost_matrix(
        session, record.region, record.building_type, record.matrix_year
    )
    if existing is None:
        matrix = CostMatrixModel(**values)
        session.add(matrix)
        try:
            await flush_or_raise(session, matrix)
        except ConstraintViolationError as exc:
            if exc.constraint != MATRIX_KEY_CONSTRAINT:
                raise
            existing = await find_cost_matrix(
                session, record.region, record.building_type, record.matrix_year
            )
            if existing is None:
                raise
            logger.info("cost_matrix_upsert_race", constraint=exc.constraint)
        else:
            logger.info("cost_matrix_created", matrix_id=matrix.id, user_id=ctx.user_id)
            return matrix, True

    for key, value in values.items():
        setattr(existing, key, value)
    existing.updated_at = utcnow()
    await flush_or_raise(session, existing)

    logger.info("cost_matrix_updated", matrix_id=existing.id, user_id=ctx.user_id)
    return existing, False


async def get_cost_matrix(session: AsyncSession, matrix_id: int) -> CostMatrixModel:
    matrix = await session.get(CostMatrixModel, matrix_id)
    if matrix is None:
        raise NotFoundError("CostMatrix", matrix_id)
    return matrix


async def list_cost_matrices(
    session: AsyncSession,
    *,
    region: str | None = None,
    building_type: str | None = None,
    matrix_year: int | None = None,
    county: str | None = None,
    state: str | None = None,
    is_active: bool | None = None,
) -> list[CostMatrixModel]:
    """List matrices matching every given filter, newest year first."""
    stmt = select(CostMatrixModel)
    if region is not None:
        stmt = stmt.where(CostMatrixModel.region == region)
    if building_type is not None:
        stmt = stmt.where(CostMatrixModel.building_type == building_type)
    if matrix_year is not None:
        stmt = stmt.where(CostMatrixModel.matrix_year == matrix_year)
    if county is not None:
        stmt = stmt.where(CostMatrixModel.county == county)
    if state is not None:
        stmt = stmt.where(CostMatrixModel.state == state)
    if is_active is not None:
        stmt = stmt.where(CostMatrixModel.is_active == is_active)

    stmt = stmt.order_by(
        CostMatrixModel.matrix_year.desc(),
        CostMatrixModel.region,
        CostMatrixModel.building_type,
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def deactivate_cost_matrix(
    session: AsyncSession, ctx: RequestContext, matrix_id: int
) -> CostMatrixModel:
    """Mark a matrix inactive; rows are kept for historical estimates."""
    ctx.require_writer()
    matrix = await get_cost_matrix(session, matrix_id)
    matrix.is_active = False
    matrix.updated_at = utcnow()
    await flush_or_raise(session, matrix)
    logger.info("cost_matrix_deactivated", matrix_id=matrix_id, user_id=ctx.user_id)
    return matrix
