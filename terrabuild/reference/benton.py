"""Benton County assessor reference matrices.

These tables are loaded in bulk from the county's export and read back by
matrix id and year. They carry no foreign keys: rows are linked by
``(matrix_id, matrix_year)``.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.db.models import (
    BentonDepreciationMatrixModel,
    BentonImprvSchedMatrixAssocModel,
    BentonMatrixAxisModel,
    BentonMatrixDetailModel,
    BentonMatrixModel,
)
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import NotFoundError, RecordValidationError
from terrabuild.models import (
    InsertBentonDepreciationMatrix,
    InsertBentonImprvSchedMatrixAssoc,
    InsertBentonMatrix,
    InsertBentonMatrixAxis,
    InsertBentonMatrixDetail,
    to_columns,
    validate_insert,
)

logger = structlog.get_logger(__name__)

Rows = Iterable[Mapping[str, Any]]

# section name -> (schema, ORM model)
IMPORT_SECTIONS = {
    "axes": (InsertBentonMatrixAxis, BentonMatrixAxisModel),
    "matrices": (InsertBentonMatrix, BentonMatrixModel),
    "details": (InsertBentonMatrixDetail, BentonMatrixDetailModel),
    "associations": (InsertBentonImprvSchedMatrixAssoc, BentonImprvSchedMatrixAssocModel),
    "depreciation": (InsertBentonDepreciationMatrix, BentonDepreciationMatrixModel),
}


async def import_benton_rows(
    session: AsyncSession,
    ctx: RequestContext,
    *,
    axes: Rows = (),
    matrices: Rows = (),
    details: Rows = (),
    associations: Rows = (),
    depreciation: Rows = (),
) -> dict[str, int]:
    """Validate and insert a batch of reference rows, all or nothing.

    Every row is validated before any write; errors are keyed
    ``<section>.<index>.<field>``. A duplicate detail cell raises
    ConstraintViolationError (``benton_matrix_detail_cell_idx``) and the whole
    batch is rolled back.

    Returns the number of rows inserted per section.
    """
    ctx.require_admin()
    sections = {
        "axes": axes,
        "matrices": matrices,
        "details": details,
        "associations": associations,
        "depreciation": depreciation,
    }

    rows = []
    counts: dict[str, int] = {}
    errors: dict[str, list[str]] = {}
    for section, payloads in sections.items():
        schema, model = IMPORT_SECTIONS[section]
        counts[section] = 0
        for index, payload in enumerate(payloads):
            try:
                record = validate_insert(schema, payload)
            except RecordValidationError as exc:
                for field, messages in exc.fields.items():
                    errors[f"{section}.{index}.{field}"] = messages
                continue
            rows.append(model(**to_columns(record)))
            counts[section] += 1

    if errors:
        raise RecordValidationError("BentonImport", errors)

    session.add_all(rows)
    if rows:
        await flush_or_raise(session, *rows)

    logger.info("benton_rows_imported", user_id=ctx.user_id, **counts)
    return counts


async def get_matrix(session: AsyncSession, matrix_id: int, year: int) -> BentonMatrixModel:
    stmt = select(BentonMatrixModel).where(
        BentonMatrixModel.matrix_id == matrix_id,
        BentonMatrixModel.matrix_year == year,
    )
    matrix = (await session.execute(stmt)).scalars().first()
    if matrix is None:
        raise NotFoundError("BentonMatrix", (matrix_id, year))
    return matrix


async def list_matrices(
    session: AsyncSession,
    year: int | None = None,
    matrix_type: str | None = None,
) -> list[BentonMatrixModel]:
    stmt = select(BentonMatrixModel)
    if year is not None:
        stmt = stmt.where(BentonMatrixModel.matrix_year == year)
    if matrix_type is not None:
        stmt = stmt.where(BentonMatrixModel.matrix_type == matrix_type)
    stmt = stmt.order_by(BentonMatrixModel.matrix_year.desc(), BentonMatrixModel.matrix_id)
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_matrix_details(
    session: AsyncSession, matrix_id: int, year: int
) -> list[BentonMatrixDetailModel]:
    stmt = (
        select(BentonMatrixDetailModel)
        .where(
            BentonMatrixDetailModel.matrix_id == matrix_id,
            BentonMatrixDetailModel.matrix_year == year,
        )
        .order_by(BentonMatrixDetailModel.axis1_value, BentonMatrixDetailModel.axis2_value)
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def list_axes(
    session: AsyncSession, year: int, matrix_type: str | None = None
) -> list[BentonMatrixAxisModel]:
    stmt = select(BentonMatrixAxisModel).where(BentonMatrixAxisModel.matrix_year == year)
    if matrix_type is not None:
        stmt = stmt.where(BentonMatrixAxisModel.matrix_type == matrix_type)
    result = await session.execute(stmt.order_by(BentonMatrixAxisModel.axis_cd))
    return list(result.scalars().all())


async def matrices_for_improvement(
    session: AsyncSession,
    meth_cd: str,
    type_cd: str,
    class_cd: str,
    sub_class_cd: str,
    year: int,
) -> list[tuple[BentonImprvSchedMatrixAssocModel, BentonMatrixModel]]:
    """Matrices associated with an improvement detail, in ``matrix_order``."""
    stmt = (
        select(BentonImprvSchedMatrixAssocModel, BentonMatrixModel)
        .join(
            BentonMatrixModel,
            (BentonMatrixModel.matrix_id == BentonImprvSchedMatrixAssocModel.matrix_id)
            & (BentonMatrixModel.matrix_year == BentonImprvSchedMatrixAssocModel.imprv_yr),
        )
        .where(
            BentonImprvSchedMatrixAssocModel.imprv_det_meth_cd == meth_cd,
            BentonImprvSchedMatrixAssocModel.imprv_det_type_cd == type_cd,
            BentonImprvSchedMatrixAssocModel.imprv_det_class_cd == class_cd,
            BentonImprvSchedMatrixAssocModel.imprv_det_sub_class_cd == sub_class_cd,
            BentonImprvSchedMatrixAssocModel.imprv_yr == year,
        )
        .order_by(BentonImprvSchedMatrixAssocModel.matrix_order)
    )
    result = await session.execute(stmt)
    return [(row[0], row[1]) for row in result.all()]


async def get_depreciation_factor(
    session: AsyncSession, matrix_id: int, age: int, condition: str
) -> BentonDepreciationMatrixModel | None:
    """Exact (matrix, age, condition) row; no nearest-age fallback."""
    stmt = select(BentonDepreciationMatrixModel).where(
        BentonDepreciationMatrixModel.matrix_id == matrix_id,
        BentonDepreciationMatrixModel.age == age,
        BentonDepreciationMatrixModel.condition_mapped == condition,
    )
    return (await session.execute(stmt)).scalars().first()
