"""Cell lookup over Benton matrices.

Strategies are registered per ``matrix_type``. Types without a registered
strategy use exact axis matching with the matrix's ``default_cell_value`` as
fallback, unless the matrix is flagged ``b_interpolate``: interpolation has no
built-in implementation, so such a matrix needs a registered strategy.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from decimal import Decimal

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.db.models import BentonMatrixDetailModel, BentonMatrixModel
from terrabuild.errors import LookupStrategyError
from terrabuild.reference.benton import get_matrix

logger = structlog.get_logger(__name__)

LookupStrategy = Callable[[AsyncSession, BentonMatrixModel, str, str], Awaitable[Decimal]]

_strategies: dict[str, LookupStrategy] = {}


def register_strategy(matrix_type: str, strategy: LookupStrategy) -> None:
    _strategies[matrix_type] = strategy


def unregister_strategy(matrix_type: str) -> None:
    _strategies.pop(matrix_type, None)


def get_strategy(matrix: BentonMatrixModel) -> LookupStrategy:
    strategy = _strategies.get(matrix.matrix_type)
    if strategy is not None:
        return strategy
    if matrix.b_interpolate:
        raise LookupStrategyError(
            f"Matrix {matrix.matrix_id}/{matrix.matrix_year} requires interpolation but no "
            f"strategy is registered for matrix type {matrix.matrix_type!r}"
        )
    return exact_match


async def exact_match(
    session: AsyncSession, matrix: BentonMatrixModel, axis1_value: str, axis2_value: str
) -> Decimal:
    stmt = select(BentonMatrixDetailModel.cell_value).where(
        BentonMatrixDetailModel.matrix_id == matrix.matrix_id,
        BentonMatrixDetailModel.matrix_year == matrix.matrix_year,
        BentonMatrixDetailModel.axis1_value == axis1_value,
        BentonMatrixDetailModel.axis2_value == axis2_value,
    )
    cell_value = (await session.execute(stmt)).scalar_one_or_none()
    if cell_value is None:
        logger.debug(
            "matrix_cell_default",
            matrix_id=matrix.matrix_id,
            matrix_year=matrix.matrix_year,
            axis1=axis1_value,
            axis2=axis2_value,
        )
        return Decimal(matrix.default_cell_value)
    return Decimal(cell_value)


async def lookup_cell(
    session: AsyncSession,
    matrix_id: int,
    year: int,
    axis1_value: str,
    axis2_value: str,
) -> Decimal:
    """Value of the (axis1, axis2) cell of a matrix.

    Raises:
        NotFoundError: no matrix for (matrix_id, year)
        LookupStrategyError: interpolated matrix without a registered strategy
    """
    matrix = await get_matrix(session, matrix_id, year)
    strategy = get_strategy(matrix)
    return await strategy(session, matrix, axis1_value, axis2_value)
