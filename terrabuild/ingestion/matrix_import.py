"""Cost matrix import from CSV/XLSX exports.

Parses a spreadsheet of cost matrix rows and upserts each valid row on
(region, buildingType, matrixYear). Invalid rows are reported, not written.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pandas as pd
import structlog
from pydantic.alias_generators import to_camel
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.costs.matrices import upsert_cost_matrix
from terrabuild.errors import RecordValidationError
from terrabuild.models import InsertCostMatrix, validate_insert

logger = structlog.get_logger(__name__)

REQUIRED_COLUMNS = {
    "region",
    "buildingType",
    "buildingTypeDescription",
    "baseCost",
    "matrixYear",
    "sourceMatrixId",
    "matrixDescription",
}


def read_matrix_file(file_path: Path) -> pd.DataFrame:
    """Load a CSV or XLSX file with every cell as text.

    Cells stay strings so decimal costs are never routed through floats.
    Headers may use wire names (``buildingType``) or snake_case.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the format is unsupported or required columns are missing
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Matrix file not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix == ".csv":
        df = pd.read_csv(file_path, dtype=str, keep_default_na=False)
    elif suffix in (".xlsx", ".xls"):
        df = pd.read_excel(file_path, dtype=str, keep_default_na=False)
    else:
        raise ValueError(f"Unsupported file format: {file_path.suffix}")

    df.columns = [to_camel(str(column).strip()) for column in df.columns]
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")
    return df


def _row_payload(row: dict[str, Any]) -> dict[str, Any]:
    # Blank cells fall back to schema defaults
    return {key: value.strip() for key, value in row.items() if str(value).strip() != ""}


async def import_cost_matrix_file(
    session: AsyncSession,
    ctx: RequestContext,
    file_path: Path,
) -> tuple[int, list[str]]:
    """Import cost matrix rows from a CSV or XLSX file.

    Returns:
        Tuple of (rows written, error messages); error messages name the
        spreadsheet row (header is row 1) and the offending fields.
    """
    df = read_matrix_file(file_path)

    records: list[InsertCostMatrix] = []
    errors: list[str] = []
    for idx, row in enumerate(df.to_dict(orient="records")):
        line = idx + 2
        try:
            records.append(validate_insert(InsertCostMatrix, _row_payload(row)))
        except RecordValidationError as exc:
            for field, messages in sorted(exc.fields.items()):
                errors.append(f"Row {line}: {field}: {'; '.join(messages)}")

    written = 0
    for record in records:
        await upsert_cost_matrix(session, ctx, record)
        written += 1

    logger.info(
        "cost_matrix_file_imported",
        file=str(file_path),
        rows=len(df),
        written=written,
        rejected=len(df) - len(records),
    )
    return written, errors
