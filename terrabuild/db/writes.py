"""Write helpers that turn IntegrityError into ConstraintViolationError.

A failed flush rolls back the session transaction so no partial row is left
behind; callers decide whether to re-read and update, never to retry blindly.
"""

from __future__ import annotations

from pydantic.alias_generators import to_camel
from sqlalchemy import Table, UniqueConstraint
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.errors import ConstraintViolationError


def unique_keys(table: Table) -> list[tuple[str, tuple[str, ...]]]:
    """Return (constraint name, column names) for every unique key on a table.

    Column-level ``unique=True`` constraints are unnamed in the metadata; they
    get PostgreSQL's default ``<table>_<column>_key`` name.
    """
    keys: list[tuple[str, tuple[str, ...]]] = []
    for constraint in table.constraints:
        if not isinstance(constraint, UniqueConstraint):
            continue
        columns = tuple(column.name for column in constraint.columns)
        name = constraint.name
        if not isinstance(name, str) or not name:
            name = f"{table.name}_{'_'.join(columns)}_key"
        keys.append((name, columns))
    return keys


def translate_integrity_error(
    exc: IntegrityError, tables: list[Table]
) -> ConstraintViolationError:
    """Identify which constraint a driver error refers to.

    PostgreSQL reports the constraint name; SQLite reports ``table.column``
    pairs ("UNIQUE constraint failed: cost_matrix.region, ...").
    """
    message = str(exc.orig).lower()

    for table in tables:
        for name, columns in unique_keys(table):
            qualified = [f"{table.name}.{column}" for column in columns]
            if name.lower() in message or all(q in message for q in qualified):
                return ConstraintViolationError(
                    name, tuple(to_camel(column) for column in columns)
                )

    if "foreign key" in message:
        return ConstraintViolationError("foreign_key", (), f"Foreign key violation: {exc.orig}")
    if "check constraint" in message:
        return ConstraintViolationError("check", (), f"Check constraint violation: {exc.orig}")
    return ConstraintViolationError("integrity", (), f"Integrity violation: {exc.orig}")


async def flush_or_raise(session: AsyncSession, *rows) -> None:
    """Flush pending writes; on IntegrityError roll back and raise a typed error."""
    try:
        await session.flush()
    except IntegrityError as exc:
        await session.rollback()
        tables = list({row.__table__.name: row.__table__ for row in rows}.values())
        raise translate_integrity_error(exc, tables) from exc
