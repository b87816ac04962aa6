"""Append-only enforcement for calculation history rows.

Instance-level updates and deletes are rejected by mapper events; bulk
``update()``/``delete()`` statements targeting the table are rejected in
``do_orm_execute`` since they bypass the mapper.
"""

from __future__ import annotations

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from terrabuild.db.models import CalculationHistoryModel
from terrabuild.errors import ImmutableRecordError

APPEND_ONLY_MODELS = (CalculationHistoryModel,)


def _has_changes(target) -> bool:
    return any(attr.history.has_changes() for attr in inspect(target).attrs)


@event.listens_for(CalculationHistoryModel, "before_update")
def _reject_update(mapper, connection, target) -> None:
    if _has_changes(target):
        raise ImmutableRecordError(
            f"calculation_history row {target.id} is append-only and cannot be updated"
        )


@event.listens_for(CalculationHistoryModel, "before_delete")
def _reject_delete(mapper, connection, target) -> None:
    raise ImmutableRecordError(
        f"calculation_history row {target.id} is append-only and cannot be deleted"
    )


@event.listens_for(Session, "do_orm_execute")
def _reject_bulk_writes(orm_execute_state) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ in APPEND_ONLY_MODELS:
        raise ImmutableRecordError(
            f"{mapper.class_.__tablename__} is append-only; bulk update/delete is not allowed"
        )
