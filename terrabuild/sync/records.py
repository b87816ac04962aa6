"""FTP connection profiles, sync schedules and sync run history.

Only the records live here; transferring files and running schedules is done
by an external worker that reads and updates these rows.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from typing import Any

import structlog
from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.core.timeutil import utcnow
from terrabuild.db.models import (
    ConnectionHistoryModel,
    FTPConnectionModel,
    SyncHistoryModel,
    SyncScheduleModel,
)
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import InvalidStateError, NotFoundError, RecordValidationError
from terrabuild.models import (
    ConnectionStatus,
    InsertConnectionHistory,
    InsertFTPConnection,
    InsertSyncHistory,
    InsertSyncSchedule,
    SyncFileDetail,
    SyncStatus,
    field_errors,
    to_columns,
    validate_insert,
)

logger = structlog.get_logger(__name__)


# ----------------------------------------------------------------------------
# Connections
# ----------------------------------------------------------------------------


async def create_connection(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertFTPConnection,
) -> FTPConnectionModel:
    ctx.require_admin()
    if isinstance(payload, Mapping) and not {"createdBy", "created_by"} & payload.keys():
        payload = {**payload, "createdBy": ctx.user_id}
    record = validate_insert(InsertFTPConnection, payload)

    if record.is_default:
        await _clear_default_connection(session)
    connection = FTPConnectionModel(**to_columns(record))
    session.add(connection)
    await flush_or_raise(session, connection)
    logger.info("ftp_connection_created", connection_id=connection.id, host=connection.host)
    return connection


async def _clear_default_connection(session: AsyncSession, keep_id: int | None = None) -> None:
    stmt = (
        update(FTPConnectionModel)
        .where(FTPConnectionModel.is_default.is_(True))
        .values(is_default=False, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    if keep_id is not None:
        stmt = stmt.where(FTPConnectionModel.id != keep_id)
    await session.execute(stmt)


async def get_connection(session: AsyncSession, connection_id: int) -> FTPConnectionModel:
    connection = await session.get(FTPConnectionModel, connection_id)
    if connection is None:
        raise NotFoundError("FTPConnection", connection_id)
    return connection


async def list_connections(session: AsyncSession) -> list[FTPConnectionModel]:
    stmt = select(FTPConnectionModel).order_by(
        FTPConnectionModel.is_default.desc(), FTPConnectionModel.name
    )
    result = await session.execute(stmt)
    return list(result.scalars().all())


async def set_default_connection(
    session: AsyncSession, ctx: RequestContext, connection_id: int
) -> FTPConnectionModel:
    ctx.require_admin()
    connection = await get_connection(session, connection_id)
    await _clear_default_connection(session, keep_id=connection.id)
    connection.is_default = True
    connection.updated_at = utcnow()
    await flush_or_raise(session, connection)
    return connection


async def record_connection_test(
    session: AsyncSession,
    ctx: RequestContext,
    connection_type: str,
    success: bool,
    message: str,
    details: dict[str, Any] | None = None,
    connection_id: int | None = None,
) -> ConnectionHistoryModel:
    """Log the outcome of a connection test.

    For FTP tests, ``connection_id`` also updates the profile's status and
    ``last_connected``.
    """
    record = validate_insert(
        InsertConnectionHistory,
        {
            "connectionType": connection_type,
            "status": "success" if success else "failed",
            "message": message,
            "details": details or {},
            "userId": ctx.user_id or None,
        },
    )
    entry = ConnectionHistoryModel(**to_columns(record))
    session.add(entry)

    if connection_id is not None:
        connection = await get_connection(session, connection_id)
        now = utcnow()
        connection.status = (
            ConnectionStatus.CONNECTED.value if success else ConnectionStatus.ERROR.value
        )
        if success:
            connection.last_connected = now
        connection.updated_at = now

    await flush_or_raise(session, entry)
    logger.info(
        "connection_tested", connection_type=connection_type, success=success, connection_id=connection_id
    )
    return entry


# ----------------------------------------------------------------------------
# Schedules
# ----------------------------------------------------------------------------


async def create_schedule(
    session: AsyncSession,
    ctx: RequestContext,
    payload: Mapping[str, Any] | InsertSyncSchedule,
) -> SyncScheduleModel:
    ctx.require_admin()
    record = validate_insert(InsertSyncSchedule, payload)
    await get_connection(session, record.connection_id)

    schedule = SyncScheduleModel(**to_columns(record))
    session.add(schedule)
    await flush_or_raise(session, schedule)
    logger.info(
        "sync_schedule_created", schedule_id=schedule.id, frequency=schedule.frequency
    )
    return schedule


async def get_schedule(session: AsyncSession, schedule_id: int) -> SyncScheduleModel:
    schedule = await session.get(SyncScheduleModel, schedule_id)
    if schedule is None:
        raise NotFoundError("SyncSchedule", schedule_id)
    return schedule


async def list_schedules(
    session: AsyncSession,
    connection_id: int | None = None,
    enabled: bool | None = None,
) -> list[SyncScheduleModel]:
    stmt = select(SyncScheduleModel)
    if connection_id is not None:
        stmt = stmt.where(SyncScheduleModel.connection_id == connection_id)
    if enabled is not None:
        stmt = stmt.where(SyncScheduleModel.enabled.is_(enabled))
    result = await session.execute(stmt.order_by(SyncScheduleModel.name))
    return list(result.scalars().all())


async def set_schedule_enabled(
    session: AsyncSession, ctx: RequestContext, schedule_id: int, enabled: bool
) -> SyncScheduleModel:
    ctx.require_admin()
    schedule = await get_schedule(session, schedule_id)
    schedule.enabled = enabled
    schedule.updated_at = utcnow()
    await flush_or_raise(session, schedule)
    return schedule


# ----------------------------------------------------------------------------
# Run history
# ----------------------------------------------------------------------------


async def start_sync_run(
    session: AsyncSession, ctx: RequestContext, schedule_id: int
) -> SyncHistoryModel:
    """Open a ``running`` history row and mark the schedule as running."""
    schedule = await get_schedule(session, schedule_id)
    if schedule.status == SyncStatus.RUNNING.value:
        raise InvalidStateError(f"Sync schedule {schedule_id} is already running")

    now = utcnow()
    record = validate_insert(
        InsertSyncHistory,
        {
            "scheduleId": schedule.id,
            "connectionId": schedule.connection_id,
            "scheduleName": schedule.name,
            "startTime": now,
            "status": SyncStatus.RUNNING.value,
        },
    )
    run = SyncHistoryModel(**to_columns(record))
    session.add(run)
    schedule.status = SyncStatus.RUNNING.value
    schedule.last_run = now
    schedule.updated_at = now
    await flush_or_raise(session, run)
    logger.info("sync_run_started", schedule_id=schedule_id, run_id=run.id)
    return run


async def finish_sync_run(
    session: AsyncSession,
    ctx: RequestContext,
    run_id: int,
    *,
    success: bool,
    files_transferred: int = 0,
    total_bytes: int = 0,
    errors: list[str] | None = None,
    details: list[Mapping[str, Any]] | None = None,
    next_run: datetime | None = None,
) -> SyncHistoryModel:
    run = await session.get(SyncHistoryModel, run_id)
    if run is None:
        raise NotFoundError("SyncHistory", run_id)
    if run.status != SyncStatus.RUNNING.value:
        raise InvalidStateError(f"Sync run {run_id} has already finished")

    try:
        file_details = [SyncFileDetail.model_validate(detail) for detail in details or ()]
    except ValidationError as exc:
        raise RecordValidationError("SyncHistory", field_errors(exc, SyncFileDetail)) from exc
    if files_transferred < 0 or total_bytes < 0:
        raise RecordValidationError(
            "SyncHistory", {"filesTransferred": ["Counts must not be negative"]}
        )

    status = SyncStatus.SUCCESS.value if success else SyncStatus.FAILED.value
    now = utcnow()
    run.status = status
    run.end_time = now
    run.files_transferred = files_transferred
    run.total_bytes = total_bytes
    run.errors = list(errors or [])
    run.details = [detail.model_dump(mode="json", by_alias=True) for detail in file_details]

    schedule = await session.get(SyncScheduleModel, run.schedule_id)
    if schedule is not None:
        schedule.status = status
        schedule.next_run = next_run
        schedule.updated_at = now

    await flush_or_raise(session, run)
    logger.info(
        "sync_run_finished",
        run_id=run_id,
        status=status,
        files_transferred=files_transferred,
        total_bytes=total_bytes,
    )
    return run


async def list_sync_history(
    session: AsyncSession, schedule_id: int | None = None, limit: int = 50
) -> list[SyncHistoryModel]:
    stmt = select(SyncHistoryModel)
    if schedule_id is not None:
        stmt = stmt.where(SyncHistoryModel.schedule_id == schedule_id)
    stmt = stmt.order_by(SyncHistoryModel.start_time.desc(), SyncHistoryModel.id.desc()).limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())
