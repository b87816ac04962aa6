"""Cache of third-party material prices.

One row per (material code, source, region). Refreshing is an idempotent
upsert where the last write wins; an entry is stale once ``valid_until`` has
passed and is then treated as absent.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.config import get_config
from terrabuild.core.timeutil import as_utc, utcnow
from terrabuild.db.models import MaterialsPriceCacheModel
from terrabuild.models import InsertMaterialsPriceCache, validate_insert

logger = structlog.get_logger(__name__)

CACHE_KEY = ("material_code", "source", "region")

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


async def _find(
    session: AsyncSession, material_code: str, source: str, region: str
) -> MaterialsPriceCacheModel | None:
    stmt = (
        select(MaterialsPriceCacheModel)
        .where(
            MaterialsPriceCacheModel.material_code == material_code,
            MaterialsPriceCacheModel.source == source,
            MaterialsPriceCacheModel.region == region,
        )
        .execution_options(populate_existing=True)
    )
    return (await session.execute(stmt)).scalar_one_or_none()


async def store_price(
    session: AsyncSession, payload: Mapping[str, Any] | InsertMaterialsPriceCache
) -> MaterialsPriceCacheModel:
    """Insert or overwrite the cached price for (materialCode, source, region).

    ``validUntil`` defaults to now plus ``PRICE_CACHE_TTL_SECONDS``.
    """
    now = utcnow()
    if isinstance(payload, Mapping) and not {"validUntil", "valid_until"} & payload.keys():
        ttl = get_config().price_cache.ttl_seconds
        payload = {**payload, "validUntil": now + timedelta(seconds=ttl)}
    record = validate_insert(InsertMaterialsPriceCache, payload)

    dialect = session.get_bind().dialect.name
    insert = _INSERT_BY_DIALECT.get(dialect)
    if insert is None:
        raise NotImplementedError(f"Price cache upsert is not supported on {dialect}")

    table = MaterialsPriceCacheModel.__table__
    stmt = insert(table).values(
        material_code=record.material_code,
        source=record.source,
        region=record.region,
        price=record.price,
        unit=record.unit,
        valid_until=record.valid_until,
        metadata=record.price_metadata,
        fetched_at=now,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=list(CACHE_KEY),
        set_={
            "price": stmt.excluded["price"],
            "unit": stmt.excluded["unit"],
            "valid_until": stmt.excluded["valid_until"],
            "metadata": stmt.excluded["metadata"],
            "fetched_at": stmt.excluded["fetched_at"],
        },
    )
    await session.execute(stmt)

    entry = await _find(session, record.material_code, record.source, record.region)
    logger.info(
        "price_cached",
        material_code=record.material_code,
        source=record.source,
        region=record.region,
        price=str(record.price),
    )
    return entry


async def get_cached_price(
    session: AsyncSession,
    material_code: str,
    source: str,
    region: str,
    now: datetime | None = None,
) -> MaterialsPriceCacheModel | None:
    """The cached entry, or None when missing or stale."""
    entry = await _find(session, material_code, source, region)
    if entry is None:
        return None
    if as_utc(entry.valid_until) <= (as_utc(now) or utcnow()):
        return None
    return entry


async def purge_stale(session: AsyncSession, now: datetime | None = None) -> int:
    """Delete expired entries; returns how many were removed."""
    cutoff = as_utc(now) or utcnow()
    stmt = (
        delete(MaterialsPriceCacheModel)
        .where(MaterialsPriceCacheModel.valid_until <= cutoff)
        .execution_options(synchronize_session=False)
    )
    result = await session.execute(stmt)
    logger.info("price_cache_purged", removed=result.rowcount)
    return result.rowcount
