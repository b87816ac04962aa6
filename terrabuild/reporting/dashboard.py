"""Summary counts for the assessor dashboard."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.timeutil import as_utc, utcnow
from terrabuild.db.models import CalculationHistoryModel, CostMatrixModel, UserModel

RECENT_WINDOW = timedelta(days=30)


@dataclass
class DashboardStats:
    building_types: int
    regions: int
    cost_matrices: int
    active_users: int
    recent_calculations: int
    latest_matrix_year: int | None

    def to_wire(self) -> dict:
        return {
            "buildingTypes": self.building_types,
            "regions": self.regions,
            "costMatrices": self.cost_matrices,
            "activeUsers": self.active_users,
            "recentCalculations": self.recent_calculations,
            "latestMatrixYear": self.latest_matrix_year,
        }


async def compute_dashboard_stats(
    session: AsyncSession, now: datetime | None = None
) -> DashboardStats:
    """Counts over active cost matrices, active users and recent calculations."""
    since = (as_utc(now) or utcnow()) - RECENT_WINDOW
    active = CostMatrixModel.is_active.is_(True)

    matrix_stmt = select(
        func.count(func.distinct(CostMatrixModel.building_type)),
        func.count(func.distinct(CostMatrixModel.region)),
        func.count(CostMatrixModel.id),
        func.max(CostMatrixModel.matrix_year),
    ).where(active)
    building_types, regions, cost_matrices, latest_year = (
        await session.execute(matrix_stmt)
    ).one()

    active_users = (
        await session.execute(
            select(func.count(UserModel.id)).where(UserModel.is_active.is_(True))
        )
    ).scalar_one()

    recent_calculations = (
        await session.execute(
            select(func.count(CalculationHistoryModel.id)).where(
                CalculationHistoryModel.created_at >= since
            )
        )
    ).scalar_one()

    return DashboardStats(
        building_types=building_types,
        regions=regions,
        cost_matrices=cost_matrices,
        active_users=active_users,
        recent_calculations=recent_calculations,
        latest_matrix_year=latest_year,
    )
