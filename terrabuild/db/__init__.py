"""Database layer for TerraBuild with async SQLAlchemy."""

from terrabuild.db.connection import get_session, init_db
from terrabuild.db.models import (
    Base,
    BuildingCostModel,
    CalculationHistoryModel,
    CommentModel,
    CostMatrixModel,
    MaterialCostModel,
    MaterialTypeModel,
    SharedProjectModel,
    UserModel,
)

__all__ = [
    "Base",
    "UserModel",
    "CostMatrixModel",
    "MaterialTypeModel",
    "MaterialCostModel",
    "BuildingCostModel",
    "CalculationHistoryModel",
    "SharedProjectModel",
    "CommentModel",
    "get_session",
    "init_db",
]
