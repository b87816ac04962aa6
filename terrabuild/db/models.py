"""SQLAlchemy async database models for TerraBuild.

Table, column and index names are the wire contract shared with existing
exports and reports: keep them (and every Numeric precision/scale pair)
exactly as declared here.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import func

from terrabuild.core.timeutil import utcnow


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def _created_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )


def _updated_at() -> Mapped[datetime]:
    return mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
        nullable=False,
    )


# ============================================================================
# Users
# ============================================================================


class UserModel(Base):
    """Principal allowed to sign in to TerraBuild."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    # bcrypt hash; never returned on the wire
    password: Mapped[str] = mapped_column(Text, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="user")
    name: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


# ============================================================================
# Cost data model
# ============================================================================


class CostFactorModel(Base):
    """Region/building type baseline multipliers."""

    __tablename__ = "cost_factors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    region: Mapped[str] = mapped_column(Text, nullable=False)
    building_type: Mapped[str] = mapped_column(Text, nullable=False)
    base_cost: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    complexity_factor: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("1.0"), server_default="1.0"
    )
    region_factor: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("1.0"), server_default="1.0"
    )
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_cost_factors_region_type", "region", "building_type"),
    )


class CostFactorPresetModel(Base):
    """Named set of factor weights saved by a user."""

    __tablename__ = "cost_factor_presets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    weights: Mapped[dict] = mapped_column(JSON, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class CostMatrixModel(Base):
    """Authoritative per-region/type cost baseline for a matrix year."""

    __tablename__ = "cost_matrix"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    region: Mapped[str] = mapped_column(Text, nullable=False)
    building_type: Mapped[str] = mapped_column(Text, nullable=False)
    building_type_description: Mapped[str] = mapped_column(Text, nullable=False)
    base_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    matrix_year: Mapped[int] = mapped_column(Integer, nullable=False)
    source_matrix_id: Mapped[int] = mapped_column(Integer, nullable=False)
    matrix_description: Mapped[str] = mapped_column(Text, nullable=False)
    data_points: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    min_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    max_cost: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    complexity_factor_base: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("1.0"), server_default="1.0"
    )
    quality_factor_base: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("1.0"), server_default="1.0"
    )
    condition_factor_base: Mapped[Decimal] = mapped_column(
        Numeric(5, 2), nullable=False, default=Decimal("1.0"), server_default="1.0"
    )
    county: Mapped[str | None] = mapped_column(Text)
    state: Mapped[str | None] = mapped_column(Text)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    __table_args__ = (
        UniqueConstraint(
            "region", "building_type", "matrix_year", name="region_building_type_year_idx"
        ),
        CheckConstraint(
            "min_cost IS NULL OR max_cost IS NULL OR min_cost <= max_cost",
            name="check_cost_matrix_min_max",
        ),
    )


class MaterialTypeModel(Base):
    """Catalog of material kinds."""

    __tablename__ = "material_types"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    code: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    unit: Mapped[str] = mapped_column(Text, nullable=False, default="sqft")
    created_at: Mapped[datetime] = _created_at()


class MaterialCostModel(Base):
    """Per-material cost by building type and region."""

    __tablename__ = "material_costs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    material_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("material_types.id"), nullable=False
    )
    building_type: Mapped[str] = mapped_column(Text, nullable=False)
    region: Mapped[str] = mapped_column(Text, nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    default_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()

    __table_args__ = (
        UniqueConstraint(
            "material_type_id", "building_type", "region", name="material_building_region_idx"
        ),
    )


class BuildingCostModel(Base):
    """A saved estimate."""

    __tablename__ = "building_costs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    region: Mapped[str] = mapped_column(Text, nullable=False)
    building_type: Mapped[str] = mapped_column(Text, nullable=False)
    square_footage: Mapped[int] = mapped_column(Integer, nullable=False)
    cost_per_sqft: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class BuildingCostMaterialModel(Base):
    """Material line item of a saved estimate."""

    __tablename__ = "building_cost_materials"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    building_cost_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("building_costs.id"), nullable=False, index=True
    )
    material_type_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("material_types.id"), nullable=False
    )
    quantity: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    cost_per_unit: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    total_cost: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    created_at: Mapped[datetime] = _created_at()


# ============================================================================
# Calculation history (append-only, see terrabuild.db.guards)
# ============================================================================


class CalculationHistoryModel(Base):
    """Immutable snapshot of one estimate computation.

    Factor columns are exact decimal strings so a past estimate can be
    explained without re-reading (possibly changed) cost matrix rows.
    """

    __tablename__ = "calculation_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str | None] = mapped_column(Text)
    region: Mapped[str] = mapped_column(Text, nullable=False)
    building_type: Mapped[str] = mapped_column(Text, nullable=False)
    square_footage: Mapped[int] = mapped_column(Integer, nullable=False)
    base_cost: Mapped[str] = mapped_column(Text, nullable=False)
    region_factor: Mapped[str] = mapped_column(Text, nullable=False)
    complexity: Mapped[str] = mapped_column(Text, nullable=False)
    complexity_factor: Mapped[str] = mapped_column(Text, nullable=False)
    quality: Mapped[str | None] = mapped_column(Text)
    quality_factor: Mapped[str | None] = mapped_column(Text)
    condition: Mapped[str | None] = mapped_column(Text)
    condition_factor: Mapped[str | None] = mapped_column(Text)
    cost_per_sqft: Mapped[str] = mapped_column(Text, nullable=False)
    total_cost: Mapped[str] = mapped_column(Text, nullable=False)
    adjusted_cost: Mapped[str] = mapped_column(Text, nullable=False)
    assessed_value: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()


# ============================================================================
# Benton County assessment matrix reference tables
# ============================================================================


class BentonMatrixAxisModel(Base):
    __tablename__ = "benton_matrix_axis"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    matrix_year: Mapped[int] = mapped_column(Integer, nullable=False)
    axis_cd: Mapped[str] = mapped_column(Text, nullable=False)
    data_type: Mapped[str] = mapped_column(Text, nullable=False)
    lookup_query: Mapped[str | None] = mapped_column(Text)
    matrix_type: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = _created_at()


class BentonMatrixModel(Base):
    """Matrix header: axes, operator and interpolation flag."""

    __tablename__ = "benton_matrix"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    matrix_id: Mapped[int] = mapped_column(Integer, nullable=False)
    matrix_year: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str] = mapped_column(Text, nullable=False)
    axis1: Mapped[str] = mapped_column("axis_1", Text, nullable=False)
    axis2: Mapped[str] = mapped_column("axis_2", Text, nullable=False)
    matrix_description: Mapped[str] = mapped_column(Text, nullable=False)
    operator: Mapped[str] = mapped_column(Text, nullable=False)
    default_cell_value: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    b_interpolate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    matrix_type: Mapped[str] = mapped_column(Text, nullable=False)
    matrix_sub_type_cd: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        Index("idx_benton_matrix_id_year", "matrix_id", "matrix_year"),
    )


class BentonMatrixDetailModel(Base):
    """One cell of a matrix, keyed by its two axis values."""

    __tablename__ = "benton_matrix_detail"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    matrix_id: Mapped[int] = mapped_column(Integer, nullable=False)
    matrix_year: Mapped[int] = mapped_column(Integer, nullable=False)
    axis1_value: Mapped[str] = mapped_column("axis_1_value", Text, nullable=False)
    axis2_value: Mapped[str] = mapped_column("axis_2_value", Text, nullable=False)
    cell_value: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    created_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint(
            "matrix_id",
            "matrix_year",
            "axis_1_value",
            "axis_2_value",
            name="benton_matrix_detail_cell_idx",
        ),
    )


class BentonImprvSchedMatrixAssocModel(Base):
    __tablename__ = "benton_imprv_sched_matrix_assoc"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    imprv_det_meth_cd: Mapped[str] = mapped_column(Text, nullable=False)
    imprv_det_type_cd: Mapped[str] = mapped_column(Text, nullable=False)
    imprv_det_class_cd: Mapped[str] = mapped_column(Text, nullable=False)
    imprv_yr: Mapped[int] = mapped_column(Integer, nullable=False)
    matrix_id: Mapped[int] = mapped_column(Integer, nullable=False)
    matrix_order: Mapped[int] = mapped_column(Integer, nullable=False)
    adj_factor: Mapped[int] = mapped_column(Integer, nullable=False)
    imprv_det_sub_class_cd: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = _created_at()


class BentonDepreciationMatrixModel(Base):
    __tablename__ = "benton_depreciation_matrix"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    val_sub_element: Mapped[str] = mapped_column(Text, nullable=False)
    matrix_id: Mapped[int] = mapped_column(Integer, nullable=False)
    age: Mapped[int] = mapped_column(Integer, nullable=False)
    factor: Mapped[int] = mapped_column(Integer, nullable=False)
    condition_mapped: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = _created_at()


# ============================================================================
# What-if scenarios
# ============================================================================


class WhatIfScenarioModel(Base):
    __tablename__ = "what_if_scenarios"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    base_calculation_id: Mapped[int | None] = mapped_column(Integer)
    parameters: Mapped[dict] = mapped_column(JSON, nullable=False)
    results: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    is_saved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class ScenarioVariationModel(Base):
    __tablename__ = "scenario_variations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scenario_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    parameter_key: Mapped[str] = mapped_column(Text, nullable=False)
    original_value: Mapped[Any] = mapped_column(JSON, nullable=False)
    new_value: Mapped[Any] = mapped_column(JSON, nullable=False)
    impact_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))
    impact_percentage: Mapped[Decimal | None] = mapped_column(Numeric(5, 2))
    created_at: Mapped[datetime] = _created_at()


class ScenarioImpactModel(Base):
    __tablename__ = "scenario_impacts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    scenario_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    analysis_type: Mapped[str] = mapped_column(Text, nullable=False)
    impact_summary: Mapped[dict] = mapped_column(JSON, nullable=False)
    calculated_at: Mapped[datetime] = _created_at()


# ============================================================================
# Collaboration
# ============================================================================


class SharedProjectModel(Base):
    __tablename__ = "shared_projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_by_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()
    status: Mapped[str] = mapped_column(Text, nullable=False, default="active")
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)


class ProjectMemberModel(Base):
    __tablename__ = "project_members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shared_projects.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="viewer")
    joined_at: Mapped[datetime] = _created_at()
    invited_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="project_user_idx"),
    )


class ProjectInvitationModel(Base):
    __tablename__ = "project_invitations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shared_projects.id"), nullable=False
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    invited_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="viewer")
    status: Mapped[str] = mapped_column(Text, nullable=False, default="pending")
    invited_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="project_invitation_idx"),
    )


class ProjectItemModel(Base):
    """Polymorphic reference (item_type, item_id) attached to a project."""

    __tablename__ = "project_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shared_projects.id"), nullable=False
    )
    item_type: Mapped[str] = mapped_column(Text, nullable=False)
    item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    added_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    added_at: Mapped[datetime] = _created_at()

    __table_args__ = (
        UniqueConstraint("project_id", "item_type", "item_id", name="project_item_idx"),
    )


class SharedLinkModel(Base):
    __tablename__ = "shared_links"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shared_projects.id"), nullable=False
    )
    token: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    access_level: Mapped[str] = mapped_column(Text, nullable=False, default="view")
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = _created_at()
    created_by: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)


class ProjectActivityModel(Base):
    __tablename__ = "project_activities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("shared_projects.id"), nullable=False, index=True
    )
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    activity_type: Mapped[str] = mapped_column(Text, nullable=False)
    activity_data: Mapped[dict | None] = mapped_column(JSON)
    created_at: Mapped[datetime] = _created_at()


class CommentModel(Base):
    """Threaded comment on any (target_type, target_id)."""

    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    target_type: Mapped[str] = mapped_column(Text, nullable=False)
    target_id: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    parent_comment_id: Mapped[int | None] = mapped_column(Integer)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()
    is_resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_edited: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("target_type_id_idx", "target_type", "target_id"),
    )


# ============================================================================
# Sync / connections (configuration and audit trail only)
# ============================================================================


class FTPConnectionModel(Base):
    __tablename__ = "ftp_connections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    host: Mapped[str] = mapped_column(Text, nullable=False)
    port: Mapped[int] = mapped_column(Integer, nullable=False, default=21)
    username: Mapped[str] = mapped_column(Text, nullable=False)
    password: Mapped[str] = mapped_column(Text, nullable=False)
    secure: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    passive_mode: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    default_path: Mapped[str | None] = mapped_column(Text, default="/")
    description: Mapped[str | None] = mapped_column(Text)
    last_connected: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(Text, nullable=False, default="unknown")
    created_by: Mapped[int] = mapped_column(Integer, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class SyncScheduleModel(Base):
    __tablename__ = "sync_schedules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    connection_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    source: Mapped[dict] = mapped_column(JSON, nullable=False)
    destination: Mapped[dict] = mapped_column(JSON, nullable=False)
    frequency: Mapped[str] = mapped_column(Text, nullable=False)
    time: Mapped[str | None] = mapped_column(Text)
    day_of_week: Mapped[int | None] = mapped_column(Integer)
    day_of_month: Mapped[int | None] = mapped_column(Integer)
    options: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    next_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[str | None] = mapped_column(Text, default="idle")
    created_at: Mapped[datetime] = _created_at()
    updated_at: Mapped[datetime] = _updated_at()


class SyncHistoryModel(Base):
    __tablename__ = "sync_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    schedule_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    connection_id: Mapped[int] = mapped_column(Integer, nullable=False)
    schedule_name: Mapped[str] = mapped_column(Text, nullable=False)
    start_time: Mapped[datetime] = _created_at()
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    status: Mapped[str] = mapped_column(Text, nullable=False)
    files_transferred: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    total_bytes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # JSON for cross-DB compatibility (text[] on the PostgreSQL original)
    errors: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    details: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)


class ConnectionHistoryModel(Base):
    """Outcome of a connection test (ftp, arcgis, sqlserver, ...)."""

    __tablename__ = "connection_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    connection_type: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    details: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    user_id: Mapped[int | None] = mapped_column(Integer)
    timestamp: Mapped[datetime] = _created_at()


# ============================================================================
# External price cache
# ============================================================================


class MaterialsPriceCacheModel(Base):
    """Cached third-party material price; stale once valid_until has passed."""

    __tablename__ = "materials_price_cache"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    material_code: Mapped[str] = mapped_column(Text, nullable=False)
    source: Mapped[str] = mapped_column(Text, nullable=False)
    region: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    unit: Mapped[str] = mapped_column(Text, nullable=False)
    fetched_at: Mapped[datetime] = _created_at()
    valid_until: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    # "metadata" is reserved on declarative classes
    price_metadata: Mapped[dict | None] = mapped_column("metadata", JSON)

    __table_args__ = (
        UniqueConstraint(
            "material_code", "source", "region", name="material_code_source_region_idx"
        ),
    )
