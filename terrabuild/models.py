"""TerraBuild Pydantic models for type-safe payload validation.

Every persisted entity has an ``Insert*`` schema: the projection of the table
onto the fields a client may set. Schemas forbid unknown fields, accept the
camelCase wire names (``buildingType``) as well as snake_case attribute names,
and never accept binary floats for decimal columns.
"""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, TypeVar

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    ValidationError,
    ValidationInfo,
    field_validator,
)
from pydantic.alias_generators import to_camel
from sqlalchemy import inspect

from terrabuild.errors import RecordValidationError


# ============================================================================
# Enumerations (closed value sets)
# ============================================================================


class UserRole(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"
    VIEWER = "viewer"


class ProjectRole(str, Enum):
    """Project membership roles, weakest first."""

    VIEWER = "viewer"
    EDITOR = "editor"
    ADMIN = "admin"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class ProjectStatus(str, Enum):
    ACTIVE = "active"
    ARCHIVED = "archived"


class AccessLevel(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    ADMIN = "admin"


class ProjectItemType(str, Enum):
    CALCULATION = "calculation"
    COST_MATRIX = "cost_matrix"
    BUILDING_COST = "building_cost"
    WHAT_IF_SCENARIO = "what_if_scenario"


class CommentTargetType(str, Enum):
    CALCULATION = "calculation"
    COST_MATRIX = "cost_matrix"
    BUILDING_COST = "building_cost"
    WHAT_IF_SCENARIO = "what_if_scenario"
    SHARED_PROJECT = "shared_project"


class SyncFrequency(str, Enum):
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    MANUAL = "manual"


class SyncStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    RUNNING = "running"
    IDLE = "idle"


class ConnectionStatus(str, Enum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"
    UNKNOWN = "unknown"


# ============================================================================
# Field types
# ============================================================================


def _no_float(value: Any) -> Any:
    # Binary floats drift in cost arithmetic; callers send "150.00" or Decimal.
    if isinstance(value, (float, bool)):
        raise ValueError("expected a decimal string or integer, not a float")
    return value


def _decimal_string(value: Any) -> Any:
    if isinstance(value, (float, bool)):
        raise ValueError("expected a decimal string or integer, not a float")
    if isinstance(value, (int, Decimal)):
        value = str(value)
    if not isinstance(value, str):
        return value  # str validation reports the type error
    try:
        parsed = Decimal(value.strip())
    except InvalidOperation:
        raise ValueError(f"{value!r} is not a decimal number") from None
    if not parsed.is_finite():
        raise ValueError("must be a finite decimal number")
    return str(parsed)


Amount10 = Annotated[Decimal, BeforeValidator(_no_float), Field(max_digits=10, decimal_places=2)]
Amount14 = Annotated[Decimal, BeforeValidator(_no_float), Field(max_digits=14, decimal_places=2)]
Factor = Annotated[Decimal, BeforeValidator(_no_float), Field(max_digits=5, decimal_places=2)]
DecimalString = Annotated[str, BeforeValidator(_decimal_string)]
NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]
PositiveId = Annotated[int, Field(gt=0)]


class InsertSchema(BaseModel):
    """Base for insert projections."""

    model_config = ConfigDict(
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
        use_enum_values=True,
    )

    entity: ClassVar[str] = "record"


class WireModel(BaseModel):
    """Nested JSON documents stored inside a column."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True, alias_generator=to_camel)


# ============================================================================
# Users
# ============================================================================


class InsertUser(InsertSchema):
    entity: ClassVar[str] = "User"

    username: NonEmptyStr
    password: Annotated[str, Field(min_length=8)]
    role: UserRole = UserRole.USER.value
    name: str | None = None
    is_active: bool = True


# ============================================================================
# Cost data model
# ============================================================================


class InsertCostFactor(InsertSchema):
    entity: ClassVar[str] = "CostFactor"

    region: NonEmptyStr
    building_type: NonEmptyStr
    base_cost: Amount10
    complexity_factor: Factor = Decimal("1.0")
    region_factor: Factor = Decimal("1.0")


class InsertCostFactorPreset(InsertSchema):
    entity: ClassVar[str] = "CostFactorPreset"

    name: NonEmptyStr
    description: str | None = None
    user_id: PositiveId
    weights: dict[str, Any]
    is_default: bool = False


class InsertCostMatrix(InsertSchema):
    entity: ClassVar[str] = "CostMatrix"

    region: NonEmptyStr
    building_type: NonEmptyStr
    building_type_description: str
    base_cost: Amount14
    matrix_year: Annotated[int, Field(ge=1900, le=2200)]
    source_matrix_id: int
    matrix_description: str
    data_points: Annotated[int, Field(ge=0)] = 0
    min_cost: Amount14 | None = None
    max_cost: Amount14 | None = None
    complexity_factor_base: Factor = Decimal("1.0")
    quality_factor_base: Factor = Decimal("1.0")
    condition_factor_base: Factor = Decimal("1.0")
    county: str | None = None
    state: str | None = None
    is_active: bool = True

    @field_validator("max_cost")
    @classmethod
    def validate_cost_range(cls, v: Decimal | None, info: ValidationInfo) -> Decimal | None:
        min_cost = info.data.get("min_cost")
        if v is not None and min_cost is not None and v < min_cost:
            raise ValueError("maxCost must be greater than or equal to minCost")
        return v


class InsertMaterialType(InsertSchema):
    entity: ClassVar[str] = "MaterialType"

    name: NonEmptyStr
    code: NonEmptyStr
    description: str | None = None
    unit: NonEmptyStr = "sqft"


class InsertMaterialCost(InsertSchema):
    entity: ClassVar[str] = "MaterialCost"

    material_type_id: PositiveId
    building_type: NonEmptyStr
    region: NonEmptyStr
    cost_per_unit: Annotated[Amount10, Field(ge=0)]
    default_percentage: Annotated[Factor, Field(ge=0, le=100)]


class UpdateMaterialCost(InsertSchema):
    entity: ClassVar[str] = "MaterialCost"

    cost_per_unit: Annotated[Amount10, Field(ge=0)] | None = None
    default_percentage: Annotated[Factor, Field(ge=0, le=100)] | None = None


class InsertBuildingCost(InsertSchema):
    entity: ClassVar[str] = "BuildingCost"

    name: NonEmptyStr
    region: NonEmptyStr
    building_type: NonEmptyStr
    square_footage: Annotated[int, Field(gt=0)]
    cost_per_sqft: Amount10
    total_cost: Amount14


class BuildingCostMaterialLine(InsertSchema):
    """Material line as supplied alongside a new estimate."""

    entity: ClassVar[str] = "BuildingCostMaterial"

    material_type_id: PositiveId
    quantity: Amount10
    cost_per_unit: Amount10
    percentage: Annotated[Factor, Field(ge=0, le=100)]
    total_cost: Amount14


class InsertBuildingCostMaterial(BuildingCostMaterialLine):
    building_cost_id: PositiveId


# ============================================================================
# Calculation history
# ============================================================================


class InsertCalculationHistory(InsertSchema):
    """Snapshot of one estimate; factors are kept as exact decimal strings."""

    entity: ClassVar[str] = "CalculationHistory"

    user_id: PositiveId
    name: str | None = None
    region: NonEmptyStr
    building_type: NonEmptyStr
    square_footage: Annotated[int, Field(gt=0)]
    base_cost: DecimalString
    region_factor: DecimalString
    complexity: NonEmptyStr
    complexity_factor: DecimalString
    quality: str | None = None
    quality_factor: DecimalString | None = None
    condition: str | None = None
    condition_factor: DecimalString | None = None
    cost_per_sqft: DecimalString
    total_cost: DecimalString
    adjusted_cost: DecimalString
    assessed_value: DecimalString | None = None


# ============================================================================
# Benton matrix reference tables
# ============================================================================


class InsertBentonMatrixAxis(InsertSchema):
    entity: ClassVar[str] = "BentonMatrixAxis"

    matrix_year: int
    axis_cd: NonEmptyStr
    data_type: NonEmptyStr
    lookup_query: str | None = None
    matrix_type: NonEmptyStr


class InsertBentonMatrix(InsertSchema):
    entity: ClassVar[str] = "BentonMatrix"

    matrix_id: int
    matrix_year: int
    label: str
    axis1: str
    axis2: str
    matrix_description: str
    operator: str
    default_cell_value: Amount10
    b_interpolate: bool = False
    matrix_type: NonEmptyStr
    matrix_sub_type_cd: str | None = None


class InsertBentonMatrixDetail(InsertSchema):
    entity: ClassVar[str] = "BentonMatrixDetail"

    matrix_id: int
    matrix_year: int
    axis1_value: str
    axis2_value: str
    cell_value: Amount14


class InsertBentonImprvSchedMatrixAssoc(InsertSchema):
    entity: ClassVar[str] = "BentonImprvSchedMatrixAssoc"

    imprv_det_meth_cd: str
    imprv_det_type_cd: str
    imprv_det_class_cd: str
    imprv_yr: int
    matrix_id: int
    matrix_order: int
    adj_factor: int
    imprv_det_sub_class_cd: str


class InsertBentonDepreciationMatrix(InsertSchema):
    entity: ClassVar[str] = "BentonDepreciationMatrix"

    val_sub_element: str
    matrix_id: int
    age: Annotated[int, Field(ge=0)]
    factor: int
    condition_mapped: str


# ============================================================================
# What-if scenarios
# ============================================================================


class InsertWhatIfScenario(InsertSchema):
    entity: ClassVar[str] = "WhatIfScenario"

    user_id: PositiveId
    name: NonEmptyStr
    description: str | None = None
    base_calculation_id: PositiveId | None = None
    parameters: dict[str, Any]
    results: dict[str, Any] = Field(default_factory=dict)
    is_saved: bool = False


class InsertScenarioVariation(InsertSchema):
    entity: ClassVar[str] = "ScenarioVariation"

    scenario_id: PositiveId
    name: NonEmptyStr
    parameter_key: NonEmptyStr
    original_value: Any
    new_value: Any
    impact_value: Amount14 | None = None
    impact_percentage: Factor | None = None


class InsertScenarioImpact(InsertSchema):
    entity: ClassVar[str] = "ScenarioImpact"

    scenario_id: PositiveId
    analysis_type: NonEmptyStr
    impact_summary: dict[str, Any]


# ============================================================================
# Collaboration
# ============================================================================


class InsertSharedProject(InsertSchema):
    entity: ClassVar[str] = "SharedProject"

    name: NonEmptyStr
    description: str | None = None
    created_by_id: PositiveId
    status: ProjectStatus = ProjectStatus.ACTIVE.value
    is_public: bool = False


class UpdateSharedProject(InsertSchema):
    entity: ClassVar[str] = "SharedProject"

    name: NonEmptyStr | None = None
    description: str | None = None
    is_public: bool | None = None


class InsertProjectMember(InsertSchema):
    entity: ClassVar[str] = "ProjectMember"

    project_id: PositiveId
    user_id: PositiveId
    role: ProjectRole = ProjectRole.VIEWER.value
    invited_by: PositiveId


class InsertProjectInvitation(InsertSchema):
    entity: ClassVar[str] = "ProjectInvitation"

    project_id: PositiveId
    user_id: PositiveId
    invited_by: PositiveId
    role: ProjectRole = ProjectRole.VIEWER.value
    status: InvitationStatus = InvitationStatus.PENDING.value


class InsertProjectItem(InsertSchema):
    entity: ClassVar[str] = "ProjectItem"

    project_id: PositiveId
    item_type: ProjectItemType
    item_id: PositiveId
    added_by: PositiveId


class InsertSharedLink(InsertSchema):
    entity: ClassVar[str] = "SharedLink"

    project_id: PositiveId
    token: Annotated[str, Field(min_length=16)]
    access_level: AccessLevel = AccessLevel.VIEW.value
    expires_at: datetime | None = None
    created_by: PositiveId
    description: str | None = None


class InsertProjectActivity(InsertSchema):
    entity: ClassVar[str] = "ProjectActivity"

    project_id: PositiveId
    user_id: PositiveId
    activity_type: NonEmptyStr
    activity_data: Any = None


class InsertComment(InsertSchema):
    entity: ClassVar[str] = "Comment"

    user_id: PositiveId
    target_type: CommentTargetType
    target_id: PositiveId
    content: NonEmptyStr
    parent_comment_id: PositiveId | None = None
    is_resolved: bool = False


# ============================================================================
# Sync / connections
# ============================================================================


class SyncEndpoint(WireModel):
    type: Literal["ftp", "local"]
    path: NonEmptyStr


class SyncOptions(WireModel):
    delete_after_sync: bool = False
    overwrite_existing: bool = False
    include_subfolders: bool = False
    file_patterns: list[str] = Field(default_factory=list)


class SyncFileDetail(WireModel):
    file: str
    status: str
    size: Annotated[int, Field(ge=0)] = 0
    error: str | None = None


class InsertFTPConnection(InsertSchema):
    entity: ClassVar[str] = "FTPConnection"

    name: NonEmptyStr
    host: NonEmptyStr
    port: Annotated[int, Field(ge=1, le=65535)] = 21
    username: NonEmptyStr
    password: str
    secure: bool = False
    passive_mode: bool = True
    default_path: str | None = "/"
    description: str | None = None
    created_by: PositiveId
    is_default: bool = False


class InsertSyncSchedule(InsertSchema):
    entity: ClassVar[str] = "SyncSchedule"

    name: NonEmptyStr
    connection_id: PositiveId
    source: SyncEndpoint
    destination: SyncEndpoint
    frequency: SyncFrequency
    time: Annotated[str | None, Field(validate_default=True)] = None
    day_of_week: Annotated[int | None, Field(validate_default=True)] = None
    day_of_month: Annotated[int | None, Field(validate_default=True)] = None
    options: SyncOptions = Field(default_factory=SyncOptions)
    enabled: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None
    status: SyncStatus = SyncStatus.IDLE.value

    @field_validator("time")
    @classmethod
    def validate_time(cls, v: str | None, info: ValidationInfo) -> str | None:
        frequency = info.data.get("frequency")
        if v is None:
            if frequency in ("daily", "weekly", "monthly"):
                raise ValueError(f"time (HH:MM) is required for {frequency} schedules")
            return v
        hours, sep, minutes = v.partition(":")
        if not (sep and hours.isdigit() and minutes.isdigit() and len(minutes) == 2):
            raise ValueError("time must use HH:MM format")
        if not (0 <= int(hours) <= 23 and 0 <= int(minutes) <= 59):
            raise ValueError("time must be between 00:00 and 23:59")
        return f"{int(hours):02d}:{minutes}"

    @field_validator("day_of_week")
    @classmethod
    def validate_day_of_week(cls, v: int | None, info: ValidationInfo) -> int | None:
        if v is None:
            if info.data.get("frequency") == "weekly":
                raise ValueError("dayOfWeek (0-6, 0 = Sunday) is required for weekly schedules")
            return v
        if not 0 <= v <= 6:
            raise ValueError("dayOfWeek must be between 0 and 6")
        return v

    @field_validator("day_of_month")
    @classmethod
    def validate_day_of_month(cls, v: int | None, info: ValidationInfo) -> int | None:
        if v is None:
            if info.data.get("frequency") == "monthly":
                raise ValueError("dayOfMonth (1-31) is required for monthly schedules")
            return v
        if not 1 <= v <= 31:
            raise ValueError("dayOfMonth must be between 1 and 31")
        return v


class InsertSyncHistory(InsertSchema):
    entity: ClassVar[str] = "SyncHistory"

    schedule_id: PositiveId
    connection_id: PositiveId
    schedule_name: NonEmptyStr
    start_time: datetime | None = None
    end_time: datetime | None = None
    status: Literal["success", "failed", "running"]
    files_transferred: Annotated[int, Field(ge=0)] = 0
    total_bytes: Annotated[int, Field(ge=0)] = 0
    errors: list[str] = Field(default_factory=list)
    details: list[SyncFileDetail] = Field(default_factory=list)


class InsertConnectionHistory(InsertSchema):
    entity: ClassVar[str] = "ConnectionHistory"

    connection_type: NonEmptyStr
    status: Literal["success", "failed"]
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    user_id: PositiveId | None = None


# ============================================================================
# External price cache
# ============================================================================


class InsertMaterialsPriceCache(InsertSchema):
    entity: ClassVar[str] = "MaterialsPriceCache"

    material_code: NonEmptyStr
    source: NonEmptyStr
    region: NonEmptyStr
    price: Annotated[Amount10, Field(ge=0)]
    unit: NonEmptyStr
    valid_until: datetime
    price_metadata: dict[str, Any] | None = Field(default=None, alias="metadata")


# ============================================================================
# Validation and serialization helpers
# ============================================================================

S = TypeVar("S", bound=InsertSchema)

# ORM attribute -> wire name where to_camel does not apply
_WIRE_OVERRIDES = {"price_metadata": "metadata"}


def field_errors(
    exc: ValidationError, schema: type[BaseModel] | None = None
) -> dict[str, list[str]]:
    """Group every pydantic error by its (dotted) field location.

    Errors raised while validating a default report the Python field name;
    those are mapped back to the wire alias.
    """
    fields: dict[str, list[str]] = {}
    for error in exc.errors():
        loc = list(error["loc"])
        if schema is not None and loc and loc[0] in schema.model_fields:
            loc[0] = schema.model_fields[loc[0]].alias or loc[0]
        location = ".".join(str(part) for part in loc) or "__root__"
        fields.setdefault(location, []).append(error["msg"])
    return fields


def validate_insert(schema: type[S], payload: Mapping[str, Any] | S) -> S:
    """Validate a candidate payload against an insert schema.

    Returns the normalized, typed record. Raises RecordValidationError listing
    every violated field, not just the first.
    """
    if isinstance(payload, schema):
        return payload
    try:
        return schema.model_validate(payload)
    except ValidationError as exc:
        raise RecordValidationError(schema.entity, field_errors(exc, schema)) from exc


def to_columns(record: InsertSchema, *, exclude_unset: bool = False) -> dict[str, Any]:
    """ORM column values for a validated record (nested documents keep wire names)."""
    values: dict[str, Any] = {}
    for name in type(record).model_fields:
        if exclude_unset and name not in record.model_fields_set:
            continue
        value = getattr(record, name)
        if isinstance(value, BaseModel):
            value = value.model_dump(mode="json", by_alias=True)
        elif isinstance(value, list):
            value = [
                item.model_dump(mode="json", by_alias=True) if isinstance(item, BaseModel) else item
                for item in value
            ]
        values[name] = value
    return values


def to_wire(row: Any, exclude: set[str] | frozenset[str] = frozenset()) -> dict[str, Any]:
    """Render an ORM row with camelCase wire names.

    Decimals become strings so fixed precision survives JSON encoding.
    """
    data: dict[str, Any] = {}
    for attr in inspect(row).mapper.column_attrs:
        if attr.key in exclude:
            continue
        value = getattr(row, attr.key)
        if isinstance(value, Decimal):
            value = str(value)
        elif isinstance(value, datetime):
            value = value.isoformat()
        data[_WIRE_OVERRIDES.get(attr.key, to_camel(attr.key))] = value
    return data
