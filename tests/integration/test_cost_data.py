"""Integration tests for cost matrices, factors, materials and saved estimates."""

from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.core.context import RequestContext
from terrabuild.costs import building_costs, factors, materials, matrices
from terrabuild.db.models import CostMatrixModel
from terrabuild.db.writes import flush_or_raise
from terrabuild.errors import (
    ConstraintViolationError,
    NotFoundError,
    PermissionDeniedError,
    RecordValidationError,
)


class TestCostMatrices:
    """(region, buildingType, matrixYear) identifies at most one matrix."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, db_session: AsyncSession, user_ctx, matrix_payload):
        matrix = await matrices.create_cost_matrix(db_session, user_ctx, matrix_payload)

        loaded = await matrices.get_cost_matrix(db_session, matrix.id)
        assert loaded.base_cost == Decimal("150.00")
        assert loaded.is_active is True
        assert loaded.data_points == 0

    @pytest.mark.asyncio
    async def test_duplicate_key_is_rejected_without_partial_write(
        self, db_session: AsyncSession, user_ctx, matrix_payload
    ):
        first = await matrices.create_cost_matrix(db_session, user_ctx, matrix_payload)
        first_id = first.id
        await db_session.commit()

        with pytest.raises(ConstraintViolationError) as exc_info:
            await matrices.create_cost_matrix(
                db_session, user_ctx, {**matrix_payload, "baseCost": "175.00"}
            )

        error = exc_info.value
        assert error.constraint == "region_building_type_year_idx"
        assert error.fields == ("region", "buildingType", "matrixYear")

        rows = await matrices.list_cost_matrices(db_session, region="West")
        assert [row.id for row in rows] == [first_id]
        assert rows[0].base_cost == Decimal("150.00")

    @pytest.mark.asyncio
    async def test_same_key_in_another_year_is_allowed(
        self, db_session: AsyncSession, user_ctx, matrix_payload
    ):
        await matrices.create_cost_matrix(db_session, user_ctx, matrix_payload)
        await matrices.create_cost_matrix(db_session, user_ctx, {**matrix_payload, "matrixYear": 2025})

        rows = await matrices.list_cost_matrices(db_session, building_type="Residential")
        assert [row.matrix_year for row in rows] == [2025, 2024]

    @pytest.mark.asyncio
    async def test_upsert_inserts_then_updates(
        self, db_session: AsyncSession, user_ctx, matrix_payload
    ):
        created, was_created = await matrices.upsert_cost_matrix(db_session, user_ctx, matrix_payload)
        updated, second_created = await matrices.upsert_cost_matrix(
            db_session, user_ctx, {**matrix_payload, "baseCost": "162.50", "dataPoints": 40}
        )

        assert was_created is True
        assert second_created is False
        assert updated.id == created.id
        assert updated.base_cost == Decimal("162.50")
        assert updated.data_points == 40

    @pytest.mark.asyncio
    async def test_upsert_rereads_after_losing_insert_race(
        self, db_session: AsyncSession, user_ctx, matrix_payload, monkeypatch
    ):
        winner = await matrices.create_cost_matrix(db_session, user_ctx, matrix_payload)
        winner_id = winner.id
        await db_session.commit()

        real_find = matrices.find_cost_matrix
        calls = []

        async def miss_first_read(session, region, building_type, matrix_year):
            # The concurrent insert lands after this read.
            calls.append((region, building_type, matrix_year))
            if len(calls) == 1:
                return None
            return await real_find(session, region, building_type, matrix_year)

        monkeypatch.setattr(matrices, "find_cost_matrix", miss_first_read)

        matrix, created = await matrices.upsert_cost_matrix(
            db_session, user_ctx, {**matrix_payload, "baseCost": "171.25"}
        )
        await db_session.commit()

        assert created is False
        assert matrix.id == winner_id
        assert matrix.base_cost == Decimal("171.25")
        assert len(calls) == 2
        rows = await matrices.list_cost_matrices(db_session)
        assert [row.id for row in rows] == [winner_id]

    @pytest.mark.asyncio
    async def test_viewer_cannot_write(self, db_session: AsyncSession, viewer_ctx, matrix_payload):
        with pytest.raises(PermissionDeniedError):
            await matrices.create_cost_matrix(db_session, viewer_ctx, matrix_payload)

    @pytest.mark.asyncio
    async def test_invalid_payload_writes_nothing(
        self, db_session: AsyncSession, user_ctx, matrix_payload
    ):
        with pytest.raises(RecordValidationError) as exc_info:
            await matrices.create_cost_matrix(
                db_session, user_ctx, {**matrix_payload, "baseCost": 150.5, "region": ""}
            )

        assert set(exc_info.value.fields) == {"baseCost", "region"}
        assert await matrices.list_cost_matrices(db_session) == []

    @pytest.mark.asyncio
    async def test_deactivate_keeps_row(self, db_session: AsyncSession, user_ctx, matrix_payload):
        matrix = await matrices.create_cost_matrix(db_session, user_ctx, matrix_payload)

        await matrices.deactivate_cost_matrix(db_session, user_ctx, matrix.id)

        assert await matrices.list_cost_matrices(db_session, is_active=True) == []
        inactive = await matrices.list_cost_matrices(db_session, is_active=False)
        assert [row.id for row in inactive] == [matrix.id]

    @pytest.mark.asyncio
    async def test_missing_matrix(self, db_session: AsyncSession):
        with pytest.raises(NotFoundError):
            await matrices.get_cost_matrix(db_session, 404)

    @pytest.mark.asyncio
    async def test_check_constraint_backs_up_validation(self, db_session: AsyncSession):
        db_session.add(
            CostMatrixModel(
                region="East",
                building_type="Commercial",
                building_type_description="Retail",
                base_cost=Decimal("200.00"),
                matrix_year=2024,
                source_matrix_id=7,
                matrix_description="rates",
                min_cost=Decimal("300.00"),
                max_cost=Decimal("100.00"),
            )
        )

        with pytest.raises(ConstraintViolationError) as exc_info:
            await flush_or_raise(db_session, CostMatrixModel())

        assert exc_info.value.constraint == "check"


class TestCostFactorPresets:
    @pytest.mark.asyncio
    async def test_single_default_per_user(self, db_session: AsyncSession, user_ctx):
        first = await factors.create_cost_factor_preset(
            db_session, user_ctx, {"name": "Standard", "weights": {"quality": 1}, "isDefault": True}
        )
        second = await factors.create_cost_factor_preset(
            db_session, user_ctx, {"name": "Rural", "weights": {"quality": 0.9}, "isDefault": True}
        )

        presets = await factors.list_cost_factor_presets(db_session, user_ctx.user_id)
        defaults = [preset.name for preset in presets if preset.is_default]
        assert defaults == ["Rural"]

        await factors.set_default_preset(db_session, user_ctx, first.id)
        presets = await factors.list_cost_factor_presets(db_session, user_ctx.user_id)
        assert [preset.id for preset in presets if preset.is_default] == [first.id]
        assert second.id in {preset.id for preset in presets}

    @pytest.mark.asyncio
    async def test_preset_owner_only(self, db_session: AsyncSession, user_ctx):
        preset = await factors.create_cost_factor_preset(
            db_session, user_ctx, {"name": "Standard", "weights": {}}
        )
        other = RequestContext(user_id=7, username="field_reviewer", role="user")

        with pytest.raises(PermissionDeniedError):
            await factors.set_default_preset(db_session, other, preset.id)

    @pytest.mark.asyncio
    async def test_latest_factor_wins(self, db_session: AsyncSession, user_ctx):
        base = {"region": "West", "buildingType": "Residential", "baseCost": "150.00"}
        await factors.create_cost_factor(db_session, user_ctx, {**base, "regionFactor": "1.00"})
        await factors.create_cost_factor(db_session, user_ctx, {**base, "regionFactor": "1.08"})

        factor = await factors.get_cost_factor(db_session, "West", "Residential")

        assert factor.region_factor == Decimal("1.08")


class TestMaterialCosts:
    async def _material(self, session: AsyncSession, ctx: RequestContext) -> int:
        material_type = await materials.create_material_type(
            session, ctx, {"name": "Concrete", "code": "CONC"}
        )
        return material_type.id

    @pytest.mark.asyncio
    async def test_duplicate_material_cost_key(self, db_session: AsyncSession, user_ctx):
        type_id = await self._material(db_session, user_ctx)
        payload = {
            "materialTypeId": type_id,
            "buildingType": "Residential",
            "region": "Benton",
            "costPerUnit": "12.50",
            "defaultPercentage": "15.00",
        }
        await materials.create_material_cost(db_session, user_ctx, payload)
        await db_session.commit()

        with pytest.raises(ConstraintViolationError) as exc_info:
            await materials.create_material_cost(db_session, user_ctx, payload)

        assert exc_info.value.constraint == "material_building_region_idx"

    @pytest.mark.asyncio
    async def test_unknown_material_type(self, db_session: AsyncSession, user_ctx):
        with pytest.raises(NotFoundError):
            await materials.create_material_cost(
                db_session,
                user_ctx,
                {
                    "materialTypeId": 99,
                    "buildingType": "Residential",
                    "region": "West",
                    "costPerUnit": "1.00",
                    "defaultPercentage": "1.00",
                },
            )

    @pytest.mark.asyncio
    async def test_region_fallback_policy(self, db_session: AsyncSession, user_ctx):
        type_id = await self._material(db_session, user_ctx)
        benton = await materials.create_material_cost(
            db_session,
            user_ctx,
            {
                "materialTypeId": type_id,
                "buildingType": "Residential",
                "region": "Benton",
                "costPerUnit": "12.50",
                "defaultPercentage": "15.00",
            },
        )

        exact = await materials.resolve_material_cost(
            db_session, type_id, "Residential", "West", policy="exact"
        )
        fallback = await materials.resolve_material_cost(
            db_session, type_id, "Residential", "West", policy="default_region"
        )

        assert exact is None
        assert fallback.id == benton.id

    @pytest.mark.asyncio
    async def test_configured_policy_applies(self, db_session: AsyncSession, user_ctx, monkeypatch):
        from terrabuild.config import reset_config

        monkeypatch.setenv("MATERIAL_FALLBACK_POLICY", "default_region")
        reset_config()
        type_id = await self._material(db_session, user_ctx)
        await materials.create_material_cost(
            db_session,
            user_ctx,
            {
                "materialTypeId": type_id,
                "buildingType": "Residential",
                "region": "Benton",
                "costPerUnit": "12.50",
                "defaultPercentage": "15.00",
            },
        )

        cost = await materials.resolve_material_cost(db_session, type_id, "Residential", "East")

        assert cost is not None
        assert cost.region == "Benton"

    @pytest.mark.asyncio
    async def test_partial_update(self, db_session: AsyncSession, user_ctx):
        type_id = await self._material(db_session, user_ctx)
        cost = await materials.create_material_cost(
            db_session,
            user_ctx,
            {
                "materialTypeId": type_id,
                "buildingType": "Residential",
                "region": "Benton",
                "costPerUnit": "12.50",
                "defaultPercentage": "15.00",
            },
        )

        updated = await materials.update_material_cost(
            db_session, user_ctx, cost.id, {"costPerUnit": "13.75"}
        )

        assert updated.cost_per_unit == Decimal("13.75")
        assert updated.default_percentage == Decimal("15.00")


class TestBuildingCosts:
    @pytest.mark.asyncio
    async def test_estimate_with_material_lines(self, db_session: AsyncSession, user_ctx):
        concrete = await materials.create_material_type(
            db_session, user_ctx, {"name": "Concrete", "code": "CONC"}
        )
        estimate, lines = await building_costs.save_building_cost(
            db_session,
            user_ctx,
            {
                "name": "Parcel 1-2345",
                "region": "West",
                "buildingType": "Residential",
                "squareFootage": 2000,
                "costPerSqft": "150.00",
                "totalCost": "300000.00",
            },
            [
                {
                    "materialTypeId": concrete.id,
                    "quantity": "120.00",
                    "costPerUnit": "250.00",
                    "percentage": "10.00",
                    "totalCost": "30000.00",
                }
            ],
        )

        assert [line.building_cost_id for line in lines] == [estimate.id]
        assert building_costs.material_total_mismatch(estimate, lines) == Decimal("270000.00")
        stored = await building_costs.list_building_cost_materials(db_session, estimate.id)
        assert [line.total_cost for line in stored] == [Decimal("30000.00")]

    @pytest.mark.asyncio
    async def test_line_errors_are_indexed(self, db_session: AsyncSession, user_ctx):
        estimate = {
            "name": "Parcel 9",
            "region": "West",
            "buildingType": "Residential",
            "squareFootage": 1000,
            "costPerSqft": "100.00",
            "totalCost": "100000.00",
        }
        good_line = {
            "materialTypeId": 1,
            "quantity": "1.00",
            "costPerUnit": "1.00",
            "percentage": "1.00",
            "totalCost": "1.00",
        }

        with pytest.raises(RecordValidationError) as exc_info:
            await building_costs.save_building_cost(
                db_session, user_ctx, estimate, [good_line, {**good_line, "percentage": "150"}]
            )

        assert list(exc_info.value.fields) == ["materials.1.percentage"]
        assert await building_costs.list_building_costs(db_session) == []
