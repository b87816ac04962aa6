"""Tests for terrabuild.web.routes - JSON API routes.

Data-layer calls are patched; these tests cover request parsing, status codes,
wire rendering and error mapping.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from terrabuild.core.context import RequestContext
from terrabuild.db.models import (
    CalculationHistoryModel,
    CostMatrixModel,
    ProjectInvitationModel,
    SharedLinkModel,
    SharedProjectModel,
)
from terrabuild.errors import (
    ConstraintViolationError,
    ExpiredLinkError,
    NotFoundError,
    RecordValidationError,
)
from terrabuild.web.dependencies import get_request_context
from terrabuild.web.errors import install_error_handlers
from terrabuild.web.routes import calculations, matrices, projects, reference

ADMIN = RequestContext(user_id=1, username="assessor_admin", role="admin")
APPRAISER = RequestContext(user_id=2, username="appraiser", role="user")


def _build_app(ctx: RequestContext) -> FastAPI:
    test_app = FastAPI()
    install_error_handlers(test_app)
    for module in (matrices, calculations, projects, reference):
        test_app.include_router(module.router)
    test_app.dependency_overrides[get_request_context] = lambda: ctx
    return test_app


@pytest.fixture
def client():
    """Client authenticated as a regular appraiser."""
    return TestClient(_build_app(APPRAISER))


@pytest.fixture
def admin_client():
    return TestClient(_build_app(ADMIN))


@pytest.fixture
def mock_db_session():
    """Mock database session with async context manager."""
    session = AsyncMock()

    async_cm = AsyncMock()
    async_cm.__aenter__.return_value = session
    async_cm.__aexit__.return_value = None

    return async_cm


def _matrix(**overrides) -> CostMatrixModel:
    values = {
        "id": 11,
        "region": "West",
        "building_type": "Residential",
        "building_type_description": "Single family",
        "base_cost": Decimal("150.00"),
        "matrix_year": 2024,
        "source_matrix_id": 101,
        "matrix_description": "2024 rates",
        "is_active": True,
    }
    values.update(overrides)
    return CostMatrixModel(**values)


class TestCostMatrixRoutes:
    """Tests for /api/cost-matrices."""

    @patch("terrabuild.web.routes.matrices.matrices.create_cost_matrix")
    @patch("terrabuild.web.routes.matrices.get_session")
    def test_create_returns_201_with_wire_names(
        self, mock_get_session, mock_create, client, mock_db_session, matrix_payload
    ):
        mock_get_session.return_value = mock_db_session
        mock_create.return_value = _matrix()

        response = client.post("/api/cost-matrices", json=matrix_payload)

        assert response.status_code == 201
        body = response.json()
        assert body["buildingType"] == "Residential"
        assert body["baseCost"] == "150.00"
        session = mock_db_session.__aenter__.return_value
        mock_create.assert_awaited_once_with(session, APPRAISER, matrix_payload)

    @patch("terrabuild.web.routes.matrices.matrices.create_cost_matrix")
    @patch("terrabuild.web.routes.matrices.get_session")
    def test_duplicate_key_is_409(
        self, mock_get_session, mock_create, client, mock_db_session, matrix_payload
    ):
        mock_get_session.return_value = mock_db_session
        mock_create.side_effect = ConstraintViolationError(
            "region_building_type_year_idx", ("region", "buildingType", "matrixYear")
        )

        response = client.post("/api/cost-matrices", json=matrix_payload)

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "constraint_violation"
        assert body["constraint"] == "region_building_type_year_idx"
        assert body["fields"] == ["region", "buildingType", "matrixYear"]

    @patch("terrabuild.web.routes.matrices.matrices.create_cost_matrix")
    @patch("terrabuild.web.routes.matrices.get_session")
    def test_invalid_payload_is_422_with_fields(
        self, mock_get_session, mock_create, client, mock_db_session
    ):
        mock_get_session.return_value = mock_db_session
        mock_create.side_effect = RecordValidationError(
            "CostMatrix", {"baseCost": ["Input should be a valid decimal"]}
        )

        response = client.post("/api/cost-matrices", json={"baseCost": "abc"})

        assert response.status_code == 422
        assert response.json()["fields"] == {"baseCost": ["Input should be a valid decimal"]}

    @patch("terrabuild.web.routes.matrices.matrices.upsert_cost_matrix")
    @patch("terrabuild.web.routes.matrices.get_session")
    def test_upsert_status_reflects_creation(
        self, mock_get_session, mock_upsert, client, mock_db_session, matrix_payload
    ):
        mock_get_session.return_value = mock_db_session

        mock_upsert.return_value = (_matrix(), True)
        assert client.put("/api/cost-matrices", json=matrix_payload).status_code == 201

        mock_upsert.return_value = (_matrix(base_cost=Decimal("155.00")), False)
        response = client.put("/api/cost-matrices", json=matrix_payload)
        assert response.status_code == 200
        assert response.json()["baseCost"] == "155.00"

    @patch("terrabuild.web.routes.matrices.matrices.list_cost_matrices")
    @patch("terrabuild.web.routes.matrices.get_session")
    def test_list_passes_filters(self, mock_get_session, mock_list, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        mock_list.return_value = [_matrix()]

        response = client.get(
            "/api/cost-matrices?region=West&buildingType=Residential&matrixYear=2024"
        )

        assert response.status_code == 200
        assert [row["id"] for row in response.json()] == [11]
        kwargs = mock_list.await_args.kwargs
        assert kwargs["region"] == "West"
        assert kwargs["building_type"] == "Residential"
        assert kwargs["matrix_year"] == 2024
        assert kwargs["is_active"] is None

    @patch("terrabuild.web.routes.matrices.matrices.get_cost_matrix")
    @patch("terrabuild.web.routes.matrices.get_session")
    def test_missing_matrix_is_404(self, mock_get_session, mock_get, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        mock_get.side_effect = NotFoundError("CostMatrix", 99)

        response = client.get("/api/cost-matrices/99")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestCalculationRoutes:
    """Calculation history is append-only over HTTP as well."""

    def _calculation(self, user_id: int) -> CalculationHistoryModel:
        return CalculationHistoryModel(
            id=5,
            user_id=user_id,
            region="West",
            building_type="Residential",
            square_footage=2000,
            base_cost="150.00",
            region_factor="1.05",
            complexity="standard",
            complexity_factor="1.00",
            cost_per_sqft="157.50",
            total_cost="315000.00",
            adjusted_cost="315000.00",
        )

    def test_no_update_or_delete_routes(self, client):
        assert client.put("/api/calculations/5", json={}).status_code == 405
        assert client.delete("/api/calculations/5").status_code == 405

    @patch("terrabuild.web.routes.calculations.history.get_calculation")
    @patch("terrabuild.web.routes.calculations.get_session")
    def test_other_users_calculation_forbidden(
        self, mock_get_session, mock_get, client, mock_db_session
    ):
        mock_get_session.return_value = mock_db_session
        mock_get.return_value = self._calculation(user_id=7)

        response = client.get("/api/calculations/5")

        assert response.status_code == 403

    @patch("terrabuild.web.routes.calculations.history.get_calculation")
    @patch("terrabuild.web.routes.calculations.get_session")
    def test_admin_reads_any_calculation(
        self, mock_get_session, mock_get, admin_client, mock_db_session
    ):
        mock_get_session.return_value = mock_db_session
        mock_get.return_value = self._calculation(user_id=7)

        response = admin_client.get("/api/calculations/5")

        assert response.status_code == 200
        assert response.json()["regionFactor"] == "1.05"

    def test_listing_another_users_history_requires_admin(self, client):
        assert client.get("/api/calculations?userId=7").status_code == 403


class TestProjectRoutes:
    @patch("terrabuild.web.routes.projects.invitations.invite_user")
    @patch("terrabuild.web.routes.projects.get_session")
    def test_invite_parses_camel_case_body(
        self, mock_get_session, mock_invite, client, mock_db_session
    ):
        mock_get_session.return_value = mock_db_session
        mock_invite.return_value = ProjectInvitationModel(
            id=3, project_id=4, user_id=7, invited_by=2, role="editor", status="pending"
        )

        response = client.post("/api/projects/4/invitations", json={"userId": 7, "role": "editor"})

        assert response.status_code == 201
        assert response.json()["status"] == "pending"
        session = mock_db_session.__aenter__.return_value
        mock_invite.assert_awaited_once_with(session, APPRAISER, 4, 7, "editor")

    @patch("terrabuild.web.routes.projects.links.resolve_shared_link")
    @patch("terrabuild.web.routes.projects.get_session")
    def test_resolve_link_needs_no_login(self, mock_get_session, mock_resolve, mock_db_session):
        mock_get_session.return_value = mock_db_session
        expires = datetime(2030, 1, 1, tzinfo=timezone.utc)
        mock_resolve.return_value = (
            SharedLinkModel(id=1, project_id=4, token="t" * 32, access_level="view", expires_at=expires),
            SharedProjectModel(id=4, name="County Survey", created_by_id=2, status="active"),
        )
        app_without_auth = FastAPI()
        install_error_handlers(app_without_auth)
        app_without_auth.include_router(projects.router)

        response = TestClient(app_without_auth).get("/api/shared-links/" + "t" * 32)

        assert response.status_code == 200
        body = response.json()
        assert body["accessLevel"] == "view"
        assert body["expiresAt"] == expires.isoformat()
        assert body["project"]["name"] == "County Survey"

    @patch("terrabuild.web.routes.projects.links.resolve_shared_link")
    @patch("terrabuild.web.routes.projects.get_session")
    def test_expired_link_is_410(self, mock_get_session, mock_resolve, client, mock_db_session):
        mock_get_session.return_value = mock_db_session
        mock_resolve.side_effect = ExpiredLinkError(
            f"Shared link 1 expired at {(datetime.now(timezone.utc) - timedelta(days=1)).isoformat()}"
        )

        response = client.get("/api/shared-links/abc")

        assert response.status_code == 410
        assert response.json()["error"] == "link_expired"


class TestReferenceRoutes:
    @patch("terrabuild.web.routes.reference.lookup.lookup_cell")
    @patch("terrabuild.web.routes.reference.get_session")
    def test_cell_value_is_a_decimal_string(
        self, mock_get_session, mock_lookup, client, mock_db_session
    ):
        mock_get_session.return_value = mock_db_session
        mock_lookup.return_value = Decimal("87.50")

        response = client.get("/api/reference/matrices/300/2024/cell?axis1=A&axis2=1200")

        assert response.status_code == 200
        assert response.json() == {"matrixId": 300, "year": 2024, "value": "87.50"}

    def test_import_requires_admin(self, client):
        response = client.post("/api/reference/import", json={"axes": []})

        assert response.status_code == 403

    @patch("terrabuild.web.routes.reference.benton.import_benton_rows")
    @patch("terrabuild.web.routes.reference.get_session")
    def test_import_passes_every_section(
        self, mock_get_session, mock_import, admin_client, mock_db_session
    ):
        mock_get_session.return_value = mock_db_session
        mock_import.return_value = {"axes": 1, "matrices": 0, "details": 0, "associations": 0, "depreciation": 0}

        response = admin_client.post("/api/reference/import", json={"axes": [{"axisCd": "A"}]})

        assert response.status_code == 201
        kwargs = mock_import.await_args.kwargs
        assert kwargs["axes"] == [{"axisCd": "A"}]
        assert kwargs["details"] == []
