"""Unit tests for TerraBuild web routes.

Structure:
    tests/unit/web/
    ├── test_api_routes.py     # Cost data, calculations, projects, reference
    └── test_auth_routes.py    # Login, sessions, app factory

Testing pattern:
    - FastAPI TestClient against an app built with install_error_handlers
    - Patch get_session and the data-layer function each route calls
    - Override get_request_context to pick the caller's role
"""
