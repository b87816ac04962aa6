"""TerraBuild API route modules.

Each module exports a `router` (APIRouter instance) that
terrabuild.web.app includes. Routes open their own unit of work with
``async with get_session()`` and pass an explicit RequestContext to the
data layer.

Usage:
    from terrabuild.web.routes import matrices
    app.include_router(matrices.router)
"""

from terrabuild.web.routes import (
    auth,
    calculations,
    comments,
    dashboard,
    health,
    materials,
    matrices,
    projects,
    reference,
    scenarios,
)

__all__ = [
    "auth",
    "calculations",
    "comments",
    "dashboard",
    "health",
    "materials",
    "matrices",
    "projects",
    "reference",
    "scenarios",
]
