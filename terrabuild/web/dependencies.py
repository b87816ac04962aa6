"""Shared dependencies for TerraBuild API routes.

Every authenticated route resolves a RequestContext here and passes it
explicitly to the data layer.

Usage:
    from fastapi import Depends
    from terrabuild.web.dependencies import get_request_context

    @router.get("/api/things")
    async def list_things(ctx: RequestContext = Depends(get_request_context)):
        ...
"""

from __future__ import annotations

from fastapi import Cookie, Depends, HTTPException, Request, status

from terrabuild.config import get_config
from terrabuild.core.context import RequestContext
from terrabuild.web.auth import validate_session


def get_request_context(request: Request, session: str | None = Cookie(default=None)) -> RequestContext:
    """Resolve the authenticated principal for this request.

    Raises:
        HTTPException: 401 when there is no valid session
    """
    request_id = request.headers.get("X-Request-ID")

    if get_config().auth.disabled:
        return RequestContext(user_id=1, username="default_admin", role="admin", request_id=request_id)

    data = validate_session(session)
    if not data:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    return RequestContext(
        user_id=int(data["user_id"]),
        username=data["username"],
        role=data.get("role", "user"),
        request_id=request_id,
    )


def require_admin_context(ctx: RequestContext = Depends(get_request_context)) -> RequestContext:
    if not ctx.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return ctx
