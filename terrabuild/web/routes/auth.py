"""Authentication routes.

Routes:
- POST /api/auth/login  - Check credentials and start a session (cookie)
- POST /api/auth/logout - End the current session
- GET  /api/auth/me     - The authenticated user
"""

from __future__ import annotations

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from pydantic import BaseModel

from terrabuild import accounts
from terrabuild.core.context import RequestContext
from terrabuild.db.connection import get_session
from terrabuild.models import to_wire
from terrabuild.web.auth import SESSION_COOKIE, create_session, end_session, session_expiry
from terrabuild.web.dependencies import get_request_context

router = APIRouter(prefix="/api/auth", tags=["authentication"])

USER_WIRE_EXCLUDE = frozenset({"password"})


class LoginRequest(BaseModel):
    username: str
    password: str


@router.post("/login")
async def login(credentials: LoginRequest, response: Response):
    async with get_session() as session:
        user = await accounts.authenticate(session, credentials.username, credentials.password)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password"
            )
        body = to_wire(user, exclude=USER_WIRE_EXCLUDE)

    token = create_session(user.id, user.username, user.role)
    response.set_cookie(
        key=SESSION_COOKIE,
        value=token,
        httponly=True,
        max_age=int(session_expiry().total_seconds()),
        samesite="lax",
    )
    return body


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(response: Response, session: str | None = Cookie(default=None)):
    end_session(session)
    response.delete_cookie(SESSION_COOKIE)


@router.get("/me")
async def me(ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        user = await accounts.get_user(session, ctx.user_id)
        return to_wire(user, exclude=USER_WIRE_EXCLUDE)
