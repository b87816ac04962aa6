"""Comment routes.

Routes:
- GET   /api/comments?targetType=&targetId=  - Threads on a target
- POST  /api/comments                        - Post a comment or reply
- PATCH /api/comments/{id}                   - Edit your comment
- POST  /api/comments/{id}/resolve           - Mark resolved / unresolved
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel

from terrabuild.collaboration import comments
from terrabuild.core.context import RequestContext
from terrabuild.db.connection import get_session
from terrabuild.models import CommentTargetType, to_wire
from terrabuild.web.dependencies import get_request_context

router = APIRouter(prefix="/api/comments", tags=["comments"])


class EditRequest(BaseModel):
    content: str


class ResolveRequest(BaseModel):
    resolved: bool = True


@router.get("")
async def list_comments(
    target_type: CommentTargetType = Query(alias="targetType"),
    target_id: int = Query(alias="targetId"),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        threads = await comments.list_comments(session, ctx, target_type.value, target_id)
        return [thread.to_wire() for thread in threads]


@router.post("", status_code=status.HTTP_201_CREATED)
async def add_comment(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await comments.add_comment(session, ctx, payload))


@router.patch("/{comment_id}")
async def edit_comment(
    comment_id: int,
    body: EditRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await comments.edit_comment(session, ctx, comment_id, body.content))


@router.post("/{comment_id}/resolve")
async def resolve_comment(
    comment_id: int,
    body: ResolveRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await comments.resolve_comment(session, ctx, comment_id, body.resolved))
