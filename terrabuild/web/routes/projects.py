"""Shared project routes: projects, members, invitations, items, links, activity.

Routes:
- GET    /api/projects
- POST   /api/projects
- GET    /api/projects/{id}
- PATCH  /api/projects/{id}
- POST   /api/projects/{id}/archive
- GET    /api/projects/{id}/members
- PATCH  /api/projects/{id}/members/{user_id}
- DELETE /api/projects/{id}/members/{user_id}
- GET    /api/projects/{id}/invitations
- POST   /api/projects/{id}/invitations
- GET    /api/invitations                      - Caller's pending invitations
- POST   /api/invitations/{id}/accept
- POST   /api/invitations/{id}/decline
- GET    /api/projects/{id}/items
- POST   /api/projects/{id}/items
- DELETE /api/projects/{id}/items/{item_type}/{item_id}
- GET    /api/projects/{id}/links
- POST   /api/projects/{id}/links
- DELETE /api/projects/{id}/links/{link_id}
- GET    /api/shared-links/{token}             - Resolve a share link (no login)
- GET    /api/projects/{id}/activities
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from terrabuild.collaboration import activity, invitations, items, links, projects
from terrabuild.core.context import RequestContext
from terrabuild.db.connection import get_session
from terrabuild.models import AccessLevel, ProjectRole, to_wire
from terrabuild.web.dependencies import get_request_context

router = APIRouter(tags=["projects"])


class CamelRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InviteRequest(CamelRequest):
    user_id: int
    role: str = ProjectRole.VIEWER.value


class RoleChangeRequest(CamelRequest):
    role: str


class ItemRequest(CamelRequest):
    item_type: str
    item_id: int


class LinkRequest(CamelRequest):
    access_level: str = AccessLevel.VIEW.value
    expires_at: datetime | None = None
    description: str | None = None


# ============================================================================
# Projects
# ============================================================================


@router.get("/api/projects")
async def list_projects(
    include_archived: bool = Query(default=False, alias="includeArchived"),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        rows = await projects.list_projects_for_user(session, ctx.user_id, include_archived)
        return [to_wire(row) for row in rows]


@router.post("/api/projects", status_code=status.HTTP_201_CREATED)
async def create_project(
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await projects.create_project(session, ctx, payload))


@router.get("/api/projects/{project_id}")
async def get_project(project_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        return to_wire(await projects.get_project(session, ctx, project_id))


@router.patch("/api/projects/{project_id}")
async def update_project(
    project_id: int,
    payload: dict[str, Any] = Body(...),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        return to_wire(await projects.update_project(session, ctx, project_id, payload))


@router.post("/api/projects/{project_id}/archive")
async def archive_project(project_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        return to_wire(await projects.archive_project(session, ctx, project_id))


# ============================================================================
# Members
# ============================================================================


@router.get("/api/projects/{project_id}/members")
async def list_members(project_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        return [to_wire(row) for row in await projects.list_members(session, ctx, project_id)]


@router.patch("/api/projects/{project_id}/members/{user_id}")
async def change_member_role(
    project_id: int,
    user_id: int,
    body: RoleChangeRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        member = await projects.change_member_role(session, ctx, project_id, user_id, body.role)
        return to_wire(member)


@router.delete("/api/projects/{project_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_member(
    project_id: int, user_id: int, ctx: RequestContext = Depends(get_request_context)
):
    async with get_session() as session:
        await projects.remove_member(session, ctx, project_id, user_id)


# ============================================================================
# Invitations
# ============================================================================


@router.get("/api/projects/{project_id}/invitations")
async def list_project_invitations(
    project_id: int, ctx: RequestContext = Depends(get_request_context)
):
    async with get_session() as session:
        rows = await invitations.list_project_invitations(session, ctx, project_id)
        return [to_wire(row) for row in rows]


@router.post("/api/projects/{project_id}/invitations", status_code=status.HTTP_201_CREATED)
async def invite_user(
    project_id: int,
    body: InviteRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        invitation = await invitations.invite_user(
            session, ctx, project_id, body.user_id, body.role
        )
        return to_wire(invitation)


@router.get("/api/invitations")
async def list_my_invitations(ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        rows = await invitations.list_pending_invitations(session, ctx.user_id)
        return [to_wire(row) for row in rows]


@router.post("/api/invitations/{invitation_id}/accept")
async def accept_invitation(
    invitation_id: int, ctx: RequestContext = Depends(get_request_context)
):
    async with get_session() as session:
        member = await invitations.accept_invitation(session, ctx, invitation_id)
        return to_wire(member)


@router.post("/api/invitations/{invitation_id}/decline")
async def decline_invitation(
    invitation_id: int, ctx: RequestContext = Depends(get_request_context)
):
    async with get_session() as session:
        invitation = await invitations.decline_invitation(session, ctx, invitation_id)
        return to_wire(invitation)


# ============================================================================
# Items
# ============================================================================


@router.get("/api/projects/{project_id}/items")
async def list_items(
    project_id: int,
    item_type: str | None = Query(default=None, alias="itemType"),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        rows = await items.list_project_items(session, ctx, project_id, item_type)
        return [to_wire(row) for row in rows]


@router.post("/api/projects/{project_id}/items", status_code=status.HTTP_201_CREATED)
async def add_item(
    project_id: int,
    body: ItemRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        item = await items.add_project_item(session, ctx, project_id, body.item_type, body.item_id)
        return to_wire(item)


@router.delete(
    "/api/projects/{project_id}/items/{item_type}/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def remove_item(
    project_id: int,
    item_type: str,
    item_id: int,
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        await items.remove_project_item(session, ctx, project_id, item_type, item_id)


# ============================================================================
# Shared links
# ============================================================================


@router.get("/api/projects/{project_id}/links")
async def list_links(project_id: int, ctx: RequestContext = Depends(get_request_context)):
    async with get_session() as session:
        return [to_wire(row) for row in await links.list_shared_links(session, ctx, project_id)]


@router.post("/api/projects/{project_id}/links", status_code=status.HTTP_201_CREATED)
async def create_link(
    project_id: int,
    body: LinkRequest,
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        link = await links.create_shared_link(
            session,
            ctx,
            project_id,
            access_level=body.access_level,
            expires_at=body.expires_at,
            description=body.description,
        )
        return to_wire(link)


@router.delete("/api/projects/{project_id}/links/{link_id}", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_link(
    project_id: int, link_id: int, ctx: RequestContext = Depends(get_request_context)
):
    async with get_session() as session:
        await links.revoke_shared_link(session, ctx, project_id, link_id)


@router.get("/api/shared-links/{token}")
async def resolve_link(token: str):
    async with get_session() as session:
        link, project = await links.resolve_shared_link(session, token)
        return {
            "accessLevel": link.access_level,
            "expiresAt": link.expires_at.isoformat() if link.expires_at else None,
            "project": to_wire(project),
        }


# ============================================================================
# Activity
# ============================================================================


@router.get("/api/projects/{project_id}/activities")
async def list_activities(
    project_id: int,
    limit: int = Query(default=100, ge=1, le=500),
    ctx: RequestContext = Depends(get_request_context),
):
    async with get_session() as session:
        await projects.get_project(session, ctx, project_id)
        rows = await activity.list_activities(session, project_id, limit)
        return [to_wire(row) for row in rows]
