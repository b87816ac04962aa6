"""Integration tests for shared projects, invitations, items, links and comments."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from terrabuild.calculations.history import record_calculation
from terrabuild.collaboration import activity, comments, invitations, items, links, projects
from terrabuild.config import reset_config
from terrabuild.core.context import RequestContext
from terrabuild.errors import (
    ConstraintViolationError,
    ExpiredLinkError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    RecordValidationError,
)

pytestmark = pytest.mark.integration

REVIEWER = RequestContext(user_id=7, username="field_reviewer", role="user")


@pytest_asyncio.fixture()
async def project_id(db_session: AsyncSession, users, user_ctx) -> int:
    """'County Survey' owned by user 2, committed."""
    project = await projects.create_project(
        db_session, user_ctx, {"name": "County Survey", "description": "2024 reassessment"}
    )
    await db_session.commit()
    return project.id


async def _join(session: AsyncSession, owner: RequestContext, project_id: int, role: str) -> None:
    invitation = await invitations.invite_user(session, owner, project_id, REVIEWER.user_id, role)
    await invitations.accept_invitation(session, REVIEWER, invitation.id)
    await session.commit()


class TestProjects:
    @pytest.mark.asyncio
    async def test_creator_is_admin_member(self, db_session: AsyncSession, user_ctx, project_id):
        members = await projects.list_members(db_session, user_ctx, project_id)

        assert [(m.user_id, m.role) for m in members] == [(user_ctx.user_id, "admin")]
        log = await activity.list_activities(db_session, project_id)
        assert [entry.activity_type for entry in log] == ["project_created"]

    @pytest.mark.asyncio
    async def test_private_project_hidden_from_non_members(
        self, db_session: AsyncSession, viewer_ctx, admin_ctx, project_id
    ):
        with pytest.raises(PermissionDeniedError):
            await projects.get_project(db_session, viewer_ctx, project_id)

        project = await projects.get_project(db_session, admin_ctx, project_id)
        assert project.name == "County Survey"

    @pytest.mark.asyncio
    async def test_public_project_readable_not_writable(
        self, db_session: AsyncSession, user_ctx, viewer_ctx, project_id
    ):
        await projects.update_project(db_session, user_ctx, project_id, {"isPublic": True})

        project = await projects.get_project(db_session, viewer_ctx, project_id)
        assert project.is_public is True
        with pytest.raises(PermissionDeniedError):
            await projects.update_project(db_session, viewer_ctx, project_id, {"name": "Renamed"})

    @pytest.mark.asyncio
    async def test_archive_blocks_writes_but_not_reads(
        self, db_session: AsyncSession, user_ctx, project_id
    ):
        await projects.archive_project(db_session, user_ctx, project_id)

        with pytest.raises(InvalidStateError):
            await projects.update_project(db_session, user_ctx, project_id, {"name": "Renamed"})
        with pytest.raises(InvalidStateError):
            await invitations.invite_user(db_session, user_ctx, project_id, REVIEWER.user_id)

        project = await projects.get_project(db_session, user_ctx, project_id)
        assert project.status == "archived"
        assert await projects.list_projects_for_user(db_session, user_ctx.user_id) == []
        archived = await projects.list_projects_for_user(
            db_session, user_ctx.user_id, include_archived=True
        )
        assert [p.id for p in archived] == [project_id]

    @pytest.mark.asyncio
    async def test_last_admin_is_protected(self, db_session: AsyncSession, user_ctx, project_id):
        with pytest.raises(InvalidStateError):
            await projects.remove_member(db_session, user_ctx, project_id, user_ctx.user_id)
        with pytest.raises(InvalidStateError):
            await projects.change_member_role(
                db_session, user_ctx, project_id, user_ctx.user_id, "editor"
            )

    @pytest.mark.asyncio
    async def test_admin_can_step_down_after_promoting_another(
        self, db_session: AsyncSession, user_ctx, project_id
    ):
        await _join(db_session, user_ctx, project_id, "editor")

        await projects.change_member_role(db_session, user_ctx, project_id, REVIEWER.user_id, "admin")
        member = await projects.change_member_role(
            db_session, REVIEWER, project_id, user_ctx.user_id, "viewer"
        )

        assert member.role == "viewer"

    @pytest.mark.asyncio
    async def test_unknown_role_rejected(self, db_session: AsyncSession, user_ctx, project_id):
        with pytest.raises(RecordValidationError) as exc_info:
            await projects.change_member_role(
                db_session, user_ctx, project_id, user_ctx.user_id, "owner"
            )

        assert "role" in exc_info.value.fields

    @pytest.mark.asyncio
    async def test_missing_project(self, db_session: AsyncSession, user_ctx):
        with pytest.raises(NotFoundError):
            await projects.get_project(db_session, user_ctx, 999)


class TestInvitations:
    @pytest.mark.asyncio
    async def test_invite_accept_then_reinvite(
        self, db_session: AsyncSession, user_ctx, project_id
    ):
        invitation = await invitations.invite_user(
            db_session, user_ctx, project_id, REVIEWER.user_id, "editor"
        )
        assert invitation.status == "pending"
        pending = await invitations.list_pending_invitations(db_session, REVIEWER.user_id)
        assert [i.id for i in pending] == [invitation.id]

        member = await invitations.accept_invitation(db_session, REVIEWER, invitation.id)
        await db_session.commit()

        assert (member.user_id, member.role) == (REVIEWER.user_id, "editor")
        assert invitation.status == "accepted"
        assert await invitations.list_pending_invitations(db_session, REVIEWER.user_id) == []

        with pytest.raises(ConstraintViolationError) as exc_info:
            await invitations.invite_user(
                db_session, user_ctx, project_id, REVIEWER.user_id, "viewer"
            )
        assert exc_info.value.constraint == "project_user_idx"

        members = await projects.list_members(db_session, user_ctx, project_id)
        assert len(members) == 2
        log = await activity.list_activities(db_session, project_id)
        assert {entry.activity_type for entry in log} == {
            "project_created",
            "member_invited",
            "invitation_accepted",
        }

    @pytest.mark.asyncio
    async def test_removed_member_can_be_invited_back(
        self, db_session: AsyncSession, user_ctx, project_id
    ):
        await _join(db_session, user_ctx, project_id, "editor")
        await projects.remove_member(db_session, user_ctx, project_id, REVIEWER.user_id)
        await db_session.commit()

        invitation = await invitations.invite_user(
            db_session, user_ctx, project_id, REVIEWER.user_id, "viewer"
        )
        await db_session.commit()
        assert (invitation.status, invitation.role) == ("pending", "viewer")

        member = await invitations.accept_invitation(db_session, REVIEWER, invitation.id)
        await db_session.commit()

        assert (member.user_id, member.role) == (REVIEWER.user_id, "viewer")
        members = await projects.list_members(db_session, user_ctx, project_id)
        assert len(members) == 2

    @pytest.mark.asyncio
    async def test_declined_invitation_can_be_reissued(
        self, db_session: AsyncSession, user_ctx, project_id
    ):
        first = await invitations.invite_user(db_session, user_ctx, project_id, REVIEWER.user_id)
        await invitations.decline_invitation(db_session, REVIEWER, first.id)
        await db_session.commit()

        again = await invitations.invite_user(
            db_session, user_ctx, project_id, REVIEWER.user_id, "editor"
        )

        assert again.id == first.id
        assert (again.status, again.role) == ("pending", "editor")
        pending = await invitations.list_pending_invitations(db_session, REVIEWER.user_id)
        assert [i.id for i in pending] == [first.id]

    @pytest.mark.asyncio
    async def test_duplicate_pending_invitation(
        self, db_session: AsyncSession, user_ctx, project_id
    ):
        await invitations.invite_user(db_session, user_ctx, project_id, REVIEWER.user_id)
        await db_session.commit()

        with pytest.raises(ConstraintViolationError) as exc_info:
            await invitations.invite_user(db_session, user_ctx, project_id, REVIEWER.user_id)

        assert exc_info.value.constraint == "project_invitation_idx"

    @pytest.mark.asyncio
    async def test_only_invitee_responds_once(
        self, db_session: AsyncSession, user_ctx, viewer_ctx, project_id
    ):
        invitation = await invitations.invite_user(
            db_session, user_ctx, project_id, REVIEWER.user_id
        )

        with pytest.raises(PermissionDeniedError):
            await invitations.accept_invitation(db_session, viewer_ctx, invitation.id)

        declined = await invitations.decline_invitation(db_session, REVIEWER, invitation.id)
        assert declined.status == "declined"

        with pytest.raises(InvalidStateError):
            await invitations.accept_invitation(db_session, REVIEWER, invitation.id)
        assert await projects.get_membership(db_session, project_id, REVIEWER.user_id) is None

    @pytest.mark.asyncio
    async def test_editor_cannot_invite(self, db_session: AsyncSession, user_ctx, project_id):
        await _join(db_session, user_ctx, project_id, "editor")

        with pytest.raises(PermissionDeniedError):
            await invitations.invite_user(db_session, REVIEWER, project_id, 3)

    @pytest.mark.asyncio
    async def test_invite_unknown_user(self, db_session: AsyncSession, user_ctx, project_id):
        with pytest.raises(NotFoundError):
            await invitations.invite_user(db_session, user_ctx, project_id, 404)


class TestProjectItems:
    @pytest_asyncio.fixture()
    async def calculation_id(self, db_session: AsyncSession, user_ctx, calculation_payload) -> int:
        calculation = await record_calculation(db_session, user_ctx, calculation_payload)
        await db_session.commit()
        return calculation.id

    @pytest.mark.asyncio
    async def test_attach_and_detach(
        self, db_session: AsyncSession, user_ctx, project_id, calculation_id
    ):
        item = await items.add_project_item(
            db_session, user_ctx, project_id, "calculation", calculation_id
        )
        assert item.added_by == user_ctx.user_id

        listed = await items.list_project_items(db_session, user_ctx, project_id, "calculation")
        assert [(i.item_type, i.item_id) for i in listed] == [("calculation", calculation_id)]

        await items.remove_project_item(
            db_session, user_ctx, project_id, "calculation", calculation_id
        )
        assert await items.list_project_items(db_session, user_ctx, project_id) == []

    @pytest.mark.asyncio
    async def test_duplicate_item(
        self, db_session: AsyncSession, user_ctx, project_id, calculation_id
    ):
        await items.add_project_item(db_session, user_ctx, project_id, "calculation", calculation_id)
        await db_session.commit()

        with pytest.raises(ConstraintViolationError) as exc_info:
            await items.add_project_item(
                db_session, user_ctx, project_id, "calculation", calculation_id
            )

        assert exc_info.value.constraint == "project_item_idx"

    @pytest.mark.asyncio
    async def test_reference_must_exist(self, db_session: AsyncSession, user_ctx, project_id):
        with pytest.raises(NotFoundError):
            await items.add_project_item(db_session, user_ctx, project_id, "cost_matrix", 55)

    @pytest.mark.asyncio
    async def test_unknown_item_type(self, db_session: AsyncSession, user_ctx, project_id):
        with pytest.raises(RecordValidationError) as exc_info:
            await items.add_project_item(db_session, user_ctx, project_id, "report", 1)

        assert "itemType" in exc_info.value.fields

    @pytest.mark.asyncio
    async def test_viewer_member_cannot_attach(
        self, db_session: AsyncSession, user_ctx, project_id, calculation_id
    ):
        await _join(db_session, user_ctx, project_id, "viewer")

        with pytest.raises(PermissionDeniedError):
            await items.add_project_item(
                db_session, REVIEWER, project_id, "calculation", calculation_id
            )

    @pytest.mark.asyncio
    async def test_remove_missing_item(self, db_session: AsyncSession, user_ctx, project_id):
        with pytest.raises(NotFoundError):
            await items.remove_project_item(db_session, user_ctx, project_id, "calculation", 1)


class TestSharedLinks:
    @pytest.mark.asyncio
    async def test_link_valid_until_expiry(self, db_session: AsyncSession, user_ctx, project_id):
        expires_at = datetime(2030, 1, 1, tzinfo=timezone.utc)
        link = await links.create_shared_link(
            db_session, user_ctx, project_id, "view", expires_at, "for the county board"
        )
        await db_session.commit()

        assert len(link.token) >= 16
        resolved, project = await links.resolve_shared_link(
            db_session, link.token, now=expires_at - timedelta(seconds=1)
        )
        assert resolved.id == link.id
        assert project.id == project_id

        with pytest.raises(ExpiredLinkError):
            await links.resolve_shared_link(db_session, link.token, now=expires_at)

    @pytest.mark.asyncio
    async def test_link_without_expiry(self, db_session: AsyncSession, user_ctx, project_id):
        link = await links.create_shared_link(db_session, user_ctx, project_id)

        assert link.expires_at is None
        assert links.is_expired(link, datetime(2999, 1, 1, tzinfo=timezone.utc)) is False

    @pytest.mark.asyncio
    async def test_default_expiry_from_config(
        self, db_session: AsyncSession, user_ctx, project_id, monkeypatch
    ):
        monkeypatch.setenv("SHARED_LINK_DEFAULT_EXPIRY_DAYS", "7")
        reset_config()

        link = await links.create_shared_link(db_session, user_ctx, project_id)

        assert link.expires_at is not None
        assert links.is_expired(link, datetime.now(timezone.utc) + timedelta(days=8))
        assert not links.is_expired(link, datetime.now(timezone.utc) + timedelta(days=6))

    @pytest.mark.asyncio
    async def test_tokens_are_unique(self, db_session: AsyncSession, user_ctx, project_id):
        first = await links.create_shared_link(db_session, user_ctx, project_id)
        second = await links.create_shared_link(db_session, user_ctx, project_id)

        assert first.token != second.token
        listed = await links.list_shared_links(db_session, user_ctx, project_id)
        assert {link.id for link in listed} == {first.id, second.id}

    @pytest.mark.asyncio
    async def test_archived_project_link(self, db_session: AsyncSession, user_ctx, project_id):
        link = await links.create_shared_link(db_session, user_ctx, project_id)
        await projects.archive_project(db_session, user_ctx, project_id)

        with pytest.raises(InvalidStateError):
            await links.resolve_shared_link(db_session, link.token)

    @pytest.mark.asyncio
    async def test_revoked_link(self, db_session: AsyncSession, user_ctx, project_id):
        link = await links.create_shared_link(db_session, user_ctx, project_id)
        token = link.token

        await links.revoke_shared_link(db_session, user_ctx, project_id, link.id)

        with pytest.raises(NotFoundError):
            await links.resolve_shared_link(db_session, token)

    @pytest.mark.asyncio
    async def test_editor_cannot_create_link(self, db_session: AsyncSession, user_ctx, project_id):
        await _join(db_session, user_ctx, project_id, "editor")

        with pytest.raises(PermissionDeniedError):
            await links.create_shared_link(db_session, REVIEWER, project_id)


class TestComments:
    @pytest_asyncio.fixture()
    async def calculation_ids(self, db_session: AsyncSession, user_ctx, calculation_payload):
        first = await record_calculation(db_session, user_ctx, calculation_payload)
        second = await record_calculation(db_session, user_ctx, calculation_payload)
        await db_session.commit()
        return first.id, second.id

    @pytest.mark.asyncio
    async def test_threads(self, db_session: AsyncSession, users, user_ctx, calculation_ids):
        target = calculation_ids[0]
        root = await comments.add_comment(
            db_session,
            user_ctx,
            {"targetType": "calculation", "targetId": target, "content": "Check the quality factor"},
        )
        await comments.add_comment(
            db_session,
            REVIEWER,
            {
                "targetType": "calculation",
                "targetId": target,
                "content": "1.10 matches the field notes",
                "parentCommentId": root.id,
            },
        )

        threads = await comments.list_comments(db_session, REVIEWER, "calculation", target)

        assert len(threads) == 1
        assert threads[0].comment.id == root.id
        assert [reply.comment.user_id for reply in threads[0].replies] == [REVIEWER.user_id]
        wire = threads[0].to_wire()
        assert wire["content"] == "Check the quality factor"
        assert wire["replies"][0]["parentCommentId"] == root.id

    @pytest.mark.asyncio
    async def test_reply_must_share_target(
        self, db_session: AsyncSession, users, user_ctx, calculation_ids
    ):
        root = await comments.add_comment(
            db_session,
            user_ctx,
            {"targetType": "calculation", "targetId": calculation_ids[0], "content": "First"},
        )

        with pytest.raises(RecordValidationError) as exc_info:
            await comments.add_comment(
                db_session,
                user_ctx,
                {
                    "targetType": "calculation",
                    "targetId": calculation_ids[1],
                    "content": "Wrong thread",
                    "parentCommentId": root.id,
                },
            )

        assert "parentCommentId" in exc_info.value.fields

    @pytest.mark.asyncio
    async def test_target_must_exist(self, db_session: AsyncSession, users, user_ctx):
        with pytest.raises(NotFoundError):
            await comments.add_comment(
                db_session,
                user_ctx,
                {"targetType": "what_if_scenario", "targetId": 3, "content": "Hello"},
            )

    @pytest.mark.asyncio
    async def test_edit_and_resolve_permissions(
        self, db_session: AsyncSession, users, user_ctx, admin_ctx, calculation_ids
    ):
        comment = await comments.add_comment(
            db_session,
            user_ctx,
            {"targetType": "calculation", "targetId": calculation_ids[0], "content": "Draft"},
        )

        with pytest.raises(PermissionDeniedError):
            await comments.edit_comment(db_session, REVIEWER, comment.id, "Hijacked")
        with pytest.raises(PermissionDeniedError):
            await comments.resolve_comment(db_session, REVIEWER, comment.id)

        edited = await comments.edit_comment(db_session, user_ctx, comment.id, " Final ")
        assert (edited.content, edited.is_edited) == ("Final", True)

        resolved = await comments.resolve_comment(db_session, admin_ctx, comment.id)
        assert resolved.is_resolved is True

    @pytest.mark.asyncio
    async def test_project_comment_logged(
        self, db_session: AsyncSession, user_ctx, project_id
    ):
        comment = await comments.add_comment(
            db_session,
            user_ctx,
            {"targetType": "shared_project", "targetId": project_id, "content": "Kickoff"},
        )

        log = await activity.list_activities(db_session, project_id)
        assert log[0].activity_type == "comment_added"
        assert log[0].activity_data == {"commentId": comment.id}

    @pytest.mark.asyncio
    async def test_private_project_thread_needs_membership(
        self, db_session: AsyncSession, user_ctx, viewer_ctx, project_id
    ):
        await comments.add_comment(
            db_session,
            user_ctx,
            {"targetType": "shared_project", "targetId": project_id, "content": "Kickoff"},
        )
        await db_session.commit()

        with pytest.raises(PermissionDeniedError):
            await comments.add_comment(
                db_session,
                viewer_ctx,
                {"targetType": "shared_project", "targetId": project_id, "content": "Let me in"},
            )
        with pytest.raises(PermissionDeniedError):
            await comments.list_comments(db_session, viewer_ctx, "shared_project", project_id)

        log = await activity.list_activities(db_session, project_id)
        assert [entry.activity_type for entry in log].count("comment_added") == 1

    @pytest.mark.asyncio
    async def test_project_viewer_member_can_comment(
        self, db_session: AsyncSession, user_ctx, project_id
    ):
        await _join(db_session, user_ctx, project_id, "viewer")

        await comments.add_comment(
            db_session,
            REVIEWER,
            {"targetType": "shared_project", "targetId": project_id, "content": "Looks right"},
        )
        threads = await comments.list_comments(db_session, REVIEWER, "shared_project", project_id)

        assert [thread.comment.content for thread in threads] == ["Looks right"]

    @pytest.mark.asyncio
    async def test_public_project_thread_readable_not_postable(
        self, db_session: AsyncSession, user_ctx, viewer_ctx, project_id
    ):
        await projects.update_project(db_session, user_ctx, project_id, {"isPublic": True})
        await db_session.commit()

        assert await comments.list_comments(
            db_session, viewer_ctx, "shared_project", project_id
        ) == []
        with pytest.raises(PermissionDeniedError):
            await comments.add_comment(
                db_session,
                viewer_ctx,
                {"targetType": "shared_project", "targetId": project_id, "content": "Drive-by"},
            )
