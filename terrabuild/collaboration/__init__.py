"""Collaboration model: shared projects, membership, items, links and comments."""

from terrabuild.collaboration.comments import add_comment, list_comments
from terrabuild.collaboration.invitations import accept_invitation, decline_invitation, invite_user
from terrabuild.collaboration.items import add_project_item, remove_project_item
from terrabuild.collaboration.links import create_shared_link, resolve_shared_link
from terrabuild.collaboration.projects import archive_project, create_project, get_project

__all__ = [
    "create_project",
    "get_project",
    "archive_project",
    "invite_user",
    "accept_invitation",
    "decline_invitation",
    "add_project_item",
    "remove_project_item",
    "create_shared_link",
    "resolve_shared_link",
    "add_comment",
    "list_comments",
]
