"""Request-scoped principal passed explicitly to every data-layer call."""

from __future__ import annotations

from dataclasses import dataclass

from terrabuild.errors import PermissionDeniedError

# Account roles allowed to write shared cost data (viewers are read-only)
WRITER_ROLES = frozenset({"admin", "manager", "user"})


@dataclass(frozen=True)
class RequestContext:
    """Authenticated principal for one request or CLI invocation."""

    user_id: int
    username: str
    role: str = "user"
    request_id: str | None = None

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def can_write(self) -> bool:
        return self.role in WRITER_ROLES

    def require_admin(self) -> None:
        if not self.is_admin:
            raise PermissionDeniedError(f"User {self.username!r} is not an administrator")

    def require_writer(self) -> None:
        if not self.can_write:
            raise PermissionDeniedError(f"User {self.username!r} has read-only access")


def system_context(user_id: int = 0, username: str = "system") -> RequestContext:
    """Context for CLI and import jobs acting on behalf of the system."""
    return RequestContext(user_id=user_id, username=username, role="admin")
