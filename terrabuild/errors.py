"""Error types raised by the TerraBuild data layer.

Two families matter to callers: validation errors (payload rejected before
any write) and constraint errors (a write broke a uniqueness or reference
invariant and was rolled back). Both carry enough detail to correct and
resubmit; none of them is retried by the data layer.
"""

from __future__ import annotations


class TerraBuildError(Exception):
    """Base class for all data-layer errors."""

    kind = "error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.kind, "detail": self.message}


class RecordValidationError(TerraBuildError):
    """Payload failed its insert schema.

    ``fields`` maps each offending field (wire name, dotted for nested
    locations) to every message raised for it.
    """

    kind = "validation_error"

    def __init__(self, entity: str, fields: dict[str, list[str]]):
        self.entity = entity
        self.fields = fields
        super().__init__(
            f"{entity} payload is invalid: {', '.join(sorted(fields))}"
        )

    def to_dict(self) -> dict:
        return {**super().to_dict(), "fields": self.fields}


class ConstraintViolationError(TerraBuildError):
    """A write violated a uniqueness or reference constraint."""

    kind = "constraint_violation"

    def __init__(self, constraint: str, fields: tuple[str, ...], message: str | None = None):
        self.constraint = constraint
        self.fields = fields
        super().__init__(
            message or f"Constraint {constraint} violated on ({', '.join(fields)})"
        )

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "constraint": self.constraint,
            "fields": list(self.fields),
        }


class NotFoundError(TerraBuildError):
    kind = "not_found"

    def __init__(self, entity: str, key: object):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} {key!r} not found")


class PermissionDeniedError(TerraBuildError):
    kind = "permission_denied"


class InvalidStateError(TerraBuildError):
    """Requested transition is not allowed from the record's current state."""

    kind = "invalid_state"


class ExpiredLinkError(TerraBuildError):
    kind = "link_expired"


class ImmutableRecordError(TerraBuildError):
    """Attempt to update or delete an append-only record."""

    kind = "immutable_record"


class LookupStrategyError(TerraBuildError):
    """No cell lookup strategy can serve a reference matrix."""

    kind = "lookup_strategy"
