"""Error taxonomy for the replica layer."""

from typing import Any


class ReplicaError(Exception):
    """Base class for all replica layer errors."""

    recoverable: bool = True


class AuthRequiredError(ReplicaError):
    """Raised when an operation needs an identity and none is bound."""

    def __init__(self, message: str = "User must be signed in") -> None:
        super().__init__(message)


class NotFoundError(ReplicaError):
    """Raised when an entity is absent from the local replica.

    Treated as cache staleness: a full refresh is the recovery path.
    """

    def __init__(self, kind: Any, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{_kind_name(kind)} {entity_id!r} not found in replica")


class DuplicateIdError(ReplicaError):
    """Raised when an inserted entity id is already cached."""

    def __init__(self, kind: Any, entity_id: str) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{_kind_name(kind)} {entity_id!r} already present in replica")


class ForeignEntityError(ReplicaError):
    """Raised when an entity owned by another identity reaches the replica."""

    def __init__(self, entity_id: str, owner_id: str, expected_owner_id: str | None) -> None:
        self.entity_id = entity_id
        self.owner_id = owner_id
        self.expected_owner_id = expected_owner_id
        super().__init__(
            f"Entity {entity_id!r} belongs to {owner_id!r}, replica is bound to {expected_owner_id!r}"
        )


class RemoteError(ReplicaError):
    """Wraps any failure reported by the remote store gateway.

    The original exception is kept as ``__cause__``.
    """

    def __init__(self, operation: str, kind: Any = None, message: str | None = None) -> None:
        self.operation = operation
        self.kind = kind
        detail = message or "remote store call failed"
        target = f" {_kind_name(kind)}" if kind is not None else ""
        super().__init__(f"{operation}{target}: {detail}")


def _kind_name(kind: Any) -> str:
    return str(getattr(kind, "value", kind))
