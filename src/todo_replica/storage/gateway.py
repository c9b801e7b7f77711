"""Remote store gateway contract and helpers shared by implementations."""

import time
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any, Protocol, runtime_checkable

from todo_replica.errors import RemoteError
from todo_replica.models import EntityKind, utc_now
from todo_replica.utils.logging import get_logger
from todo_replica.utils.metrics import get_metrics

logger = get_logger(__name__)

Document = dict[str, Any]
FieldUpdate = tuple[str, dict[str, Any]]

# Fields only the store may write
SERVER_FIELDS = frozenset({"id", "owner_id", "created_at", "updated_at"})

# Defaults the store applies on create, overriding client input
SERVER_DEFAULTS: dict[EntityKind, dict[str, Any]] = {
    EntityKind.TASK: {"completed": False},
    EntityKind.PROJECT: {"is_favorite": False, "is_archived": False},
}


@runtime_checkable
class RemoteStoreGateway(Protocol):
    """Authoritative document store, scoped per owner.

    Documents are JSON-compatible dicts keyed by model field name.
    Implementations report every failure as ``RemoteError``.
    """

    async def fetch_all(self, kind: EntityKind, owner_id: str) -> list[Document]:
        """All documents of one kind for one owner.

        Projects ascending by ``order``; tasks descending by ``created_at``.
        """
        ...

    async def create(self, kind: EntityKind, owner_id: str, fields: dict[str, Any]) -> Document:
        """Create a document; the store assigns id, timestamps and defaults."""
        ...

    async def update(
        self,
        kind: EntityKind,
        owner_id: str,
        entity_id: str,
        fields: dict[str, Any],
    ) -> None:
        """Merge fields into an existing document and stamp ``updated_at``."""
        ...

    async def update_many(
        self,
        kind: EntityKind,
        owner_id: str,
        updates: Sequence[FieldUpdate],
    ) -> None:
        """Apply several merges as one atomic batch."""
        ...

    async def delete(self, kind: EntityKind, owner_id: str, entity_id: str) -> None:
        """Delete a document; deleting a missing document is not an error."""
        ...

    async def delete_cascade(self, owner_id: str, project_id: str) -> None:
        """Delete every task of a project, then the project, atomically."""
        ...

    async def close(self) -> None:
        """Release resources."""
        ...


def new_document(
    kind: EntityKind,
    owner_id: str,
    entity_id: str,
    fields: dict[str, Any],
) -> Document:
    """Build a stored document from client fields.

    Client attempts to set server-owned fields are ignored.
    """
    now = utc_now().isoformat(timespec="microseconds")
    document = {k: v for k, v in fields.items() if k not in SERVER_FIELDS}
    document.update(SERVER_DEFAULTS[kind])
    document.update(
        {
            "id": entity_id,
            "owner_id": owner_id,
            "created_at": now,
            "updated_at": now,
        }
    )
    return document


def merge_document(document: Document, fields: dict[str, Any]) -> Document:
    """Merge client fields into a stored document and stamp ``updated_at``."""
    merged = dict(document)
    merged.update({k: v for k, v in fields.items() if k not in SERVER_FIELDS})
    merged["updated_at"] = utc_now().isoformat(timespec="microseconds")
    return merged


def sort_documents(kind: EntityKind, documents: list[Document]) -> list[Document]:
    """Apply the fetch ordering for a kind."""
    if kind == EntityKind.PROJECT:
        return sorted(documents, key=lambda d: (d.get("order", 0), d["created_at"]))
    return sorted(documents, key=lambda d: d["created_at"], reverse=True)


@asynccontextmanager
async def track_operation(
    store: str,
    operation: str,
    kind: EntityKind | None = None,
) -> AsyncIterator[None]:
    """Time a gateway call, record metrics and normalize failures.

    Any exception other than ``RemoteError`` is wrapped in one.
    """
    metrics = get_metrics()
    kind_label = kind.value if kind is not None else "all"
    start = time.perf_counter()
    try:
        yield
    except RemoteError:
        metrics.record_gateway_operation(operation, kind_label, "error", time.perf_counter() - start)
        raise
    except Exception as e:
        metrics.record_gateway_operation(operation, kind_label, "error", time.perf_counter() - start)
        logger.error(f"{store}_{operation}_failed", kind=kind_label, error=str(e))
        raise RemoteError(operation, kind, str(e)) from e
    else:
        metrics.record_gateway_operation(operation, kind_label, "success", time.perf_counter() - start)
