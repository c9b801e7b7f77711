"""Process-local document store implementing the gateway contract."""

import asyncio
import copy
from collections.abc import Sequence
from typing import Any
from uuid import uuid4

from todo_replica.errors import RemoteError
from todo_replica.models import EntityKind
from todo_replica.storage.gateway import (
    Document,
    FieldUpdate,
    merge_document,
    new_document,
    sort_documents,
    track_operation,
)
from todo_replica.utils.logging import get_logger

logger = get_logger(__name__)


class InMemoryGateway:
    """Document store held in process memory.

    Every call yields to the event loop (optionally after ``latency``
    seconds) so callers observe the same suspension points as with a
    networked store. Returned documents are copies.
    """

    def __init__(self, latency: float = 0.0) -> None:
        """Initialize the store.

        Args:
            latency: Simulated round-trip delay in seconds
        """
        self.latency = latency
        self._collections: dict[EntityKind, dict[str, Document]] = {kind: {} for kind in EntityKind}
        self.closed = False

    async def _round_trip(self) -> None:
        if self.closed:
            raise RemoteError("call", message="gateway is closed")
        await asyncio.sleep(self.latency)

    def _owned(self, kind: EntityKind, owner_id: str, entity_id: str, operation: str) -> Document | None:
        document = self._collections[kind].get(entity_id)
        if document is not None and document["owner_id"] != owner_id:
            raise RemoteError(operation, kind, f"permission denied for {entity_id!r}")
        return document

    async def fetch_all(self, kind: EntityKind, owner_id: str) -> list[Document]:
        async with track_operation("memory", "fetch_all", kind):
            await self._round_trip()
            documents = [
                copy.deepcopy(d) for d in self._collections[kind].values() if d["owner_id"] == owner_id
            ]
            return sort_documents(kind, documents)

    async def create(self, kind: EntityKind, owner_id: str, fields: dict[str, Any]) -> Document:
        async with track_operation("memory", "create", kind):
            await self._round_trip()
            document = new_document(kind, owner_id, uuid4().hex, copy.deepcopy(fields))
            self._collections[kind][document["id"]] = document
            logger.debug("memory_document_created", kind=kind.value, entity_id=document["id"])
            return copy.deepcopy(document)

    async def update(
        self,
        kind: EntityKind,
        owner_id: str,
        entity_id: str,
        fields: dict[str, Any],
    ) -> None:
        async with track_operation("memory", "update", kind):
            await self._round_trip()
            document = self._owned(kind, owner_id, entity_id, "update")
            if document is None:
                raise RemoteError("update", kind, f"no document {entity_id!r}")
            self._collections[kind][entity_id] = merge_document(document, copy.deepcopy(fields))

    async def update_many(
        self,
        kind: EntityKind,
        owner_id: str,
        updates: Sequence[FieldUpdate],
    ) -> None:
        async with track_operation("memory", "update_many", kind):
            await self._round_trip()
            # Validate the whole batch before writing anything
            for entity_id, _ in updates:
                if self._owned(kind, owner_id, entity_id, "update_many") is None:
                    raise RemoteError("update_many", kind, f"no document {entity_id!r}")
            for entity_id, fields in updates:
                document = self._collections[kind][entity_id]
                self._collections[kind][entity_id] = merge_document(document, copy.deepcopy(fields))

    async def delete(self, kind: EntityKind, owner_id: str, entity_id: str) -> None:
        async with track_operation("memory", "delete", kind):
            await self._round_trip()
            if self._owned(kind, owner_id, entity_id, "delete") is not None:
                del self._collections[kind][entity_id]

    async def delete_cascade(self, owner_id: str, project_id: str) -> None:
        async with track_operation("memory", "delete_cascade", EntityKind.PROJECT):
            await self._round_trip()
            self._owned(EntityKind.PROJECT, owner_id, project_id, "delete_cascade")
            tasks = self._collections[EntityKind.TASK]
            doomed = [
                task_id
                for task_id, task in tasks.items()
                if task.get("project_id") == project_id and task["owner_id"] == owner_id
            ]
            for task_id in doomed:
                del tasks[task_id]
            self._collections[EntityKind.PROJECT].pop(project_id, None)
            logger.debug("memory_project_cascade_deleted", project_id=project_id, tasks=len(doomed))

    async def close(self) -> None:
        self.closed = True

    def document_count(self, kind: EntityKind) -> int:
        """Number of stored documents of a kind, across owners."""
        return len(self._collections[kind])
