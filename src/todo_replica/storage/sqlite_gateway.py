"""SQLite-backed document store implementing the gateway contract."""

import asyncio
import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any
from uuid import uuid4

import aiosqlite

from todo_replica.errors import RemoteError
from todo_replica.models import EntityKind
from todo_replica.storage.gateway import (
    Document,
    FieldUpdate,
    merge_document,
    new_document,
    track_operation,
)
from todo_replica.utils.logging import get_logger

logger = get_logger(__name__)


class SqliteGateway:
    """Document store persisted in a single SQLite file.

    Each document is stored as a JSON body next to the columns needed for
    owner scoping, ordering and cascades.
    """

    def __init__(self, database_path: str | Path = ".todo-replica/store.db") -> None:
        """Initialize the gateway.

        Args:
            database_path: Path to the SQLite database file
        """
        self.database_path = Path(database_path)
        self._db: aiosqlite.Connection | None = None
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        """Open the database and create the schema."""
        self.database_path.parent.mkdir(parents=True, exist_ok=True)

        async with self._lock:
            if self._db is not None:
                return
            self._db = await aiosqlite.connect(str(self.database_path))

            # Enable WAL mode for better concurrent access
            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA synchronous=NORMAL")

            await self._db.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    kind TEXT NOT NULL,
                    id TEXT NOT NULL,
                    owner_id TEXT NOT NULL,
                    project_id TEXT,
                    sort_order INTEGER,
                    created_at TEXT NOT NULL,
                    body TEXT NOT NULL,
                    PRIMARY KEY (kind, id)
                )
            """)
            await self._db.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_owner
                ON documents(kind, owner_id)
            """)
            await self._db.execute("""
                CREATE INDEX IF NOT EXISTS idx_documents_project
                ON documents(owner_id, project_id)
            """)

            await self._db.commit()
            logger.info("sqlite_gateway_initialized", path=str(self.database_path))

    async def _connection(self) -> aiosqlite.Connection:
        if not self._db:
            await self.initialize()
        assert self._db is not None
        return self._db

    async def _load(
        self,
        db: aiosqlite.Connection,
        kind: EntityKind,
        owner_id: str,
        entity_id: str,
        operation: str,
    ) -> Document | None:
        cursor = await db.execute(
            "SELECT owner_id, body FROM documents WHERE kind = ? AND id = ?",
            (kind.value, entity_id),
        )
        row = await cursor.fetchone()
        if row is None:
            return None
        if row[0] != owner_id:
            raise RemoteError(operation, kind, f"permission denied for {entity_id!r}")
        return json.loads(row[1])

    async def _write(self, db: aiosqlite.Connection, kind: EntityKind, document: Document) -> None:
        await db.execute(
            """
            INSERT OR REPLACE INTO documents
            (kind, id, owner_id, project_id, sort_order, created_at, body)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                kind.value,
                document["id"],
                document["owner_id"],
                document.get("project_id"),
                document.get("order"),
                document["created_at"],
                json.dumps(document),
            ),
        )

    async def fetch_all(self, kind: EntityKind, owner_id: str) -> list[Document]:
        async with track_operation("sqlite", "fetch_all", kind):
            db = await self._connection()
            if kind == EntityKind.PROJECT:
                order_by = "sort_order ASC, created_at ASC"
            else:
                order_by = "created_at DESC"
            async with self._lock:
                cursor = await db.execute(
                    f"SELECT body FROM documents WHERE kind = ? AND owner_id = ? ORDER BY {order_by}",
                    (kind.value, owner_id),
                )
                rows = await cursor.fetchall()
            return [json.loads(row[0]) for row in rows]

    async def create(self, kind: EntityKind, owner_id: str, fields: dict[str, Any]) -> Document:
        async with track_operation("sqlite", "create", kind):
            db = await self._connection()
            document = new_document(kind, owner_id, uuid4().hex, fields)
            async with self._lock:
                try:
                    await self._write(db, kind, document)
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
            logger.debug("sqlite_document_created", kind=kind.value, entity_id=document["id"])
            return document

    async def update(
        self,
        kind: EntityKind,
        owner_id: str,
        entity_id: str,
        fields: dict[str, Any],
    ) -> None:
        await self.update_many(kind, owner_id, [(entity_id, fields)])

    async def update_many(
        self,
        kind: EntityKind,
        owner_id: str,
        updates: Sequence[FieldUpdate],
    ) -> None:
        operation = "update" if len(updates) == 1 else "update_many"
        async with track_operation("sqlite", operation, kind):
            db = await self._connection()
            async with self._lock:
                try:
                    for entity_id, fields in updates:
                        document = await self._load(db, kind, owner_id, entity_id, operation)
                        if document is None:
                            raise RemoteError(operation, kind, f"no document {entity_id!r}")
                        await self._write(db, kind, merge_document(document, fields))
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise

    async def delete(self, kind: EntityKind, owner_id: str, entity_id: str) -> None:
        async with track_operation("sqlite", "delete", kind):
            db = await self._connection()
            async with self._lock:
                try:
                    if await self._load(db, kind, owner_id, entity_id, "delete") is not None:
                        await db.execute(
                            "DELETE FROM documents WHERE kind = ? AND id = ?",
                            (kind.value, entity_id),
                        )
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise

    async def delete_cascade(self, owner_id: str, project_id: str) -> None:
        async with track_operation("sqlite", "delete_cascade", EntityKind.PROJECT):
            db = await self._connection()
            async with self._lock:
                try:
                    await self._load(db, EntityKind.PROJECT, owner_id, project_id, "delete_cascade")
                    cursor = await db.execute(
                        "DELETE FROM documents WHERE kind = ? AND owner_id = ? AND project_id = ?",
                        (EntityKind.TASK.value, owner_id, project_id),
                    )
                    removed = cursor.rowcount
                    await db.execute(
                        "DELETE FROM documents WHERE kind = ? AND id = ?",
                        (EntityKind.PROJECT.value, project_id),
                    )
                    await db.commit()
                except Exception:
                    await db.rollback()
                    raise
            logger.debug("sqlite_project_cascade_deleted", project_id=project_id, tasks=removed)

    async def count(self, kind: EntityKind, owner_id: str | None = None) -> int:
        """Count stored documents of a kind, optionally for one owner."""
        async with track_operation("sqlite", "count", kind):
            db = await self._connection()
            query = "SELECT COUNT(*) FROM documents WHERE kind = ?"
            params: tuple[Any, ...] = (kind.value,)
            if owner_id is not None:
                query += " AND owner_id = ?"
                params += (owner_id,)
            async with self._lock:
                cursor = await db.execute(query, params)
                row = await cursor.fetchone()
            return row[0] if row else 0

    async def close(self) -> None:
        """Close the database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("sqlite_gateway_closed")
