"""Unit tests for the in-memory gateway and shared document helpers."""

import pytest

from todo_replica.errors import RemoteError
from todo_replica.models import EntityKind
from todo_replica.storage.gateway import RemoteStoreGateway, merge_document, new_document, sort_documents
from todo_replica.storage.memory_gateway import InMemoryGateway


class TestDocumentHelpers:
    """Tests for new_document, merge_document and sort_documents."""

    def test_new_document_applies_server_fields(self) -> None:
        document = new_document(
            EntityKind.TASK,
            "user-1",
            "t1",
            {"title": "x", "completed": True, "id": "forged", "owner_id": "user-2"},
        )

        assert document["id"] == "t1"
        assert document["owner_id"] == "user-1"
        assert document["completed"] is False
        assert document["created_at"] == document["updated_at"]

    def test_new_project_flags_default_false(self) -> None:
        document = new_document(EntityKind.PROJECT, "u", "p1", {"name": "x", "is_favorite": True})

        assert document["is_favorite"] is False
        assert document["is_archived"] is False

    def test_merge_keeps_identity_and_stamps_updated_at(self) -> None:
        document = new_document(EntityKind.TASK, "u", "t1", {"title": "x"})

        merged = merge_document(document, {"title": "y", "created_at": "1999-01-01T00:00:00+00:00"})

        assert merged["title"] == "y"
        assert merged["created_at"] == document["created_at"]
        assert merged["updated_at"] >= document["updated_at"]

    def test_sort_documents(self) -> None:
        projects = [
            {"id": "b", "order": 1, "created_at": "2024-01-01T00:00:00.000000+00:00"},
            {"id": "a", "order": 0, "created_at": "2024-01-02T00:00:00.000000+00:00"},
        ]
        tasks = [
            {"id": "old", "created_at": "2024-01-01T00:00:00.000000+00:00"},
            {"id": "new", "created_at": "2024-02-01T00:00:00.000000+00:00"},
        ]

        assert [d["id"] for d in sort_documents(EntityKind.PROJECT, projects)] == ["a", "b"]
        assert [d["id"] for d in sort_documents(EntityKind.TASK, tasks)] == ["new", "old"]


class TestInMemoryGateway:
    """Tests for InMemoryGateway."""

    @pytest.fixture
    def store(self) -> InMemoryGateway:
        return InMemoryGateway()

    def test_satisfies_protocol(self, store: InMemoryGateway) -> None:
        assert isinstance(store, RemoteStoreGateway)

    @pytest.mark.asyncio
    async def test_fetch_is_scoped_to_owner(self, store: InMemoryGateway) -> None:
        await store.create(EntityKind.TASK, "user-1", {"title": "mine"})
        await store.create(EntityKind.TASK, "user-2", {"title": "theirs"})

        documents = await store.fetch_all(EntityKind.TASK, "user-1")

        assert [d["title"] for d in documents] == ["mine"]

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, store: InMemoryGateway) -> None:
        created = await store.create(EntityKind.TASK, "user-1", {"title": "x", "labels": ["a"]})
        created["labels"].append("b")

        fetched = await store.fetch_all(EntityKind.TASK, "user-1")

        assert fetched[0]["labels"] == ["a"]

    @pytest.mark.asyncio
    async def test_update_other_owner_denied(self, store: InMemoryGateway) -> None:
        created = await store.create(EntityKind.TASK, "user-1", {"title": "x"})

        with pytest.raises(RemoteError, match="permission denied"):
            await store.update(EntityKind.TASK, "user-2", created["id"], {"title": "hijack"})

    @pytest.mark.asyncio
    async def test_update_missing_raises(self, store: InMemoryGateway) -> None:
        with pytest.raises(RemoteError):
            await store.update(EntityKind.TASK, "user-1", "missing", {"title": "x"})

    @pytest.mark.asyncio
    async def test_update_many_is_all_or_nothing(self, store: InMemoryGateway) -> None:
        created = await store.create(EntityKind.PROJECT, "user-1", {"name": "p", "order": 0})

        with pytest.raises(RemoteError):
            await store.update_many(
                EntityKind.PROJECT,
                "user-1",
                [(created["id"], {"order": 5}), ("missing", {"order": 6})],
            )

        documents = await store.fetch_all(EntityKind.PROJECT, "user-1")
        assert documents[0]["order"] == 0

    @pytest.mark.asyncio
    async def test_delete_missing_is_noop(self, store: InMemoryGateway) -> None:
        await store.delete(EntityKind.TASK, "user-1", "missing")

    @pytest.mark.asyncio
    async def test_delete_cascade(self, store: InMemoryGateway) -> None:
        project = await store.create(EntityKind.PROJECT, "user-1", {"name": "p", "order": 0})
        await store.create(EntityKind.TASK, "user-1", {"title": "in", "project_id": project["id"]})
        await store.create(EntityKind.TASK, "user-1", {"title": "out"})

        await store.delete_cascade("user-1", project["id"])

        assert store.document_count(EntityKind.PROJECT) == 0
        assert [d["title"] for d in await store.fetch_all(EntityKind.TASK, "user-1")] == ["out"]

    @pytest.mark.asyncio
    async def test_closed_gateway_fails(self, store: InMemoryGateway) -> None:
        await store.close()

        with pytest.raises(RemoteError, match="closed"):
            await store.fetch_all(EntityKind.TASK, "user-1")
