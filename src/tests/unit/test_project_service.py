"""Unit tests for project mutations and reordering."""

import pytest

from todo_replica.config import Settings
from todo_replica.core.identity import LocalAuthProvider
from todo_replica.core.ordering import OrderChange
from todo_replica.core.session import Session
from todo_replica.errors import NotFoundError, RemoteError
from todo_replica.models import EntityKind, NewProject, ProjectColor, ProjectPatch
from todo_replica.storage.gateway import new_document
from todo_replica.utils.metrics import Metrics
from tests.fixtures.doubles import FakeClock, make_mock_gateway
from tests.fixtures.factories import ProjectFactory, TaskFactory


def orders(session: Session) -> dict[str, int]:
    return {p.id: p.order for p in session.cache.projects}


@pytest.fixture
def mock_gateway():
    projects = ProjectFactory.create_batch({"A": 0, "B": 1, "C": 2})
    projects[0] = projects[0].model_copy(update={"is_favorite": True})
    gateway = make_mock_gateway(
        projects=[p.model_dump(mode="json") for p in projects],
        tasks=[
            TaskFactory.create(id="a1", project_id="A").model_dump(mode="json"),
            TaskFactory.create(id="a2", project_id="A").model_dump(mode="json"),
            TaskFactory.create(id="b1", project_id="B").model_dump(mode="json"),
        ],
    )

    async def create(kind, owner_id, fields):
        return new_document(kind, owner_id, "new-project", fields)

    gateway.create.side_effect = create
    return gateway


@pytest.fixture
def make_session(mock_gateway, clock: FakeClock, metrics: Metrics):
    async def factory(settings: Settings | None = None) -> Session:
        auth = LocalAuthProvider()
        session = Session(mock_gateway, auth, settings or Settings(), clock=clock, metrics=metrics)
        await session.attach()
        await auth.sign_in("user-1")
        return session

    return factory


class TestAdd:
    """Tests for ProjectService.add."""

    @pytest.mark.asyncio
    async def test_add_appends_after_last(self, make_session, mock_gateway) -> None:
        session = await make_session()

        project = await session.projects.add(NewProject(name="Garden"))

        assert project.order == 3
        assert project.color is ProjectColor.GRAY
        assert project.is_favorite is False
        assert mock_gateway.create.await_args.args[2]["order"] == 3

    @pytest.mark.asyncio
    async def test_add_explicit_order_and_color(self, make_session) -> None:
        session = await make_session()

        project = await session.projects.add(NewProject(name="Top", order=-1, color="blue"))

        assert project.order == -1
        assert project.color is ProjectColor.BLUE
        assert session.active()[0].id == "new-project"

    @pytest.mark.asyncio
    async def test_add_uses_configured_color(self, make_session) -> None:
        session = await make_session(Settings(default_project_color=ProjectColor.GREEN))

        project = await session.projects.add(NewProject(name="Fitness"))

        assert project.color is ProjectColor.GREEN


class TestUpdateAndToggles:
    """Tests for updates and flag toggles."""

    @pytest.mark.asyncio
    async def test_update(self, make_session, mock_gateway) -> None:
        session = await make_session()

        project = await session.projects.update("B", ProjectPatch(name="Errands", description=None))

        assert project.name == "Errands"
        mock_gateway.update.assert_awaited_once_with(
            EntityKind.PROJECT, "user-1", "B", {"name": "Errands", "description": None}
        )

    @pytest.mark.asyncio
    async def test_toggle_favorite(self, make_session, mock_gateway) -> None:
        session = await make_session()

        project = await session.projects.toggle_favorite("A")

        assert project.is_favorite is False
        mock_gateway.update.assert_awaited_once_with(EntityKind.PROJECT, "user-1", "A", {"is_favorite": False})

    @pytest.mark.asyncio
    async def test_toggle_archived_moves_between_views(self, make_session) -> None:
        session = await make_session()

        await session.projects.toggle_archived("A")

        assert [p.id for p in session.archived()] == ["A"]
        assert [p.id for p in session.active()] == ["B", "C"]
        assert session.favorites() == []

    @pytest.mark.asyncio
    async def test_toggle_missing_project_is_skipped(self, make_session, mock_gateway) -> None:
        session = await make_session()

        assert await session.projects.toggle_favorite("missing") is None
        assert await session.projects.toggle_archived("missing") is None
        mock_gateway.update.assert_not_awaited()


class TestDelete:
    """Tests for cascading delete."""

    @pytest.mark.asyncio
    async def test_delete_cascades_to_tasks(self, make_session, mock_gateway) -> None:
        session = await make_session()

        removed = await session.projects.delete("A")

        assert removed == 2
        assert "A" not in session.cache.projects
        assert {t.id for t in session.cache.tasks} == {"b1"}
        mock_gateway.delete_cascade.assert_awaited_once_with("user-1", "A")

    @pytest.mark.asyncio
    async def test_delete_failure_keeps_project_and_tasks(self, make_session, mock_gateway) -> None:
        session = await make_session()
        mock_gateway.delete_cascade.side_effect = ConnectionError("offline")

        with pytest.raises(RemoteError):
            await session.projects.delete("A")

        assert "A" in session.cache.projects
        assert len(session.cache.tasks) == 3


class TestReorder:
    """Tests for ProjectService.reorder and move_to_index."""

    @pytest.mark.asyncio
    async def test_reorder_persists_batch(self, make_session, mock_gateway, metrics: Metrics) -> None:
        session = await make_session()

        plan = await session.projects.reorder("C", 0)

        assert plan.changes[0] == OrderChange("C", 0)
        assert orders(session) == {"A": 1, "B": 2, "C": 0}
        assert [p.id for p in session.active()] == ["C", "A", "B"]
        mock_gateway.update_many.assert_awaited_once_with(
            EntityKind.PROJECT,
            "user-1",
            [("C", {"order": 0}), ("A", {"order": 1}), ("B", {"order": 2})],
        )
        assert metrics.reorder_shifted_projects._sum.get() == 2

    @pytest.mark.asyncio
    async def test_reorder_moved_project_only(self, make_session, mock_gateway) -> None:
        session = await make_session(Settings(reorder_persist_siblings=False))

        await session.projects.reorder("C", 0)

        mock_gateway.update.assert_awaited_once_with(EntityKind.PROJECT, "user-1", "C", {"order": 0})
        mock_gateway.update_many.assert_not_awaited()
        assert orders(session) == {"A": 1, "B": 2, "C": 0}

    @pytest.mark.asyncio
    async def test_reorder_failure_changes_nothing(self, make_session, mock_gateway) -> None:
        session = await make_session()
        mock_gateway.update_many.side_effect = RemoteError("update_many", EntityKind.PROJECT, "denied")

        with pytest.raises(RemoteError):
            await session.projects.reorder("C", 0)

        assert orders(session) == {"A": 0, "B": 1, "C": 2}

    @pytest.mark.asyncio
    async def test_noop_reorder_skips_gateway(self, make_session, mock_gateway) -> None:
        session = await make_session()

        plan = await session.projects.reorder("B", 1)

        assert plan.is_noop
        mock_gateway.update_many.assert_not_awaited()
        mock_gateway.update.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reorder_unknown_project(self, make_session) -> None:
        session = await make_session()

        with pytest.raises(NotFoundError):
            await session.projects.reorder("missing", 0)

    @pytest.mark.asyncio
    async def test_move_to_index(self, make_session) -> None:
        session = await make_session()

        await session.projects.move_to_index("A", 1)

        assert [p.id for p in session.active()] == ["B", "A", "C"]
