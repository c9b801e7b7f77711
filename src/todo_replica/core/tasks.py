"""Task mutations: gateway first, replica after confirmation."""

from typing import TYPE_CHECKING

from todo_replica.errors import NotFoundError
from todo_replica.models import EntityKind, NewTask, Task, TaskPatch
from todo_replica.utils.logging import get_logger

if TYPE_CHECKING:
    from todo_replica.core.session import Session

logger = get_logger(__name__)

KIND = EntityKind.TASK


class TaskService:
    """Adds, updates, deletes and toggles tasks for a session.

    Every method awaits the gateway and only then mirrors the confirmed
    change into the replica. A method returns None when the confirmed
    result could not be mirrored (the session moved on, or the replica
    turned out to be stale).
    """

    def __init__(self, session: "Session") -> None:
        self._session = session

    async def add(self, new_task: NewTask) -> Task | None:
        """Create a task.

        Args:
            new_task: Client fields; priority falls back to the configured default

        Returns:
            The stored task, or None if the session moved on meanwhile

        Raises:
            AuthRequiredError: No identity is bound
            NotFoundError: ``project_id`` is not a cached project
            RemoteError: The gateway failed
        """
        session = self._session
        owner_id = session.require_owner()
        self._check_project(new_task.project_id)

        fields = new_task.model_dump(mode="json")
        if "priority" not in new_task.model_fields_set:
            fields["priority"] = int(session.settings.default_priority)

        epoch = session.epoch
        document = await session.call_gateway("create", KIND, session.gateway.create, KIND, owner_id, fields)
        if not session.is_current(epoch):
            session.drop_stale(KIND, "create", document.get("id"))
            return None

        task = session.cache.tasks.insert(session.to_entity(Task, document, "create"))
        session.record_write()
        logger.info("task_added", task_id=task.id, project_id=task.project_id)
        return task

    async def update(self, task_id: str, patch: TaskPatch) -> Task | None:
        """Apply a partial update.

        Raises:
            AuthRequiredError: No identity is bound
            NotFoundError: ``patch`` moves the task to an unknown project
            RemoteError: The gateway failed
        """
        if "project_id" in patch.model_fields_set:
            self._check_project(patch.project_id)
        async with self._session.entity_lock(KIND, task_id):
            return await self._update_locked(task_id, patch, "update")

    async def toggle_completion(self, task_id: str, completed: bool | None = None) -> Task | None:
        """Set ``completed``, or flip the cached value when not given.

        Raises:
            NotFoundError: Flipping a task that is not cached
        """
        async with self._session.entity_lock(KIND, task_id):
            if completed is None:
                completed = not self._session.cache.tasks.require(task_id).completed
            return await self._update_locked(task_id, TaskPatch(completed=completed), "toggle")

    async def delete(self, task_id: str) -> bool:
        """Delete a task.

        Returns:
            True if the task was removed from the replica
        """
        session = self._session
        async with session.entity_lock(KIND, task_id):
            owner_id = session.require_owner()
            epoch = session.epoch
            await session.call_gateway("delete", KIND, session.gateway.delete, KIND, owner_id, task_id)
            if not session.is_current(epoch):
                session.drop_stale(KIND, "delete", task_id)
                return False
            removed = session.cache.tasks.remove(task_id)

        session.record_write()
        logger.info("task_deleted", task_id=task_id, cached=removed is not None)
        return removed is not None

    async def _update_locked(self, task_id: str, patch: TaskPatch, operation: str) -> Task | None:
        session = self._session
        owner_id = session.require_owner()
        epoch = session.epoch
        await session.call_gateway(
            operation, KIND, session.gateway.update, KIND, owner_id, task_id, patch.wire_changes()
        )
        if not session.is_current(epoch):
            session.drop_stale(KIND, operation, task_id)
            return None

        try:
            task = session.cache.tasks.patch(task_id, patch)
        except NotFoundError:
            logger.warning("task_missing_from_replica", task_id=task_id, operation=operation)
            session.schedule_refresh(f"task {task_id} missing after {operation}")
            return None

        session.record_write()
        logger.info("task_updated", task_id=task_id, fields=sorted(patch.model_fields_set))
        return task

    def _check_project(self, project_id: str | None) -> None:
        if project_id is not None and project_id not in self._session.cache.projects:
            raise NotFoundError(EntityKind.PROJECT, project_id)
