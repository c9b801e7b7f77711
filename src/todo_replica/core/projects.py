"""Project mutations, including cascading delete and reordering."""

from contextlib import AsyncExitStack
from typing import TYPE_CHECKING

from todo_replica.core.ordering import ReorderPlan, plan_move, plan_move_to_index
from todo_replica.errors import NotFoundError
from todo_replica.models import EntityKind, NewProject, Project, ProjectPatch
from todo_replica.utils.logging import get_logger

if TYPE_CHECKING:
    from todo_replica.core.session import Session

logger = get_logger(__name__)

KIND = EntityKind.PROJECT


class ProjectService:
    """Adds, updates, deletes, toggles and reorders projects for a session.

    Like ``TaskService``, the replica changes only after the gateway
    confirms. Reorders and appends are serialized by the session's order
    lock so that order values are computed from a settled list.
    """

    def __init__(self, session: "Session") -> None:
        self._session = session

    async def add(self, new_project: NewProject) -> Project | None:
        """Create a project, appended after the last one unless ``order`` is given.

        Raises:
            AuthRequiredError: No identity is bound
            RemoteError: The gateway failed
        """
        session = self._session
        owner_id = session.require_owner()

        fields = new_project.model_dump(mode="json")
        if "color" not in new_project.model_fields_set:
            fields["color"] = session.settings.default_project_color.value

        async with session.order_lock:
            if new_project.order is None:
                fields["order"] = self.next_order()
            epoch = session.epoch
            document = await session.call_gateway("create", KIND, session.gateway.create, KIND, owner_id, fields)
            if not session.is_current(epoch):
                session.drop_stale(KIND, "create", document.get("id"))
                return None
            project = session.cache.projects.insert(session.to_entity(Project, document, "create"))

        session.record_write()
        logger.info("project_added", project_id=project.id, order=project.order)
        return project

    def next_order(self) -> int:
        """Order value placing a project after every cached one."""
        orders = [p.order for p in self._session.cache.projects]
        return max(orders) + 1 if orders else 0

    async def update(self, project_id: str, patch: ProjectPatch) -> Project | None:
        """Apply a partial update.

        Raises:
            AuthRequiredError: No identity is bound
            RemoteError: The gateway failed
        """
        async with self._session.entity_lock(KIND, project_id):
            return await self._update_locked(project_id, patch, "update")

    async def toggle_favorite(self, project_id: str) -> Project | None:
        """Flip ``is_favorite``; a project missing from the replica is skipped."""
        async with self._session.entity_lock(KIND, project_id):
            project = self._session.cache.projects.get(project_id)
            if project is None:
                logger.info("project_toggle_skipped", project_id=project_id, field="is_favorite")
                return None
            patch = ProjectPatch(is_favorite=not project.is_favorite)
            return await self._update_locked(project_id, patch, "toggle")

    async def toggle_archived(self, project_id: str) -> Project | None:
        """Flip ``is_archived``; a project missing from the replica is skipped."""
        async with self._session.entity_lock(KIND, project_id):
            project = self._session.cache.projects.get(project_id)
            if project is None:
                logger.info("project_toggle_skipped", project_id=project_id, field="is_archived")
                return None
            patch = ProjectPatch(is_archived=not project.is_archived)
            return await self._update_locked(project_id, patch, "toggle")

    async def delete(self, project_id: str) -> int:
        """Delete a project together with its tasks.

        Returns:
            Number of tasks removed from the replica
        """
        session = self._session
        async with session.entity_lock(KIND, project_id):
            owner_id = session.require_owner()
            epoch = session.epoch
            await session.call_gateway(
                "delete_cascade", KIND, session.gateway.delete_cascade, owner_id, project_id
            )
            if not session.is_current(epoch):
                session.drop_stale(KIND, "delete_cascade", project_id)
                return 0
            removed = session.cache.cascade_remove_project(project_id)

        session.record_write()
        logger.info("project_deleted", project_id=project_id, tasks_removed=removed)
        return removed

    async def reorder(self, project_id: str, target_order: int) -> ReorderPlan:
        """Move a project to an order value (clamped to the current range).

        Raises:
            AuthRequiredError: No identity is bound
            NotFoundError: The project is not cached
            RemoteError: The gateway failed; no order changes locally
        """
        self._session.require_owner()
        async with self._session.order_lock:
            plan = plan_move(self._session.cache.projects.values(), project_id, target_order)
            return await self._persist(plan)

    async def move_to_index(self, project_id: str, index: int) -> ReorderPlan:
        """Move a project to a 0-based display position (clamped)."""
        self._session.require_owner()
        async with self._session.order_lock:
            plan = plan_move_to_index(self._session.cache.projects.values(), project_id, index)
            return await self._persist(plan)

    async def _persist(self, plan: ReorderPlan) -> ReorderPlan:
        session = self._session
        if plan.is_noop:
            logger.debug("project_reorder_noop", project_id=plan.project_id, order=plan.old_order)
            return plan

        async with AsyncExitStack() as stack:
            for change_id in sorted(change.project_id for change in plan.changes):
                await stack.enter_async_context(session.entity_lock(KIND, change_id))

            owner_id = session.require_owner()
            epoch = session.epoch
            if session.settings.reorder_persist_siblings:
                await session.call_gateway(
                    "update_many", KIND, session.gateway.update_many, KIND, owner_id, plan.as_updates()
                )
            else:
                await session.call_gateway(
                    "update", KIND, session.gateway.update, KIND, owner_id, plan.project_id, {"order": plan.new_order}
                )
            if not session.is_current(epoch):
                session.drop_stale(KIND, "reorder", plan.project_id)
                return plan

            stale = False
            for change in plan.changes:
                try:
                    session.cache.projects.patch(change.project_id, ProjectPatch(order=change.order))
                except NotFoundError:
                    stale = True
            session.record_write()
            if stale:
                session.schedule_refresh(f"project removed during reorder of {plan.project_id}")

        session.metrics.reorder_shifted_projects.observe(len(plan.shifted))
        logger.info(
            "projects_reordered",
            project_id=plan.project_id,
            old_order=plan.old_order,
            new_order=plan.new_order,
            shifted=len(plan.shifted),
        )
        return plan

    async def _update_locked(self, project_id: str, patch: ProjectPatch, operation: str) -> Project | None:
        session = self._session
        owner_id = session.require_owner()
        epoch = session.epoch
        await session.call_gateway(
            operation, KIND, session.gateway.update, KIND, owner_id, project_id, patch.wire_changes()
        )
        if not session.is_current(epoch):
            session.drop_stale(KIND, operation, project_id)
            return None

        try:
            project = session.cache.projects.patch(project_id, patch)
        except NotFoundError:
            logger.warning("project_missing_from_replica", project_id=project_id, operation=operation)
            session.schedule_refresh(f"project {project_id} missing after {operation}")
            return None

        session.record_write()
        logger.info("project_updated", project_id=project_id, fields=sorted(patch.model_fields_set))
        return project
