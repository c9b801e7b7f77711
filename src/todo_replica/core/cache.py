"""In-process replica of one identity's tasks and projects."""

from collections.abc import Callable, Iterable, Iterator
from datetime import datetime
from typing import Generic, TypeVar

from todo_replica.errors import DuplicateIdError, ForeignEntityError, NotFoundError
from todo_replica.models import (
    BaseEntity,
    EntityKind,
    EntityPatch,
    Project,
    ProjectPatch,
    Task,
    TaskPatch,
    utc_now,
)
from todo_replica.utils.logging import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=BaseEntity)

Clock = Callable[[], datetime]


class EntityTable(Generic[E]):
    """Mapping of entity id to entity for one kind.

    Iteration follows insertion order: the fetch order after ``load``,
    with later inserts appended.
    """

    def __init__(
        self,
        kind: EntityKind,
        patch_model: type[EntityPatch],
        owner: Callable[[], str | None],
        clock: Clock,
    ) -> None:
        self.kind = kind
        self.patch_model = patch_model
        self._owner = owner
        self._clock = clock
        self._entities: dict[str, E] = {}

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entities

    def __iter__(self) -> Iterator[E]:
        return iter(list(self._entities.values()))

    def load(self, entities: Iterable[E]) -> int:
        """Replace the whole table; entities of other owners are dropped.

        Returns:
            Number of entities loaded
        """
        owner_id = self._owner()
        loaded: dict[str, E] = {}
        dropped = 0
        for entity in entities:
            if entity.owner_id != owner_id:
                dropped += 1
                continue
            loaded[entity.id] = entity
        if dropped:
            logger.warning("replica_foreign_entities_dropped", kind=self.kind.value, count=dropped)
        self._entities = loaded
        return len(loaded)

    def insert(self, entity: E) -> E:
        """Add a newly created entity.

        Raises:
            ForeignEntityError: Entity belongs to another owner
            DuplicateIdError: Id already cached
        """
        owner_id = self._owner()
        if entity.owner_id != owner_id:
            raise ForeignEntityError(entity.id, entity.owner_id, owner_id)
        if entity.id in self._entities:
            raise DuplicateIdError(self.kind, entity.id)
        self._entities[entity.id] = entity
        return entity

    def patch(self, entity_id: str, patch: EntityPatch) -> E:
        """Merge the set fields of ``patch`` and stamp ``updated_at``.

        Raises:
            NotFoundError: Id not cached
        """
        if not isinstance(patch, self.patch_model):
            raise TypeError(
                f"{self.kind.value} expects {self.patch_model.__name__}, got {type(patch).__name__}"
            )
        current = self.require(entity_id)
        data = current.model_dump()
        data.update(patch.changes())
        data["updated_at"] = self._clock()
        updated = type(current).model_validate(data)
        self._entities[entity_id] = updated
        return updated

    def remove(self, entity_id: str) -> E | None:
        """Delete an entity; no-op when absent."""
        return self._entities.pop(entity_id, None)

    def get(self, entity_id: str) -> E | None:
        return self._entities.get(entity_id)

    def require(self, entity_id: str) -> E:
        entity = self._entities.get(entity_id)
        if entity is None:
            raise NotFoundError(self.kind, entity_id)
        return entity

    def values(self) -> list[E]:
        return list(self._entities.values())

    def clear(self) -> None:
        self._entities = {}


class ReplicaCache:
    """Tasks and projects of the bound identity.

    Never talks to the remote store; callers apply only confirmed state.
    """

    def __init__(self, owner_id: str | None = None, clock: Clock = utc_now) -> None:
        """Initialize an empty replica.

        Args:
            owner_id: Identity whose entities may be cached
            clock: Source of ``updated_at`` stamps for local patches
        """
        self.owner_id = owner_id
        self.clock = clock
        self.tasks: EntityTable[Task] = EntityTable(EntityKind.TASK, TaskPatch, self._current_owner, clock)
        self.projects: EntityTable[Project] = EntityTable(
            EntityKind.PROJECT, ProjectPatch, self._current_owner, clock
        )

    def _current_owner(self) -> str | None:
        return self.owner_id

    def table(self, kind: EntityKind) -> EntityTable:
        return self.tasks if kind == EntityKind.TASK else self.projects

    def bind(self, owner_id: str | None) -> None:
        """Scope the replica to an identity, clearing it if the owner changes."""
        if owner_id != self.owner_id:
            self.clear()
        self.owner_id = owner_id

    def clear(self) -> None:
        """Empty both tables."""
        self.tasks.clear()
        self.projects.clear()
        logger.debug("replica_cleared", owner_id=self.owner_id)

    def cascade_remove_project(self, project_id: str) -> int:
        """Remove a project and every task referencing it.

        Returns:
            Number of tasks removed
        """
        doomed = [task.id for task in self.tasks if task.project_id == project_id]
        for task_id in doomed:
            self.tasks.remove(task_id)
        self.projects.remove(project_id)
        return len(doomed)

    def is_empty(self) -> bool:
        return not self.tasks and not self.projects

    def snapshot(self) -> dict[str, int]:
        """Entity counts by kind."""
        return {
            EntityKind.TASK.value: len(self.tasks),
            EntityKind.PROJECT.value: len(self.projects),
        }
