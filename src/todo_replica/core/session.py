"""Session binding: ties the replica lifecycle to the authenticated identity."""

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import datetime
from enum import Enum
from typing import Any, TypeVar

from pydantic import ValidationError

from todo_replica.config import Settings, get_settings
from todo_replica.core import views
from todo_replica.core.cache import Clock, ReplicaCache
from todo_replica.core.identity import AuthProvider, Identity
from todo_replica.core.projects import ProjectService
from todo_replica.core.tasks import TaskService
from todo_replica.errors import AuthRequiredError, RemoteError, ReplicaError
from todo_replica.models import (
    BaseEntity,
    EntityKind,
    Priority,
    Project,
    ProjectFilter,
    Task,
    TaskFilter,
    utc_now,
)
from todo_replica.storage.gateway import RemoteStoreGateway
from todo_replica.utils.logging import get_logger
from todo_replica.utils.metrics import Metrics, get_metrics

logger = get_logger(__name__)

T = TypeVar("T")
E = TypeVar("E", bound=BaseEntity)


class SessionState(str, Enum):
    """Replica lifecycle states."""

    SIGNED_OUT = "signed_out"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class Session:
    """Replica scope for one authenticated identity.

    The session owns the cache. It loads the cache when an identity
    appears, clears it when the identity goes away and hands out the task
    and project services that mutate it. A session is an explicit object
    passed to consumers; nothing here is module-global.

    Concurrency:
    - Mutations on the same entity id are serialized by a per-id lock.
    - ``epoch`` increments on sign-out, identity change and detach. Work
      started under an older epoch never writes to the cache.
    - ``write_generation`` increments whenever a confirmed write is
      mirrored. A refresh that overlaps one fetches again before loading.
    """

    def __init__(
        self,
        gateway: RemoteStoreGateway,
        auth: AuthProvider,
        settings: Settings | None = None,
        clock: Clock = utc_now,
        metrics: Metrics | None = None,
    ) -> None:
        """Initialize a signed-out session.

        Args:
            gateway: Remote store
            auth: Identity source
            settings: Settings (process settings if None)
            clock: Source of local timestamps
            metrics: Metrics sink (process metrics if None)
        """
        self.gateway = gateway
        self.auth = auth
        self.settings = settings or get_settings()
        self.metrics = metrics or get_metrics()
        self.clock = clock
        self.cache = ReplicaCache(clock=clock)

        self.state = SessionState.SIGNED_OUT
        self.identity: Identity | None = None
        self.error: ReplicaError | None = None
        self.last_synced_at: datetime | None = None
        self.epoch = 0
        self.write_generation = 0
        self._loading_epoch: int | None = None

        self.order_lock = asyncio.Lock()
        self._locks: dict[tuple[EntityKind, str], asyncio.Lock] = {}
        self._lock_users: dict[tuple[EntityKind, str], int] = {}
        self._background: set[asyncio.Task[None]] = set()
        self._unsubscribe: Callable[[], None] | None = None

        self.tasks = TaskService(self)
        self.projects = ProjectService(self)

    async def __aenter__(self) -> "Session":
        await self.attach()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.detach()

    @property
    def loading(self) -> bool:
        return self.state == SessionState.LOADING

    @property
    def attached(self) -> bool:
        return self._unsubscribe is not None

    # =========================================================================
    # Identity binding
    # =========================================================================

    async def attach(self) -> None:
        """Subscribe to identity changes and bind the current identity."""
        if self._unsubscribe is not None:
            return
        self._unsubscribe = self.auth.on_identity_change(self._on_identity_change)
        logger.debug("session_attached")
        await self._on_identity_change(self.auth.current_identity())

    async def detach(self) -> None:
        """Unsubscribe; in-flight work finishes without touching the cache."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self.epoch += 1
        for task in list(self._background):
            task.cancel()
        logger.debug("session_detached", epoch=self.epoch)

    async def _on_identity_change(self, identity: Identity | None) -> None:
        if identity is None:
            self._sign_out()
            return
        if self.identity is not None and self.identity.user_id == identity.user_id and self._settled():
            self.identity = identity
            return

        self._bind(identity)
        try:
            await self.refresh()
        except ReplicaError as e:
            logger.warning("session_initial_fetch_failed", user_id=identity.user_id, error=str(e))

    def _settled(self) -> bool:
        """Whether the bound identity needs no new fetch."""
        if self.state in (SessionState.READY, SessionState.ERROR):
            return True
        return self.state == SessionState.LOADING and self._loading_epoch == self.epoch

    def _bind(self, identity: Identity) -> None:
        self.epoch += 1
        if self.identity is None or self.identity.user_id != identity.user_id:
            self.last_synced_at = None
        self.identity = identity
        self.error = None
        self.cache.bind(identity.user_id)
        self._publish_counts()
        logger.info("session_bound", user_id=identity.user_id)

    def _sign_out(self) -> None:
        self.epoch += 1
        self._loading_epoch = None
        previous = self.identity
        self.identity = None
        self.error = None
        self.last_synced_at = None
        self.cache.bind(None)
        self.cache.clear()
        self.state = SessionState.SIGNED_OUT
        self._publish_counts()
        logger.info("session_signed_out", user_id=previous.user_id if previous else None)

    def require_owner(self) -> str:
        """Id of the bound identity.

        Raises:
            AuthRequiredError: No identity is bound
        """
        if self.identity is None:
            raise AuthRequiredError()
        return self.identity.user_id

    # =========================================================================
    # Refresh
    # =========================================================================

    async def refresh(self) -> None:
        """Reload both tables from the gateway.

        The cache is replaced only when both fetches succeed. If a confirmed
        write is mirrored while the fetches are in flight, they are issued
        again so the loaded snapshot is never older than the replica. On
        failure the previous contents stay, the session moves to ``ERROR``
        and the error is raised.

        Raises:
            AuthRequiredError: No identity is bound
            RemoteError: A fetch failed or returned an invalid document
        """
        owner_id = self.require_owner()
        epoch = self.epoch
        previous = self.state
        if previous == SessionState.LOADING:
            previous = SessionState.READY if self.last_synced_at is not None else SessionState.SIGNED_OUT
        self.state = SessionState.LOADING
        self._loading_epoch = epoch
        logger.debug("replica_refresh_started", user_id=owner_id)

        try:
            while True:
                generation = self.write_generation
                tasks, projects = await self._fetch_snapshot(owner_id)
                if not self.is_current(epoch) or generation == self.write_generation:
                    break
                # A write mirrored meanwhile may be missing from this snapshot
                logger.debug("replica_refresh_retry", user_id=owner_id)
        except ReplicaError as e:
            if not self.is_current(epoch):
                self._abandon_refresh(epoch, previous)
                return
            self._loading_epoch = None
            self.state = SessionState.ERROR
            self.error = e
            self.metrics.replica_refresh_total.labels(status="error").inc()
            logger.error("replica_refresh_failed", user_id=owner_id, error=str(e))
            raise

        if not self.is_current(epoch):
            self._abandon_refresh(epoch, previous)
            return

        self._loading_epoch = None
        self.cache.tasks.load(tasks)
        self.cache.projects.load(projects)
        self.state = SessionState.READY
        self.error = None
        self.last_synced_at = self.clock()
        self.metrics.replica_refresh_total.labels(status="success").inc()
        self._publish_counts()
        logger.info(
            "replica_refreshed",
            user_id=owner_id,
            tasks=len(self.cache.tasks),
            projects=len(self.cache.projects),
        )

    async def _fetch_snapshot(self, owner_id: str) -> tuple[list[Task], list[Project]]:
        results = await asyncio.gather(
            self.call_gateway("fetch_all", EntityKind.TASK, self.gateway.fetch_all, EntityKind.TASK, owner_id),
            self.call_gateway("fetch_all", EntityKind.PROJECT, self.gateway.fetch_all, EntityKind.PROJECT, owner_id),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        task_docs, project_docs = results
        tasks = [self.to_entity(Task, doc, "fetch_all") for doc in task_docs]
        projects = [self.to_entity(Project, doc, "fetch_all") for doc in project_docs]
        return tasks, projects

    def _abandon_refresh(self, epoch: int, previous: SessionState) -> None:
        self.drop_stale(None, "fetch_all")
        # Leave LOADING only if no newer refresh has taken over
        if self._loading_epoch == epoch and self.state == SessionState.LOADING:
            self._loading_epoch = None
            self.state = previous

    def schedule_refresh(self, reason: str) -> asyncio.Task[None] | None:
        """Start a background refresh to recover from a stale cache."""
        if not self.settings.refresh_on_stale or self.identity is None:
            return None
        logger.info("replica_refresh_scheduled", reason=reason)
        task = asyncio.create_task(self._background_refresh())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _background_refresh(self) -> None:
        try:
            await self.refresh()
        except ReplicaError as e:
            logger.warning("replica_background_refresh_failed", error=str(e))

    async def drain(self) -> None:
        """Wait for scheduled background refreshes."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # =========================================================================
    # Helpers for services
    # =========================================================================

    async def call_gateway(
        self,
        operation: str,
        kind: EntityKind | None,
        method: Callable[..., Awaitable[T]],
        *args: Any,
    ) -> T:
        """Await a gateway method, reporting any failure as ``RemoteError``."""
        try:
            return await method(*args)
        except ReplicaError:
            raise
        except Exception as e:
            logger.error("gateway_call_failed", operation=operation, kind=_kind_label(kind), error=str(e))
            raise RemoteError(operation, kind, str(e)) from e

    def to_entity(self, model: type[E], document: dict[str, Any], operation: str) -> E:
        """Validate a gateway document into a model."""
        try:
            return model.model_validate(document)
        except ValidationError as e:
            raise RemoteError(operation, model.kind, f"invalid document: {e.error_count()} errors") from e

    def is_current(self, epoch: int) -> bool:
        return epoch == self.epoch

    def drop_stale(self, kind: EntityKind | None, operation: str, entity_id: str | None = None) -> None:
        """Record a confirmed result discarded because the session moved on."""
        self.metrics.replica_stale_writes_dropped_total.labels(kind=_kind_label(kind)).inc()
        logger.debug("replica_stale_write_dropped", kind=_kind_label(kind), operation=operation, entity_id=entity_id)

    @asynccontextmanager
    async def entity_lock(self, kind: EntityKind, entity_id: str) -> AsyncIterator[None]:
        """Serialize work on one entity in call order."""
        key = (kind, entity_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    def record_write(self) -> None:
        """Note a mirrored confirmed write and publish cache sizes."""
        self.write_generation += 1
        self._publish_counts()

    def _publish_counts(self) -> None:
        for kind, count in self.cache.snapshot().items():
            self.metrics.replica_entities.labels(kind=kind).set(count)

    # =========================================================================
    # Views
    # =========================================================================

    def by_project(self, project_id: str | None) -> list[Task]:
        return views.by_project(self.cache, project_id)

    def by_priority(self, priority: Priority | int) -> list[Task]:
        return views.by_priority(self.cache, priority)

    def by_due_range(self, start: datetime, end: datetime) -> list[Task]:
        return views.by_due_range(self.cache, start, end)

    def overdue(self, now: datetime | None = None) -> list[Task]:
        return views.overdue(self.cache, now)

    def due_today(self, now: datetime | None = None) -> list[Task]:
        return views.due_today(self.cache, now)

    def filter_tasks(self, task_filter: TaskFilter) -> list[Task]:
        return views.filter_tasks(self.cache, task_filter)

    def filter_projects(self, project_filter: ProjectFilter) -> list[Project]:
        return views.filter_projects(self.cache, project_filter)

    def favorites(self) -> list[Project]:
        return views.favorites(self.cache)

    def archived(self) -> list[Project]:
        return views.archived(self.cache)

    def active(self) -> list[Project]:
        return views.active(self.cache)

    def project_by_id(self, project_id: str) -> Project | None:
        return views.project_by_id(self.cache, project_id)


def _kind_label(kind: EntityKind | None) -> str:
    return kind.value if kind is not None else "all"
