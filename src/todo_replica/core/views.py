"""Read-only projections over the replica.

Every function is synchronous, recomputed on each call and total: an empty
or cleared replica yields empty lists. Task views keep replica order;
project views are in display order.
"""

from datetime import datetime, time, timedelta
from typing import Any

from todo_replica.core.cache import ReplicaCache
from todo_replica.core.ordering import sort_by_order
from todo_replica.models import Priority, Project, ProjectFilter, ProjectSort, Task, TaskFilter, TaskSort, utc_now
from todo_replica.models.base import ensure_aware

# Selects tasks with no project
INBOX: None = None


def by_project(cache: ReplicaCache, project_id: str | None) -> list[Task]:
    """Tasks of one project; ``INBOX`` selects tasks without a project."""
    return [task for task in cache.tasks if task.project_id == project_id]


def by_priority(cache: ReplicaCache, priority: Priority | int) -> list[Task]:
    return [task for task in cache.tasks if task.priority == priority]


def by_due_range(cache: ReplicaCache, start: datetime, end: datetime) -> list[Task]:
    """Tasks due within ``[start, end]``, both ends inclusive."""
    start, end = ensure_aware(start), ensure_aware(end)
    return [
        task
        for task in cache.tasks
        if task.due_date is not None and start <= task.due_date <= end  # type: ignore[operator]
    ]


def overdue(cache: ReplicaCache, now: datetime | None = None) -> list[Task]:
    """Incomplete tasks whose due date has passed."""
    now = ensure_aware(now) or utc_now()
    return [
        task
        for task in cache.tasks
        if task.due_date is not None and not task.completed and task.due_date < now
    ]


def due_today(cache: ReplicaCache, now: datetime | None = None) -> list[Task]:
    """Incomplete tasks due on the calendar day of ``now``.

    The day boundaries follow ``now``'s timezone (UTC when not given).
    """
    now = ensure_aware(now) or utc_now()
    start = datetime.combine(now.date(), time.min, tzinfo=now.tzinfo)
    end = start + timedelta(days=1)
    return [
        task
        for task in cache.tasks
        if task.due_date is not None and not task.completed and start <= task.due_date < end
    ]


def favorites(cache: ReplicaCache) -> list[Project]:
    return sort_by_order([p for p in cache.projects if p.is_favorite and not p.is_archived])


def archived(cache: ReplicaCache) -> list[Project]:
    return sort_by_order([p for p in cache.projects if p.is_archived])


def active(cache: ReplicaCache) -> list[Project]:
    return sort_by_order([p for p in cache.projects if not p.is_archived])


def all_projects(cache: ReplicaCache) -> list[Project]:
    return sort_by_order(cache.projects.values())


def project_by_id(cache: ReplicaCache, project_id: str) -> Project | None:
    return cache.projects.get(project_id)


def filter_tasks(cache: ReplicaCache, task_filter: TaskFilter) -> list[Task]:
    """Tasks matching every constraint set on ``task_filter``."""
    constrain_project = "project_id" in task_filter.model_fields_set
    required_labels = set(task_filter.labels)

    def matches(task: Task) -> bool:
        if task_filter.completed is not None and task.completed != task_filter.completed:
            return False
        if task_filter.priority is not None and task.priority != task_filter.priority:
            return False
        if constrain_project and task.project_id != task_filter.project_id:
            return False
        if task_filter.due_start is not None or task_filter.due_end is not None:
            if task.due_date is None:
                return False
            if task_filter.due_start is not None and task.due_date < task_filter.due_start:
                return False
            if task_filter.due_end is not None and task.due_date > task_filter.due_end:
                return False
        if required_labels and not required_labels.issubset(task.labels):
            return False
        return True

    return [task for task in cache.tasks if matches(task)]


def _sort_by_field(items: list[Any], field: str, descending: bool) -> list[Any]:
    present = [item for item in items if getattr(item, field) is not None]
    missing = [item for item in items if getattr(item, field) is None]

    def key(item: Any) -> Any:
        value = getattr(item, field)
        return value.casefold() if isinstance(value, str) else value

    present.sort(key=key, reverse=descending)
    return present + missing


def sort_tasks(tasks: list[Task], task_sort: TaskSort) -> list[Task]:
    """Sort tasks by one field; tasks missing the field go last either way."""
    return _sort_by_field(tasks, task_sort.field, task_sort.direction == "desc")


def filter_projects(cache: ReplicaCache, project_filter: ProjectFilter) -> list[Project]:
    """Projects matching the flags set on ``project_filter``, in display order."""
    return [
        project
        for project in sort_by_order(cache.projects.values())
        if (project_filter.is_favorite is None or project.is_favorite == project_filter.is_favorite)
        and (project_filter.is_archived is None or project.is_archived == project_filter.is_archived)
    ]


def sort_projects(projects: list[Project], project_sort: ProjectSort) -> list[Project]:
    """Sort projects by one field, starting from display order."""
    return _sort_by_field(sort_by_order(projects), project_sort.field, project_sort.direction == "desc")
