"""Data models for the replica layer."""

from todo_replica.models.base import (
    BaseEntity,
    EntityKind,
    Priority,
    ProjectColor,
    utc_now,
)
from todo_replica.models.entities import (
    EntityPatch,
    NewProject,
    NewTask,
    Project,
    ProjectFilter,
    ProjectPatch,
    ProjectSort,
    Task,
    TaskFilter,
    TaskPatch,
    TaskSort,
)

__all__ = [
    # Base
    "BaseEntity",
    "EntityKind",
    "Priority",
    "ProjectColor",
    "utc_now",
    # Entities
    "Task",
    "Project",
    # Payloads
    "NewTask",
    "NewProject",
    "EntityPatch",
    "TaskPatch",
    "ProjectPatch",
    # Queries
    "TaskFilter",
    "TaskSort",
    "ProjectFilter",
    "ProjectSort",
]
