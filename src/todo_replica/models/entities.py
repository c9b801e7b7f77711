"""Task and Project models, creation payloads and typed patches."""

from datetime import datetime
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from todo_replica.models.base import BaseEntity, EntityKind, Priority, ProjectColor, ensure_aware


def _unique_labels(labels: list[str]) -> list[str]:
    seen: set[str] = set()
    result = []
    for label in labels:
        label = label.strip()
        if label and label not in seen:
            seen.add(label)
            result.append(label)
    return result


# =============================================================================
# Task
# =============================================================================


class Task(BaseEntity):
    """A single to-do item. ``project_id`` of None means the inbox."""

    kind: ClassVar[EntityKind] = EntityKind.TASK

    title: str = Field(..., min_length=1, description="Task title")
    description: str | None = Field(default=None, description="Free-form notes")
    completed: bool = Field(default=False, description="Completion flag")
    priority: Priority = Field(default=Priority.LOW, description="Urgency, 1 (urgent) to 4 (low)")
    due_date: datetime | None = Field(default=None, description="Optional due instant")
    project_id: str | None = Field(default=None, description="Owning project, None for inbox")
    labels: list[str] = Field(default_factory=list, description="Ordered unique labels")

    @field_validator("due_date")
    @classmethod
    def _due_date_aware(cls, v: datetime | None) -> datetime | None:
        return ensure_aware(v)

    @field_validator("labels")
    @classmethod
    def _labels_unique(cls, v: list[str]) -> list[str]:
        return _unique_labels(v)


class NewTask(BaseModel):
    """Client-supplied fields for creating a task."""

    model_config = ConfigDict(str_strip_whitespace=True)

    title: str = Field(..., min_length=1)
    description: str | None = None
    priority: Priority = Priority.LOW
    due_date: datetime | None = None
    project_id: str | None = None
    labels: list[str] = Field(default_factory=list)

    @field_validator("due_date")
    @classmethod
    def _due_date_aware(cls, v: datetime | None) -> datetime | None:
        return ensure_aware(v)

    @field_validator("labels")
    @classmethod
    def _labels_unique(cls, v: list[str]) -> list[str]:
        return _unique_labels(v)


# =============================================================================
# Project
# =============================================================================


class Project(BaseEntity):
    """A named group of tasks with a position in the owner's project list."""

    kind: ClassVar[EntityKind] = EntityKind.PROJECT

    name: str = Field(..., min_length=1, description="Project name")
    description: str | None = Field(default=None, description="Free-form notes")
    color: ProjectColor = Field(default=ProjectColor.GRAY, description="Palette color")
    order: int = Field(default=0, description="Ascending display position")
    is_favorite: bool = Field(default=False)
    is_archived: bool = Field(default=False)

    @field_validator("color", mode="before")
    @classmethod
    def _color_in_palette(cls, v: Any) -> ProjectColor:
        return ProjectColor.parse(v)


class NewProject(BaseModel):
    """Client-supplied fields for creating a project.

    ``order`` defaults to one past the current last project.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1)
    description: str | None = None
    color: ProjectColor = ProjectColor.GRAY
    order: int | None = None

    @field_validator("color", mode="before")
    @classmethod
    def _color_in_palette(cls, v: Any) -> ProjectColor:
        return ProjectColor.parse(v)


# =============================================================================
# Patches
# =============================================================================


class EntityPatch(BaseModel):
    """Partial update with a fixed schema.

    Only fields explicitly set are applied. Fields listed in
    ``nullable_fields`` may be cleared with an explicit None; the rest
    reject None.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    nullable_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def _reject_null_required(self) -> "EntityPatch":
        for name in self.model_fields_set:
            if getattr(self, name) is None and name not in self.nullable_fields:
                raise ValueError(f"Field {name!r} cannot be cleared")
        return self

    def changes(self) -> dict[str, Any]:
        """Set fields as python values, in declaration order."""
        return self.model_dump(exclude_unset=True)

    def wire_changes(self) -> dict[str, Any]:
        """Set fields in JSON-compatible form for the remote store."""
        return self.model_dump(mode="json", exclude_unset=True)

    def is_empty(self) -> bool:
        return not self.model_fields_set


class TaskPatch(EntityPatch):
    """Partial update for a Task."""

    nullable_fields: ClassVar[frozenset[str]] = frozenset({"description", "due_date", "project_id"})

    title: str | None = Field(default=None, min_length=1)
    description: str | None = None
    completed: bool | None = None
    priority: Priority | None = None
    due_date: datetime | None = None
    project_id: str | None = None
    labels: list[str] | None = None

    @field_validator("due_date")
    @classmethod
    def _due_date_aware(cls, v: datetime | None) -> datetime | None:
        return ensure_aware(v)

    @field_validator("labels")
    @classmethod
    def _labels_unique(cls, v: list[str] | None) -> list[str] | None:
        return None if v is None else _unique_labels(v)


class ProjectPatch(EntityPatch):
    """Partial update for a Project."""

    nullable_fields: ClassVar[frozenset[str]] = frozenset({"description"})

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    color: ProjectColor | None = None
    order: int | None = None
    is_favorite: bool | None = None
    is_archived: bool | None = None

    @field_validator("color", mode="before")
    @classmethod
    def _color_in_palette(cls, v: Any) -> ProjectColor | None:
        return None if v is None else ProjectColor.parse(v)


# =============================================================================
# Query helpers
# =============================================================================


class TaskFilter(BaseModel):
    """Conjunctive task filter. Unset fields do not constrain.

    ``project_id`` constrains only when explicitly set; an explicit None
    selects inbox tasks.
    """

    completed: bool | None = None
    priority: Priority | None = None
    project_id: str | None = None
    due_start: datetime | None = None
    due_end: datetime | None = None
    labels: list[str] = Field(default_factory=list)

    @field_validator("due_start", "due_end")
    @classmethod
    def _range_aware(cls, v: datetime | None) -> datetime | None:
        return ensure_aware(v)


TaskSortField = Literal["title", "priority", "due_date", "created_at", "updated_at", "completed"]


class TaskSort(BaseModel):
    """Sort key for task lists. Missing values sort last."""

    field: TaskSortField = "created_at"
    direction: Literal["asc", "desc"] = "asc"


class ProjectFilter(BaseModel):
    """Conjunctive project filter on the two flags. Unset fields do not constrain."""

    is_favorite: bool | None = None
    is_archived: bool | None = None


ProjectSortField = Literal["name", "order", "created_at", "updated_at", "is_favorite", "is_archived"]


class ProjectSort(BaseModel):
    """Sort key for project lists; ties keep display order."""

    field: ProjectSortField = "order"
    direction: Literal["asc", "desc"] = "asc"
