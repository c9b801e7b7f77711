"""Base entity model and common types."""

from datetime import datetime, timezone
from enum import Enum, IntEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class EntityKind(str, Enum):
    """Entity kind discriminator; values double as collection names."""

    TASK = "tasks"
    PROJECT = "projects"


class Priority(IntEnum):
    """Task priority. Lower value means more urgent."""

    URGENT = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 4

    @property
    def label(self) -> str:
        return _PRIORITY_LABELS[self]

    @property
    def color(self) -> str:
        return _PRIORITY_COLORS[self]


_PRIORITY_LABELS = {
    Priority.URGENT: "Urgent",
    Priority.HIGH: "High",
    Priority.MEDIUM: "Medium",
    Priority.LOW: "Low",
}

_PRIORITY_COLORS = {
    Priority.URGENT: "#ff0000",
    Priority.HIGH: "#ff9900",
    Priority.MEDIUM: "#ffcc00",
    Priority.LOW: "#808080",
}


class ProjectColor(str, Enum):
    """Fixed project color palette."""

    RED = "#ff4d4d"
    ORANGE = "#ff9933"
    YELLOW = "#ffcc00"
    GREEN = "#33cc33"
    BLUE = "#3399ff"
    PURPLE = "#9966ff"
    PINK = "#ff66cc"
    GRAY = "#808080"

    @classmethod
    def parse(cls, value: "str | ProjectColor") -> "ProjectColor":
        """Resolve a palette entry from its hex value or its name."""
        if isinstance(value, cls):
            return value
        text = str(value).strip()
        try:
            return cls(text.lower())
        except ValueError:
            pass
        try:
            return cls[text.upper()]
        except KeyError:
            raise ValueError(f"Color {value!r} is not in the project palette") from None


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_aware(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC so comparisons never mix naive and aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BaseEntity(BaseModel):
    """Fields shared by every stored entity.

    ``id``, ``created_at`` and ``updated_at`` are assigned by the remote
    store; ``owner_id`` scopes the entity to one identity.
    """

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
    )

    id: str = Field(..., min_length=1, description="Store-assigned identifier")
    owner_id: str = Field(..., min_length=1, description="Owning identity")
    created_at: datetime = Field(default_factory=utc_now, description="Creation timestamp")
    updated_at: datetime = Field(default_factory=utc_now, description="Last modification timestamp")

    @field_validator("created_at", "updated_at")
    @classmethod
    def _timestamps_aware(cls, v: datetime) -> datetime:
        return ensure_aware(v)  # type: ignore[return-value]
