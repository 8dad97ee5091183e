"""Task schemas."""
from enum import Enum
from typing import Any, List, Optional, Type, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from taskboard.core.exceptions import ValidationError


class TaskStatus(str, Enum):
    """Board column of a task."""

    BACKLOG = "backlog"
    ACTIVE = "active"
    COMPLETED = "completed"


class TaskPriority(str, Enum):
    """Task priority."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


TASK_PRIORITIES = [priority.value for priority in TaskPriority]
DEFAULT_PRIORITY = TaskPriority.MEDIUM.value
DEFAULT_STATUS = TaskStatus.BACKLOG.value


class Task(BaseModel):
    """Task as held by the local replica."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    id: str
    title: str = ""
    description: str = ""
    status: TaskStatus = TaskStatus.BACKLOG
    priority: TaskPriority = TaskPriority.MEDIUM
    is_complete: bool = False
    archived_at: Optional[str] = None
    activated_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    due_date: Optional[str] = None
    categories: List[str] = Field(default_factory=list)

    @property
    def is_archived(self) -> bool:
        return bool(self.archived_at)


def _coerce_categories(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return value


class TaskDraft(BaseModel):
    """Task creation schema."""

    model_config = ConfigDict(use_enum_values=True, validate_default=True)

    title: str
    description: str = ""
    status: TaskStatus = TaskStatus.BACKLOG
    priority: TaskPriority = TaskPriority.MEDIUM
    is_complete: bool = False
    archived_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("archived_at", "archivedAt"))
    due_date: Optional[str] = Field(default=None, validation_alias=AliasChoices("due_date", "dueDate"))
    categories: List[str] = Field(default_factory=list)

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    @field_validator("description")
    @classmethod
    def strip_description(cls, value: str) -> str:
        return value.strip()

    @field_validator("categories", mode="before")
    @classmethod
    def categories_as_strings(cls, value: Any) -> Any:
        return _coerce_categories(value)


# Fields that may be sent but never cleared to null.
_NON_NULLABLE_UPDATE_FIELDS = ("title", "description", "status", "priority", "is_complete", "categories")


class TaskUpdate(BaseModel):
    """Partial task changes; only explicitly set fields are applied."""

    model_config = ConfigDict(use_enum_values=True)

    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    is_complete: Optional[bool] = None
    archived_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("archived_at", "archivedAt"))
    activated_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("activated_at", "activatedAt"))
    completed_at: Optional[str] = Field(default=None, validation_alias=AliasChoices("completed_at", "completedAt"))
    due_date: Optional[str] = Field(default=None, validation_alias=AliasChoices("due_date", "dueDate"))
    categories: Optional[List[str]] = None

    @field_validator("title")
    @classmethod
    def title_not_blank(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        value = value.strip()
        if not value:
            raise ValueError("title must not be empty")
        return value

    @field_validator("categories", mode="before")
    @classmethod
    def categories_as_strings(cls, value: Any) -> Any:
        return _coerce_categories(value)

    @model_validator(mode="after")
    def reject_null_values(self) -> "TaskUpdate":
        for name in _NON_NULLABLE_UPDATE_FIELDS:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict:
        """Return only the fields the caller set."""
        return self.model_dump(exclude_unset=True)


ModelT = TypeVar("ModelT", bound=BaseModel)


def validate_payload(model_cls: Type[ModelT], data: Any) -> ModelT:
    """Validate a request payload, raising the engine's ValidationError."""
    if isinstance(data, model_cls):
        return data
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as exc:
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ()))
            messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        raise ValidationError("; ".join(messages)) from exc
