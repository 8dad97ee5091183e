"""Translation between remote rows and replica entities."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from taskboard.config import settings
from taskboard.schemas.category import Category
from taskboard.schemas.task import DEFAULT_PRIORITY, DEFAULT_STATUS, TASK_PRIORITIES, Task, TaskStatus

# Attribute name (internal or wire spelling) -> wire column.
TASK_WIRE_FIELDS: Dict[str, str] = {
    "title": "title",
    "description": "description",
    "priority": "priority",
    "status": "status",
    "is_complete": "is_complete",
    "archivedAt": "archived_at",
    "archived_at": "archived_at",
    "activatedAt": "activated_at",
    "activated_at": "activated_at",
    "completedAt": "completed_at",
    "completed_at": "completed_at",
    "createdAt": "created_at",
    "created_at": "created_at",
    "updatedAt": "updated_at",
    "updated_at": "updated_at",
    "dueDate": "due_date",
    "due_date": "due_date",
    "categories": "categories",
}

# Columns stamped by the server or by status transitions.
TIMESTAMP_COLUMNS = frozenset({"activated_at", "completed_at", "created_at", "updated_at"})
CATEGORIES_COLUMN = "categories"

_STATUSES = {status.value for status in TaskStatus}


def _first(row: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = row.get(key)
        if value is not None:
            return value
    return None


def _plain(value: Any) -> Any:
    return getattr(value, "value", value)


class TaskMapper:
    """Pure conversions for task rows."""

    @staticmethod
    def from_wire(row: Optional[Mapping[str, Any]]) -> Optional[Task]:
        """Build a Task from a remote row, filling defaults for absent fields."""
        if row is None:
            return None

        priority = _plain(row.get("priority"))
        if priority not in TASK_PRIORITIES:
            priority = DEFAULT_PRIORITY

        status = _plain(row.get("status"))
        if status not in _STATUSES:
            status = DEFAULT_STATUS

        categories = row.get("categories")
        if isinstance(categories, (list, tuple)):
            categories = [str(category) for category in categories]
        else:
            categories = []

        row_id = row.get("id")
        return Task(
            id=str(row_id) if row_id is not None else "",
            title=row.get("title") or "",
            description=row.get("description") or "",
            status=status,
            priority=priority,
            is_complete=bool(row.get("is_complete") or row.get("completed")),
            archived_at=_first(row, "archived_at", "archivedAt"),
            activated_at=_first(row, "activated_at", "activatedAt"),
            completed_at=_first(row, "completed_at", "completedAt"),
            created_at=_first(row, "created_at", "createdAt"),
            updated_at=_first(row, "updated_at", "updatedAt"),
            due_date=_first(row, "due_date", "dueDate"),
            categories=categories,
        )

    @staticmethod
    def to_wire(
        fields: Optional[Mapping[str, Any]],
        *,
        include_timestamps: bool = True,
        include_categories: bool = True,
    ) -> Dict[str, Any]:
        """Map recognised attributes to wire columns, dropping everything else."""
        wire: Dict[str, Any] = {}
        if not fields:
            return wire

        for key, value in fields.items():
            column = TASK_WIRE_FIELDS.get(key)
            if column is None:
                continue
            if not include_timestamps and column in TIMESTAMP_COLUMNS:
                continue
            if not include_categories and column == CATEGORIES_COLUMN:
                continue
            if column == CATEGORIES_COLUMN and value is not None:
                value = list(value)
            wire[column] = _plain(value)
        return wire


class CategoryMapper:
    """Pure conversions for category rows."""

    @staticmethod
    def from_wire(row: Optional[Mapping[str, Any]]) -> Optional[Category]:
        if row is None:
            return None
        row_id = row.get("id")
        return Category(
            id=str(row_id) if row_id is not None else "",
            label=_first(row, "label", "name") or "",
            color=row.get("color") or settings.DEFAULT_CATEGORY_COLOR,
        )

    @staticmethod
    def to_wire(label: str, color: Optional[str], scope_id: str) -> Dict[str, Any]:
        return {
            "name": label.strip().lower(),
            "color": color or settings.DEFAULT_CATEGORY_COLOR,
            settings.SCOPE_COLUMN: scope_id,
        }


task_mapper = TaskMapper()
category_mapper = CategoryMapper()
