"""Schema modules."""
from taskboard.schemas.task import (
    Task,
    TaskDraft,
    TaskUpdate,
    TaskStatus,
    TaskPriority,
    TASK_PRIORITIES,
    DEFAULT_PRIORITY,
    DEFAULT_STATUS,
)
from taskboard.schemas.category import Category
from taskboard.schemas.sync import SyncStatus, SyncEntry, MutationResult, TaskStats
