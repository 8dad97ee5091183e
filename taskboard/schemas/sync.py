"""Sync state schemas."""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from taskboard.schemas.task import Task


class SyncStatus(str, Enum):
    """Confirmation state of a locally held entity."""

    SYNCED = "synced"
    SYNCING = "syncing"
    FAILED = "failed"


@dataclass
class SyncEntry:
    """Ledger entry for one entity id."""

    status: SyncStatus
    error: Optional[str] = None


@dataclass
class MutationResult:
    """Outcome of a create or retry: either a saved task or the error."""

    ok: bool
    task: Optional[Task] = None
    error: Optional[Exception] = None

    @classmethod
    def success(cls, task: Task) -> "MutationResult":
        return cls(ok=True, task=task)

    @classmethod
    def failure(cls, error: Exception) -> "MutationResult":
        return cls(ok=False, error=error)

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


class TaskStats(BaseModel):
    """Aggregate counts over the active collection."""

    total: int = 0
    backlog: int = 0
    active: int = 0
    completed: int = 0
    remaining: int = 0
