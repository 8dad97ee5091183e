"""Replica store and sync ledger behind a single update interface."""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from taskboard.config import settings
from taskboard.schemas.sync import SyncStatus, TaskStats
from taskboard.schemas.task import Task
from taskboard.services.replica_store import LocalReplicaStore
from taskboard.services.sync_ledger import SyncLedger

logger = logging.getLogger(__name__)


class TaskReplica:
    """Every call keeps the task collections and the ledger in step."""

    def __init__(
        self,
        store: Optional[LocalReplicaStore] = None,
        ledger: Optional[SyncLedger] = None,
        *,
        tombstone_limit: Optional[int] = None,
    ) -> None:
        self.store = store or LocalReplicaStore()
        self.ledger = ledger or SyncLedger()
        self.tombstone_limit = settings.TOMBSTONE_LIMIT if tombstone_limit is None else tombstone_limit
        # Ids of applied deletes, oldest first.
        self._deleted: Dict[str, None] = {}

    # Reads

    @property
    def active(self) -> List[Task]:
        return self.store.active

    @property
    def archived(self) -> List[Task]:
        return self.store.archived

    def get(self, task_id: str) -> Optional[Task]:
        return self.store.get(task_id)

    def contains(self, task_id: str) -> bool:
        return task_id in self.store

    def locate(self, task_id: str) -> Optional[Tuple[bool, int]]:
        return self.store.locate(task_id)

    def status(self, task_id: str) -> Optional[SyncStatus]:
        return self.ledger.get_status(task_id)

    def error(self, task_id: str) -> Optional[str]:
        return self.ledger.get_error(task_id)

    def stats(self) -> TaskStats:
        return self.store.stats()

    def was_deleted(self, task_id: str) -> bool:
        """True once a confirmed delete for ``task_id`` has been applied."""
        return task_id in self._deleted

    # Writes

    def apply(self, task: Task, status: SyncStatus, error: Optional[str] = None) -> None:
        """Upsert ``task`` and record its sync status."""
        self.store.upsert(task)
        self.ledger.set_status(task.id, status, error)

    def edit(self, task: Task) -> None:
        """Replace a task without touching its sync status."""
        self.store.upsert(task)

    def mark(self, task_id: str, status: SyncStatus, error: Optional[str] = None) -> None:
        """Change only the ledger status of a task that is already held."""
        self.ledger.set_status(task_id, status, error)

    def rollback(self, previous: Task, error: str, position: Optional[Tuple[bool, int]] = None) -> None:
        """Restore the pre-mutation task, at its old position when known, and flag the failure."""
        if position is None:
            self.store.upsert(previous)
        else:
            self.store.restore(previous, position)
        self.ledger.set_status(previous.id, SyncStatus.FAILED, error)

    def promote(self, temp_id: str, task: Task) -> None:
        """Replace a temporary entity with its durable counterpart."""
        self.store.remove(temp_id)
        self.store.remove(task.id)
        self.store.upsert(task)
        self.ledger.rekey(temp_id, task.id)
        self.ledger.set_status(task.id, SyncStatus.SYNCED)

    def forget(self, task_id: str) -> None:
        """Apply a confirmed delete."""
        self.store.remove(task_id)
        self.ledger.clear(task_id)
        self._deleted.pop(task_id, None)
        self._deleted[task_id] = None
        while len(self._deleted) > self.tombstone_limit:
            del self._deleted[next(iter(self._deleted))]

    def discard(self, task_id: str) -> None:
        """Drop a local-only entity without recording a delete."""
        self.store.remove(task_id)
        self.ledger.clear(task_id)

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """Wholesale refresh; every fetched task is confirmed."""
        tasks = [task for task in tasks if task is not None]
        self.store.replace_all(tasks)
        self.ledger.reset()
        self._deleted.clear()
        for task in tasks:
            self.ledger.set_status(task.id, SyncStatus.SYNCED)
        logger.debug("Replica refreshed with %d tasks", len(tasks))

    def clear(self) -> None:
        self.store.clear()
        self.ledger.reset()
        self._deleted.clear()
