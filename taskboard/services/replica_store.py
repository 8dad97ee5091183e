"""In-memory replica of the board's tasks."""
from __future__ import annotations

from typing import Iterable, List, Optional, Tuple

from taskboard.schemas.sync import TaskStats
from taskboard.schemas.task import Task, TaskStatus


def _index_of(items: List[Task], task_id: str) -> int:
    for index, item in enumerate(items):
        if item.id == task_id:
            return index
    return -1


class LocalReplicaStore:
    """Ordered active and archived collections, most recent first.

    A task lives in exactly one collection, chosen by ``archived_at``.
    Updates keep a task's position; new tasks go to the front.
    """

    def __init__(self) -> None:
        self._active: List[Task] = []
        self._archived: List[Task] = []

    @property
    def active(self) -> List[Task]:
        return list(self._active)

    @property
    def archived(self) -> List[Task]:
        return list(self._archived)

    def get(self, task_id: str) -> Optional[Task]:
        """Look up a task across both collections."""
        for items in (self._active, self._archived):
            index = _index_of(items, task_id)
            if index >= 0:
                return items[index]
        return None

    def __contains__(self, task_id: object) -> bool:
        return isinstance(task_id, str) and self.get(task_id) is not None

    def __len__(self) -> int:
        return len(self._active) + len(self._archived)

    def upsert(self, task: Task) -> None:
        """Insert or replace ``task`` in the collection its archive flag selects."""
        if task.is_archived:
            target, other = self._archived, self._active
        else:
            target, other = self._active, self._archived

        index = _index_of(other, task.id)
        if index >= 0:
            del other[index]

        index = _index_of(target, task.id)
        if index >= 0:
            target[index] = task
        else:
            target.insert(0, task)

    def locate(self, task_id: str) -> Optional[Tuple[bool, int]]:
        """Return ``(archived, index)`` for a held task, or None."""
        for archived, items in ((False, self._active), (True, self._archived)):
            index = _index_of(items, task_id)
            if index >= 0:
                return archived, index
        return None

    def restore(self, task: Task, position: Tuple[bool, int]) -> None:
        """Put ``task`` back at a position previously returned by ``locate``."""
        self.remove(task.id)
        archived, index = position
        target = self._archived if archived else self._active
        target.insert(min(index, len(target)), task)

    def remove(self, task_id: str) -> None:
        """Drop ``task_id`` from both collections."""
        self._active = [task for task in self._active if task.id != task_id]
        self._archived = [task for task in self._archived if task.id != task_id]

    def replace_all(self, tasks: Iterable[Task]) -> None:
        """Replace both collections, keeping the given order."""
        self._active, self._archived = split_by_archive(tasks)

    def clear(self) -> None:
        self._active = []
        self._archived = []

    def stats(self) -> TaskStats:
        """Counts over the active collection."""
        total = len(self._active)
        completed = sum(1 for task in self._active if task.is_complete)
        active = sum(
            1 for task in self._active if not task.is_complete and task.status == TaskStatus.ACTIVE
        )
        backlog = sum(
            1 for task in self._active if not task.is_complete and task.status == TaskStatus.BACKLOG
        )
        return TaskStats(
            total=total,
            backlog=backlog,
            active=active,
            completed=completed,
            remaining=total - completed,
        )


def split_by_archive(tasks: Iterable[Task]) -> Tuple[List[Task], List[Task]]:
    """Partition tasks into (active, archived), preserving order."""
    active: List[Task] = []
    archived: List[Task] = []
    for task in tasks:
        if task is None:
            continue
        if task.is_archived:
            archived.append(task)
        else:
            active.append(task)
    return active, archived
