"""Board session: scope lifecycle and the interface the UI reads."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from taskboard.config import settings
from taskboard.core.exceptions import RemoteRejectionError, ValidationError
from taskboard.integrations.push_channel import PushChannel, RealtimeEvent, Subscription
from taskboard.integrations.remote_store import RemoteStore
from taskboard.schemas.category import Category
from taskboard.schemas.sync import MutationResult, SyncStatus, TaskStats
from taskboard.schemas.task import TASK_PRIORITIES, Task, TaskDraft, TaskStatus, TaskUpdate
from taskboard.services.capability_prober import RemoteCapabilities
from taskboard.services.category_service import CategoryBook
from taskboard.services.realtime_reconciler import RealtimeReconciler
from taskboard.services.replica import TaskReplica
from taskboard.services.sync_pipeline import OptimisticMutationPipeline

logger = logging.getLogger(__name__)

_STATUSES = {status.value for status in TaskStatus}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _recency_key(task: Task) -> str:
    return task.archived_at or task.completed_at or task.created_at or ""


class TaskBoardSession:
    """Owns the replica, ledger, categories and push subscriptions for one scope."""

    def __init__(
        self,
        remote: RemoteStore,
        push_channel: PushChannel,
        *,
        capabilities: Optional[RemoteCapabilities] = None,
    ):
        self.remote = remote
        self.push_channel = push_channel
        self.replica = TaskReplica()
        self.pipeline = OptimisticMutationPipeline(remote, self.replica, capabilities=capabilities)
        self.reconciler = RealtimeReconciler(self.replica)
        self.category_book = CategoryBook(remote)
        self.scope_id: Optional[str] = None
        self.last_error: Optional[str] = None
        self._subscriptions: List[Subscription] = []

    # Scope lifecycle

    @property
    def is_open(self) -> bool:
        return self.scope_id is not None

    async def open(self, scope_id: Optional[str]) -> None:
        """Switch to ``scope_id``, starting from an empty state."""
        self.close()
        if not scope_id:
            return

        logger.info("Opening board for scope %s", scope_id)
        self.scope_id = scope_id
        self.pipeline.scope_id = scope_id

        try:
            await self.pipeline.refresh()
        except RemoteRejectionError as exc:
            logger.error("Error fetching tasks for scope %s: %s", scope_id, exc)
            self.last_error = str(exc)
        try:
            await self.category_book.load(scope_id)
        except RemoteRejectionError as exc:
            logger.error("Error fetching categories for scope %s: %s", scope_id, exc)
            self.last_error = str(exc)

        self._subscriptions = [
            self.push_channel.subscribe(settings.TASKS_TABLE, scope_id, self._on_task_event),
            self.push_channel.subscribe(settings.CATEGORIES_TABLE, scope_id, self._on_category_event),
        ]

    def close(self) -> None:
        """Tear down subscriptions and drop all local state."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []
        if self.scope_id is not None:
            logger.info("Closing board for scope %s", self.scope_id)
        self.scope_id = None
        self.pipeline.scope_id = None
        self.last_error = None
        self.replica.clear()
        self.category_book.clear()

    async def refresh(self) -> int:
        return await self.pipeline.refresh()

    def _on_task_event(self, event: RealtimeEvent) -> None:
        self.reconciler.apply(event)

    def _on_category_event(self, event: RealtimeEvent) -> None:
        self.category_book.apply_event(event)

    # Reads

    @property
    def active_tasks(self) -> List[Task]:
        return self.replica.active

    @property
    def archived_tasks(self) -> List[Task]:
        return self.replica.archived

    def archived_by_recency(self) -> List[Task]:
        return sorted(self.replica.archived, key=_recency_key, reverse=True)

    @property
    def stats(self) -> TaskStats:
        return self.replica.stats()

    @property
    def categories(self) -> List[Category]:
        return self.category_book.categories

    @property
    def capabilities(self) -> RemoteCapabilities:
        return self.pipeline.capabilities

    def get_task(self, task_id: str) -> Optional[Task]:
        return self.replica.get(task_id)

    def sync_status(self, task_id: str) -> Optional[SyncStatus]:
        return self.replica.status(task_id)

    def sync_error(self, task_id: str) -> Optional[str]:
        return self.replica.error(task_id)

    # Task operations

    async def create_task(self, draft: Union[TaskDraft, Mapping[str, Any]]) -> MutationResult:
        return await self.pipeline.create(draft)

    async def update_task(self, task_id: str, changes: Union[TaskUpdate, Mapping[str, Any]]) -> Optional[Task]:
        return await self.pipeline.update(task_id, changes)

    async def retry_task(self, task_id: str) -> Optional[MutationResult]:
        return await self.pipeline.retry(task_id)

    async def delete_task(self, task_id: str) -> None:
        await self.pipeline.delete(task_id)

    def discard_task(self, task_id: str) -> bool:
        return self.pipeline.discard(task_id)

    async def set_status(self, task_id: str, status: str) -> Optional[Task]:
        """Move a task to a board column, keeping the completion flag in step."""
        if status not in _STATUSES:
            raise ValidationError(f"Unknown status '{status}'")
        return await self.pipeline.update(
            task_id, {"status": status, "is_complete": status == TaskStatus.COMPLETED.value}
        )

    async def set_priority(self, task_id: str, priority: str) -> Optional[Task]:
        if priority not in TASK_PRIORITIES:
            raise ValidationError(f"Unknown priority '{priority}'")
        return await self.pipeline.update(task_id, {"priority": priority})

    async def archive(self, task_id: str) -> Optional[Task]:
        return await self.pipeline.update(task_id, {"archived_at": _utcnow()})

    async def restore(self, task_id: str, status: Optional[str] = None) -> Optional[Task]:
        """Bring an archived task back, optionally into a given column."""
        changes: Dict[str, Any] = {"archived_at": None}
        if status:
            if status not in _STATUSES:
                raise ValidationError(f"Unknown status '{status}'")
            changes["status"] = status
            changes["is_complete"] = status == TaskStatus.COMPLETED.value
        return await self.pipeline.update(task_id, changes)

    async def archive_completed(self) -> Dict[str, Optional[Task]]:
        """Archive every completed task on the board."""
        completed = [
            task
            for task in self.replica.active
            if task.status == TaskStatus.COMPLETED or task.is_complete
        ]
        results: Dict[str, Optional[Task]] = {}
        for task in completed:
            results[task.id] = await self.archive(task.id)
        return results

    async def assign_category(self, task_id: str, category_id: str) -> Optional[Task]:
        task = self.replica.get(task_id)
        if task is None or not category_id:
            return None
        if category_id in task.categories:
            return task
        return await self.pipeline.update(task_id, {"categories": [*task.categories, category_id]})

    async def unassign_category(self, task_id: str, category_id: str) -> Optional[Task]:
        task = self.replica.get(task_id)
        if task is None or not category_id:
            return None
        if category_id not in task.categories:
            return task
        remaining = [item for item in task.categories if item != category_id]
        return await self.pipeline.update(task_id, {"categories": remaining})

    # Category operations

    async def add_category(self, label: str, color: Optional[str] = None) -> Category:
        return await self.category_book.add(label, color)

    async def remove_category(self, category_id: str) -> None:
        await self.category_book.remove(category_id)
