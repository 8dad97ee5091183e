"""Optimistic mutation pipeline for tasks."""
from __future__ import annotations

import logging
import random
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Mapping, Optional, Union

from taskboard.config import settings
from taskboard.core.exceptions import RemoteRejectionError, ScopeError
from taskboard.integrations.remote_store import RemoteStore
from taskboard.schemas.sync import MutationResult, SyncStatus
from taskboard.schemas.task import Task, TaskDraft, TaskUpdate, validate_payload
from taskboard.services.capability_prober import CapabilityProber, RemoteCapabilities, capability_prober
from taskboard.services.mapper import task_mapper
from taskboard.services.replica import TaskReplica

logger = logging.getLogger(__name__)

# Fields the user edits directly; what a create or a retried update sends.
INTENT_FIELDS = frozenset(
    {"title", "description", "status", "priority", "is_complete", "archived_at", "due_date", "categories"}
)


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_temp_id(prefix: Optional[str] = None) -> str:
    """Return a fresh placeholder id carrying the temporary prefix."""
    prefix = settings.TEMP_ID_PREFIX if prefix is None else prefix
    try:
        token = uuid.uuid4().hex
    except NotImplementedError:
        # No OS entropy source available.
        token = f"{time.time_ns():x}{random.getrandbits(64):016x}"
    return f"{prefix}{token}"


def is_temp_id(task_id: Optional[str], prefix: Optional[str] = None) -> bool:
    prefix = settings.TEMP_ID_PREFIX if prefix is None else prefix
    return bool(task_id) and str(task_id).startswith(prefix)


class OptimisticMutationPipeline:
    """Applies task mutations locally first, then reconciles with the remote store.

    The pipeline owns the session's ``RemoteCapabilities``; every remote
    write goes through the capability prober with that single instance.
    Confirmations are merged last-writer-wins per field, with the local
    change winning over the server echo for the fields it touched.
    """

    def __init__(
        self,
        remote: RemoteStore,
        replica: Optional[TaskReplica] = None,
        *,
        scope_id: Optional[str] = None,
        capabilities: Optional[RemoteCapabilities] = None,
        table: Optional[str] = None,
        prober: Optional[CapabilityProber] = None,
    ):
        self.remote = remote
        self.replica = replica or TaskReplica()
        self.scope_id = scope_id
        self.capabilities = capabilities or RemoteCapabilities()
        self.table = table or settings.TASKS_TABLE
        self.prober = prober or capability_prober

    def _require_scope(self) -> str:
        if not self.scope_id:
            raise ScopeError()
        return self.scope_id

    async def create(self, draft: Union[TaskDraft, Mapping[str, Any]]) -> MutationResult:
        """Create a task optimistically under a temporary id."""
        draft = validate_payload(TaskDraft, draft)
        scope_id = self._require_scope()

        temp_id = generate_temp_id()
        optimistic = task_mapper.from_wire({**draft.model_dump(), "id": temp_id, "created_at": _utcnow()})
        self.replica.apply(optimistic, SyncStatus.SYNCING)
        logger.debug("Created %s optimistically", temp_id)

        return await self._send_create(temp_id, optimistic, scope_id)

    async def _send_create(self, temp_id: str, source: Task, scope_id: str) -> MutationResult:
        changes = source.model_dump(include=set(INTENT_FIELDS))

        async def insert(fields: Dict[str, Any]) -> Dict[str, Any]:
            return await self.remote.insert(self.table, {**fields, settings.SCOPE_COLUMN: scope_id})

        try:
            row = await self.prober.send(insert, changes, self.capabilities, include_timestamps=False)
        except RemoteRejectionError as exc:
            logger.warning("Create of %s failed: %s", temp_id, exc)
            # The optimistic task stays visible so the input is not lost.
            if self.replica.contains(temp_id):
                self.replica.mark(temp_id, SyncStatus.FAILED, str(exc))
            return MutationResult.failure(exc)

        created = task_mapper.from_wire(row)
        if created is None or not created.id:
            error = RemoteRejectionError("Remote store returned no row for the created task")
            if self.replica.contains(temp_id):
                self.replica.mark(temp_id, SyncStatus.FAILED, str(error))
            return MutationResult.failure(error)

        if self.scope_id != scope_id or not self.replica.contains(temp_id):
            logger.info("Dropping create confirmation for %s; %s is no longer held", created.id, temp_id)
        elif self.replica.was_deleted(created.id):
            logger.info("Task %s was deleted before its create confirmed", created.id)
            self.replica.discard(temp_id)
        else:
            self.replica.promote(temp_id, created)
            logger.debug("Promoted %s to %s", temp_id, created.id)
        return MutationResult.success(created)

    async def update(self, task_id: str, changes: Union[TaskUpdate, Mapping[str, Any]]) -> Optional[Task]:
        """Apply ``changes`` to a loaded task; returns None when not saved."""
        delta = validate_payload(TaskUpdate, changes).changes()
        current = self.replica.get(task_id)
        if current is None:
            logger.debug("Update ignored; task %s is not loaded", task_id)
            return None

        optimistic = current.model_copy(update=delta)
        if is_temp_id(task_id):
            # Not on the server yet: the pending create or its retry carries the edit.
            self.replica.edit(optimistic)
            return optimistic
        if not delta:
            return current

        position = self.replica.locate(task_id)
        self.replica.apply(optimistic, SyncStatus.SYNCING)

        async def send(fields: Dict[str, Any]) -> Dict[str, Any]:
            return await self.remote.update(self.table, task_id, fields)

        try:
            row = await self.prober.send(send, delta, self.capabilities)
        except RemoteRejectionError as exc:
            logger.warning("Update of %s failed: %s", task_id, exc)
            if self.replica.contains(task_id):
                self.replica.rollback(current, str(exc), position)
            return None

        return self._confirm(task_id, optimistic, row, delta.keys())

    def _confirm(
        self,
        task_id: str,
        intended: Task,
        row: Optional[Dict[str, Any]],
        keys: Iterable[str],
    ) -> Optional[Task]:
        if self.replica.was_deleted(task_id) or not self.replica.contains(task_id):
            logger.info("Dropping late confirmation for deleted task %s", task_id)
            return None

        confirmed = task_mapper.from_wire(row)
        if confirmed is None:
            merged = intended
        else:
            merged = confirmed.model_copy(update={key: getattr(intended, key) for key in keys})
        self.replica.apply(merged, SyncStatus.SYNCED)
        return merged

    async def retry(self, task_id: str) -> Optional[MutationResult]:
        """Re-send a failed task; None when there is nothing to retry."""
        if self.replica.status(task_id) != SyncStatus.FAILED:
            return None
        current = self.replica.get(task_id)
        if current is None:
            return None

        if is_temp_id(task_id):
            scope_id = self._require_scope()
            self.replica.mark(task_id, SyncStatus.SYNCING)
            return await self._send_create(task_id, current, scope_id)

        self.replica.mark(task_id, SyncStatus.SYNCING)
        changes = current.model_dump(include=set(INTENT_FIELDS))

        async def send(fields: Dict[str, Any]) -> Dict[str, Any]:
            return await self.remote.update(self.table, task_id, fields)

        try:
            row = await self.prober.send(send, changes, self.capabilities, include_timestamps=False)
        except RemoteRejectionError as exc:
            logger.warning("Retry of %s failed: %s", task_id, exc)
            if self.replica.contains(task_id):
                self.replica.mark(task_id, SyncStatus.FAILED, str(exc))
            return MutationResult.failure(exc)

        merged = self._confirm(task_id, current, row, changes.keys())
        return MutationResult.success(merged or task_mapper.from_wire(row) or current)

    async def delete(self, task_id: str) -> None:
        """Delete remotely, then locally. Remote errors propagate unchanged."""
        if is_temp_id(task_id):
            self.discard(task_id)
            return

        try:
            await self.remote.delete(self.table, task_id)
        except RemoteRejectionError as exc:
            logger.error("Delete of %s failed: %s", task_id, exc)
            raise
        self.replica.forget(task_id)

    def discard(self, task_id: str) -> bool:
        """Drop an unsaved temporary task; durable ids are left alone."""
        if not is_temp_id(task_id) or not self.replica.contains(task_id):
            return False
        self.replica.discard(task_id)
        logger.debug("Discarded unsaved task %s", task_id)
        return True

    async def refresh(self) -> int:
        """Replace the replica with the remote collection; returns the row count."""
        scope_id = self._require_scope()
        rows = await self.remote.select_all(self.table, scope_id, order_by="created_at", descending=True)
        tasks = [task_mapper.from_wire(row) for row in rows]
        self.replica.replace_all(task for task in tasks if task is not None)
        return len(rows)
