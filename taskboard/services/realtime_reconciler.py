"""Merges pushed task changes into the replica."""
from __future__ import annotations

import logging

from taskboard.integrations.push_channel import EventKind, RealtimeEvent
from taskboard.schemas.sync import SyncStatus
from taskboard.services.mapper import task_mapper
from taskboard.services.replica import TaskReplica

logger = logging.getLogger(__name__)


class RealtimeReconciler:
    """Applies insert, update and delete notifications for tasks.

    Notifications may repeat; applying the same row twice leaves the
    replica unchanged. Upserts for ids already deleted are dropped so a
    late notification cannot bring a task back.
    """

    def __init__(self, replica: TaskReplica):
        self.replica = replica

    def apply(self, event: RealtimeEvent) -> None:
        record_id = event.record_id
        if record_id is None:
            logger.debug("Ignoring %s event without id on %s", event.kind, event.table)
            return

        if event.kind == EventKind.DELETE:
            logger.debug("Pushed delete for %s", record_id)
            self.replica.forget(record_id)
            return

        if self.replica.was_deleted(record_id):
            logger.debug("Ignoring pushed %s for deleted task %s", event.kind, record_id)
            return

        task = task_mapper.from_wire(event.new)
        if task is None:
            return
        logger.debug("Pushed %s for %s", event.kind, record_id)
        self.replica.apply(task, SyncStatus.SYNCED)

    __call__ = apply
