"""Tests for the optimistic mutation pipeline."""
import copy

import pytest

from taskboard.config import settings
from taskboard.core.exceptions import RemoteRejectionError, ScopeError, ValidationError
from taskboard.integrations.remote_store import StubRemoteStore
from taskboard.schemas.sync import SyncStatus
from taskboard.services.sync_pipeline import (
    OptimisticMutationPipeline,
    generate_temp_id,
    is_temp_id,
)

from conftest import SCOPE_ID, seed_task

TABLE = settings.TASKS_TABLE


def test_temp_ids_are_prefixed_and_unique():
    generated = {generate_temp_id() for _ in range(200)}

    assert len(generated) == 200
    assert all(is_temp_id(task_id) for task_id in generated)
    assert not is_temp_id("3f1c0b7e-7b0e-4c1e-9f0a-2d6c1c3a9b11")
    assert not is_temp_id(None)


@pytest.mark.asyncio
async def test_create_task_success(pipeline, replica):
    """A clean create returns the durable task with defaults filled."""
    result = await pipeline.create({"title": "Buy milk", "dueDate": "2024-05-01"})

    assert result.ok is True
    task = result.task
    assert task.status == "backlog"
    assert task.priority == "medium"
    assert task.due_date == "2024-05-01"
    assert not is_temp_id(task.id)
    assert replica.status(task.id) == SyncStatus.SYNCED
    assert [item.id for item in replica.active] == [task.id]
    assert len(replica.ledger) == 1


@pytest.mark.asyncio
async def test_create_sends_scope_and_omits_derived_timestamps(pipeline, remote):
    await pipeline.create({"title": "Buy milk", "categories": ["c1"]})

    (payload,) = remote.calls_for("insert", TABLE)
    assert payload[settings.SCOPE_COLUMN] == SCOPE_ID
    assert payload["title"] == "Buy milk"
    assert payload["categories"] == ["c1"]
    assert "created_at" not in payload
    assert "id" not in payload


@pytest.mark.asyncio
async def test_create_rejects_blank_title_before_remote_call(pipeline, remote, replica):
    with pytest.raises(ValidationError):
        await pipeline.create({"title": "   "})

    assert remote.calls == []
    assert len(replica.store) == 0
    assert len(replica.ledger) == 0


@pytest.mark.asyncio
async def test_create_requires_scope(remote, replica):
    pipeline = OptimisticMutationPipeline(remote, replica)

    with pytest.raises(ScopeError):
        await pipeline.create({"title": "Buy milk"})
    assert len(replica.store) == 0


@pytest.mark.asyncio
async def test_create_failure_keeps_optimistic_task(pipeline, remote, replica):
    """Typed input stays visible and is flagged failed."""
    remote.fail_next("insert", RemoteRejectionError("network error"))

    result = await pipeline.create({"title": "Buy milk"})

    assert result.ok is False
    assert result.error_message == "network error"
    (task,) = replica.active
    assert is_temp_id(task.id)
    assert task.title == "Buy milk"
    assert replica.status(task.id) == SyncStatus.FAILED
    assert replica.error(task.id) == "network error"


@pytest.mark.asyncio
async def test_update_failure_rolls_back(pipeline, remote, replica):
    """A failed update restores the exact pre-update replica."""
    seed_task(remote, title="Older")
    row = seed_task(remote, title="T1", status="backlog")
    await pipeline.refresh()
    before_active = replica.active
    before_archived = replica.archived

    remote.fail_next("update", RemoteRejectionError("network error"))
    result = await pipeline.update(row["id"], {"status": "completed"})

    assert result is None
    assert replica.active == before_active
    assert replica.archived == before_archived
    assert replica.get(row["id"]).status == "backlog"
    assert replica.status(row["id"]) == SyncStatus.FAILED
    assert replica.error(row["id"]) == "network error"


@pytest.mark.asyncio
async def test_failed_archive_restores_original_position(pipeline, remote, replica):
    """A task moved between collections goes back to its old index."""
    older = seed_task(remote, title="Older")
    seed_task(remote, title="Newer")
    await pipeline.refresh()
    before_active = replica.active
    assert [task.title for task in before_active] == ["Newer", "Older"]

    remote.fail_next("update", RemoteRejectionError("network error"))
    result = await pipeline.update(older["id"], {"archived_at": "2026-01-01T00:00:00+00:00"})

    assert result is None
    assert replica.active == before_active
    assert replica.archived == []
    assert replica.status(older["id"]) == SyncStatus.FAILED


@pytest.mark.asyncio
async def test_failed_restore_keeps_archived_order(pipeline, remote, replica):
    first = seed_task(remote, title="A", archived_at="2026-01-01T00:00:00+00:00")
    seed_task(remote, title="B", archived_at="2026-01-02T00:00:00+00:00")
    await pipeline.refresh()
    before_archived = replica.archived

    remote.fail_next("update", RemoteRejectionError("network error"))
    await pipeline.update(first["id"], {"archived_at": None})

    assert replica.archived == before_archived
    assert replica.active == []


@pytest.mark.asyncio
async def test_update_sends_only_the_delta(pipeline, remote, replica):
    row = seed_task(remote, title="T1", description="keep me")
    await pipeline.refresh()

    updated = await pipeline.update(row["id"], {"status": "active"})

    assert updated.status == "active"
    assert updated.description == "keep me"
    assert remote.calls_for("update", TABLE) == [{"id": row["id"], "status": "active"}]
    assert replica.status(row["id"]) == SyncStatus.SYNCED


class StaleEchoRemote(StubRemoteStore):
    """Answers updates with the row as it was before the write."""

    async def update(self, table, row_id, fields):
        before = copy.deepcopy(self.tables[table][row_id])
        await super().update(table, row_id, fields)
        return before


@pytest.mark.asyncio
async def test_update_keeps_local_fields_over_stale_echo(replica):
    remote = StaleEchoRemote()
    pipeline = OptimisticMutationPipeline(remote, replica, scope_id=SCOPE_ID)
    row = seed_task(remote, title="Old title", priority="low")
    await pipeline.refresh()

    updated = await pipeline.update(row["id"], {"title": "New title"})

    assert updated.title == "New title"
    assert updated.priority == "low"
    assert replica.get(row["id"]).title == "New title"
    assert replica.status(row["id"]) == SyncStatus.SYNCED


@pytest.mark.asyncio
async def test_update_of_unknown_task_is_noop(pipeline, remote):
    result = await pipeline.update("not-loaded", {"title": "x"})

    assert result is None
    assert remote.calls == []


@pytest.mark.asyncio
async def test_update_rejects_invalid_changes(pipeline, remote, replica):
    row = seed_task(remote)
    await pipeline.refresh()

    with pytest.raises(ValidationError):
        await pipeline.update(row["id"], {"priority": "urgent"})
    with pytest.raises(ValidationError):
        await pipeline.update(row["id"], {"status": None})

    assert remote.calls_for("update") == []
    assert replica.status(row["id"]) == SyncStatus.SYNCED


@pytest.mark.asyncio
async def test_update_of_unsaved_task_stays_local(pipeline, remote, replica):
    remote.fail_next("insert")
    result = await pipeline.create({"title": "Draft"})
    temp_id = replica.active[0].id

    updated = await pipeline.update(temp_id, {"title": "Draft v2"})

    assert updated.title == "Draft v2"
    assert remote.calls_for("update") == []
    assert replica.status(temp_id) == SyncStatus.FAILED
    assert result.ok is False


@pytest.mark.asyncio
async def test_retry_of_failed_create_promotes_to_durable_id(pipeline, remote, replica):
    remote.fail_next("insert", RemoteRejectionError("network error"))
    await pipeline.create({"title": "Buy milk"})
    temp_id = replica.active[0].id

    result = await pipeline.retry(temp_id)

    assert result.ok is True
    durable_id = result.task.id
    assert [task.id for task in replica.active] == [durable_id]
    assert replica.archived == []
    assert temp_id not in replica.ledger
    assert replica.get(temp_id) is None
    assert replica.status(durable_id) == SyncStatus.SYNCED
    assert len(remote.calls_for("insert")) == 2


@pytest.mark.asyncio
async def test_retry_of_failed_update_sends_current_values(pipeline, remote, replica):
    row = seed_task(remote, title="T1", status="backlog", priority="high")
    await pipeline.refresh()
    remote.fail_next("update", RemoteRejectionError("network error"))
    await pipeline.update(row["id"], {"title": "T1 edited"})

    result = await pipeline.retry(row["id"])

    assert result.ok is True
    sent = remote.calls_for("update")[-1]
    assert sent["title"] == "T1"
    assert sent["priority"] == "high"
    assert "created_at" not in sent
    assert replica.status(row["id"]) == SyncStatus.SYNCED
    assert replica.error(row["id"]) is None


@pytest.mark.asyncio
async def test_retry_failure_stays_failed(pipeline, remote, replica):
    remote.fail_next("insert")
    await pipeline.create({"title": "Buy milk"})
    temp_id = replica.active[0].id
    remote.fail_next("insert", RemoteRejectionError("still offline"))

    result = await pipeline.retry(temp_id)

    assert result.ok is False
    assert replica.status(temp_id) == SyncStatus.FAILED
    assert replica.error(temp_id) == "still offline"


@pytest.mark.asyncio
async def test_retry_requires_failed_status(pipeline, remote):
    row = seed_task(remote)
    await pipeline.refresh()

    assert await pipeline.retry(row["id"]) is None
    assert await pipeline.retry("unknown") is None
    assert remote.calls_for("update") == []


@pytest.mark.asyncio
async def test_delete_removes_task_and_ledger_entry(pipeline, remote, replica):
    row = seed_task(remote, archived_at="2024-05-02T10:00:00+00:00")
    await pipeline.refresh()

    await pipeline.delete(row["id"])

    assert replica.get(row["id"]) is None
    assert replica.status(row["id"]) is None
    assert row["id"] not in remote.tables[TABLE]


@pytest.mark.asyncio
async def test_delete_failure_is_raised_and_leaves_task(pipeline, remote, replica):
    row = seed_task(remote)
    await pipeline.refresh()
    remote.fail_next("delete", RemoteRejectionError("permission denied"))

    with pytest.raises(RemoteRejectionError):
        await pipeline.delete(row["id"])

    assert replica.get(row["id"]) is not None
    assert replica.status(row["id"]) == SyncStatus.SYNCED


@pytest.mark.asyncio
async def test_delete_of_unsaved_task_discards_locally(pipeline, remote, replica):
    remote.fail_next("insert")
    await pipeline.create({"title": "Draft"})
    temp_id = replica.active[0].id

    await pipeline.delete(temp_id)

    assert len(replica.store) == 0
    assert len(replica.ledger) == 0
    assert remote.calls_for("delete") == []
    assert pipeline.discard(temp_id) is False


@pytest.mark.asyncio
async def test_refresh_orders_newest_first(pipeline, remote, replica):
    first = seed_task(remote, title="first", created_at="2024-01-01T00:00:00+00:00")
    second = seed_task(remote, title="second", created_at="2024-02-01T00:00:00+00:00")
    seed_task(remote, scope_id="someone-else")

    count = await pipeline.refresh()

    assert count == 2
    assert [task.id for task in replica.active] == [second["id"], first["id"]]
