"""Pytest configuration and fixtures."""
import os

os.environ.setdefault("REMOTE_MODE", "stub")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402

from taskboard.config import settings  # noqa: E402
from taskboard.integrations.push_channel import InMemoryPushHub  # noqa: E402
from taskboard.integrations.remote_store import StubRemoteStore  # noqa: E402
from taskboard.services.board_session import TaskBoardSession  # noqa: E402
from taskboard.services.replica import TaskReplica  # noqa: E402
from taskboard.services.sync_pipeline import OptimisticMutationPipeline  # noqa: E402

SCOPE_ID = "vault-test"


def seed_task(remote: StubRemoteStore, scope_id: str = SCOPE_ID, **fields):
    """Store a task row on the stub remote without broadcasting it."""
    row = {
        "title": "Seeded task",
        "description": "",
        "status": "backlog",
        "priority": "medium",
        "is_complete": False,
        "categories": [],
        settings.SCOPE_COLUMN: scope_id,
    }
    row.update(fields)
    return remote.seed(settings.TASKS_TABLE, row)


@pytest.fixture
def push_hub():
    """In-memory push hub."""
    return InMemoryPushHub()


@pytest.fixture
def remote(push_hub):
    """Stub remote store broadcasting to the push hub."""
    return StubRemoteStore(push_hub=push_hub)


@pytest.fixture
def replica():
    """Empty task replica."""
    return TaskReplica()


@pytest.fixture
def pipeline(remote, replica):
    """Pipeline bound to the test scope, without push subscriptions."""
    return OptimisticMutationPipeline(remote, replica, scope_id=SCOPE_ID)


@pytest_asyncio.fixture
async def session(remote, push_hub):
    """Board session opened on the test scope."""
    board = TaskBoardSession(remote, push_hub)
    await board.open(SCOPE_ID)
    yield board
    board.close()
