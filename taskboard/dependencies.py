"""Wiring helpers for building a board session from settings."""
from typing import Optional

from taskboard.config import settings
from taskboard.core.logging import setup_logging
from taskboard.integrations.push_channel import InMemoryPushHub, PushChannel
from taskboard.integrations.remote_store import RemoteMode, get_remote_store
from taskboard.services.board_session import TaskBoardSession


def build_session(push_channel: Optional[PushChannel] = None, *, configure_logging: bool = False) -> TaskBoardSession:
    """Create a session for the configured REMOTE_MODE.

    Stub mode wires the in-memory store to an in-memory hub. Live mode
    needs the caller's push channel.
    """
    if configure_logging:
        setup_logging()

    mode = RemoteMode(settings.REMOTE_MODE.lower())
    if mode == RemoteMode.STUB:
        hub = push_channel if isinstance(push_channel, InMemoryPushHub) else InMemoryPushHub()
        return TaskBoardSession(get_remote_store(push_hub=hub), hub)

    if push_channel is None:
        raise ValueError("A push channel is required in live mode")
    return TaskBoardSession(get_remote_store(), push_channel)
