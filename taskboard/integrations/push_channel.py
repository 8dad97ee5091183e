"""Push-event channel for row changes."""
from __future__ import annotations

import asyncio
import inspect
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Protocol, Set, Tuple, Union

from pydantic import BaseModel

from taskboard.config import settings

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Kind of row change."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"


class RealtimeEvent(BaseModel):
    """Row change notification for one table."""

    kind: EventKind
    table: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    @property
    def record_id(self) -> Optional[str]:
        row = self.old if self.kind == EventKind.DELETE else self.new
        if not row or row.get("id") is None:
            return None
        return str(row["id"])

    @property
    def row(self) -> Optional[Dict[str, Any]]:
        return self.old if self.kind == EventKind.DELETE else self.new


EventHandler = Callable[[RealtimeEvent], Union[None, Awaitable[None]]]


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class PushChannel(Protocol):
    """Subscription source for table change events."""

    def subscribe(self, table: str, scope_id: str, handler: EventHandler) -> Subscription: ...


class HubSubscription:
    """Handle returned by InMemoryPushHub.subscribe."""

    def __init__(self, hub: "InMemoryPushHub", table: str, scope_id: str, handler: EventHandler):
        self.hub = hub
        self.table = table
        self.scope_id = scope_id
        self.handler = handler
        self.active = True

    def matches(self, event: RealtimeEvent) -> bool:
        if not self.active or event.table != self.table:
            return False
        row = event.row or {}
        scope = row.get(settings.SCOPE_COLUMN)
        # Delete payloads may carry only the primary key.
        return scope is None or str(scope) == str(self.scope_id)

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self.hub._detach(self)


class InMemoryPushHub:
    """Process-local fan-out of row changes to subscribers.

    ``hold()`` queues published events until ``release()``, which lets a
    caller reorder delivery against in-flight remote calls. Coroutine
    handlers are scheduled on the running loop; ``drain()`` awaits them.
    """

    def __init__(self) -> None:
        self._subscriptions: List[HubSubscription] = []
        self._held: Optional[List[RealtimeEvent]] = None
        self._pending: Set["asyncio.Future[Any]"] = set()

    def subscribe(self, table: str, scope_id: str, handler: EventHandler) -> HubSubscription:
        subscription = HubSubscription(self, table, scope_id, handler)
        self._subscriptions.append(subscription)
        logger.debug("Subscribed to %s for scope %s", table, scope_id)
        return subscription

    def _detach(self, subscription: HubSubscription) -> None:
        self._subscriptions = [item for item in self._subscriptions if item is not subscription]
        logger.debug("Unsubscribed from %s for scope %s", subscription.table, subscription.scope_id)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: RealtimeEvent) -> None:
        if self._held is not None:
            self._held.append(event)
            return
        self._deliver(event)

    def emit(self, kind: str, table: str, *, new: Optional[Dict[str, Any]] = None, old: Optional[Dict[str, Any]] = None) -> None:
        self.publish(RealtimeEvent(kind=kind, table=table, new=new, old=old))

    def hold(self) -> None:
        if self._held is None:
            self._held = []

    def release(self) -> Tuple[RealtimeEvent, ...]:
        """Deliver every held event in publish order."""
        held, self._held = self._held or [], None
        for event in held:
            self._deliver(event)
        return tuple(held)

    def _deliver(self, event: RealtimeEvent) -> None:
        for subscription in list(self._subscriptions):
            if subscription.matches(event):
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    self._schedule(result)

    def _schedule(self, awaitable: Awaitable[Any]) -> None:
        future = asyncio.ensure_future(awaitable)
        self._pending.add(future)
        future.add_done_callback(self._finished)

    def _finished(self, future: "asyncio.Future[Any]") -> None:
        self._pending.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Push handler failed: %s", exc, exc_info=exc)

    async def drain(self) -> None:
        """Wait for every scheduled coroutine handler to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
