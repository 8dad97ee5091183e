"""Remote store integration with stub and live modes."""
from __future__ import annotations

import asyncio
import copy
import itertools
import logging
import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple
from uuid import uuid4

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from taskboard.config import settings
from taskboard.core.exceptions import RemoteRejectionError, RemoteUnavailableError, SchemaMismatchError
from taskboard.integrations.push_channel import EventKind, InMemoryPushHub

logger = logging.getLogger(__name__)

# PostgREST "column not in schema cache" and Postgres "undefined column".
SCHEMA_MISMATCH_CODES = {"PGRST204", "42703"}
_COLUMN_PATTERNS = (
    re.compile(r"'(?P<column>\w+)' column"),
    re.compile(r'column "?(?:\w+\.)?(?P<column>\w+)"? (?:of relation|does not exist)'),
)


class RemoteMode(str, Enum):
    """Remote store mode."""

    STUB = "stub"
    LIVE = "live"


class RemoteStore(Protocol):
    """Operations the sync engine needs from the authoritative store."""

    async def select_all(
        self,
        table: str,
        scope_id: str,
        *,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> List[Dict[str, Any]]: ...

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]: ...

    async def update(self, table: str, row_id: str, fields: Dict[str, Any]) -> Dict[str, Any]: ...

    async def delete(self, table: str, row_id: str) -> None: ...

    async def aclose(self) -> None: ...


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def extract_column(message: str) -> Optional[str]:
    """Pull the offending column name out of a schema error message."""
    for pattern in _COLUMN_PATTERNS:
        match = pattern.search(message or "")
        if match:
            return match.group("column")
    return None


def rejection_from_payload(status_code: Optional[int], payload: Any) -> RemoteRejectionError:
    """Map an error body to the engine's exception types."""
    if not isinstance(payload, dict):
        payload = {"message": str(payload) if payload else None}
    code = payload.get("code")
    message = payload.get("message") or payload.get("error") or f"Remote store returned {status_code}"
    if code is not None:
        code = str(code)

    column = extract_column(message)
    if column and (code in SCHEMA_MISMATCH_CODES or "schema cache" in message):
        return SchemaMismatchError(column, message, status_code=status_code, code=code)
    return RemoteRejectionError(message, status_code=status_code, code=code)


class RestRemoteStore:
    """PostgREST-compatible remote store over httpx."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        retry_attempts: Optional[int] = None,
        retry_wait_min: Optional[float] = None,
        retry_wait_max: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base_url = base_url or settings.REMOTE_BASE_URL
        if not base_url:
            raise ValueError("Remote base URL not configured")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key if api_key is not None else settings.REMOTE_API_KEY
        self.retry_attempts = retry_attempts or settings.REMOTE_RETRY_ATTEMPTS
        self.retry_wait_min = settings.REMOTE_RETRY_WAIT_MIN if retry_wait_min is None else retry_wait_min
        self.retry_wait_max = settings.REMOTE_RETRY_WAIT_MAX if retry_wait_max is None else retry_wait_max
        self._client = httpx.AsyncClient(
            base_url=f"{self.base_url}/rest/v1/",
            headers=self._build_headers(),
            timeout=timeout or settings.REMOTE_TIMEOUT,
            transport=transport,
        )

    def _build_headers(self) -> Dict[str, str]:
        headers: Dict[str, str] = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        *,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        return_rows: bool = False,
    ) -> Any:
        headers = {"Prefer": "return=representation"} if return_rows else None
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=self.retry_wait_min, max=self.retry_wait_max),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.request(
                        method, table, params=params, json=json, headers=headers
                    )
        except httpx.TransportError as exc:
            logger.error("Remote %s %s unreachable: %s", method, table, exc)
            raise RemoteUnavailableError(str(exc) or None) from exc

        if response.is_error:
            try:
                payload = response.json()
            except ValueError:
                payload = response.text
            error = rejection_from_payload(response.status_code, payload)
            logger.warning("Remote %s %s rejected (%s): %s", method, table, response.status_code, error)
            raise error

        if not response.content:
            return None
        return response.json()

    @staticmethod
    def _single(rows: Any, table: str) -> Dict[str, Any]:
        if isinstance(rows, list):
            if not rows:
                raise RemoteRejectionError(f"No {table} row returned", status_code=404)
            return rows[0]
        return rows

    async def select_all(
        self,
        table: str,
        scope_id: str,
        *,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> List[Dict[str, Any]]:
        params = {
            "select": "*",
            settings.SCOPE_COLUMN: f"eq.{scope_id}",
            "order": f"{order_by}.{'desc' if descending else 'asc'}",
        }
        rows = await self._request("GET", table, params=params)
        return rows or []

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        rows = await self._request("POST", table, json=[row], return_rows=True)
        return self._single(rows, table)

    async def update(self, table: str, row_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        rows = await self._request(
            "PATCH", table, params={"id": f"eq.{row_id}"}, json=fields, return_rows=True
        )
        return self._single(rows, table)

    async def delete(self, table: str, row_id: str) -> None:
        await self._request("DELETE", table, params={"id": f"eq.{row_id}"})

    async def aclose(self) -> None:
        await self._client.aclose()


class StubRemoteStore:
    """In-memory authoritative store that broadcasts its writes.

    ``unsupported_columns`` simulates an older schema per table.
    ``fail_next`` queues one-shot errors and ``block`` holds an operation
    until the returned event is set.
    """

    def __init__(
        self,
        push_hub: Optional[InMemoryPushHub] = None,
        *,
        unsupported_columns: Optional[Dict[str, Iterable[str]]] = None,
    ):
        self.push_hub = push_hub
        self.unsupported_columns: Dict[str, set] = {
            table: set(columns) for table, columns in (unsupported_columns or {}).items()
        }
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self.calls: List[Tuple[str, str, Any]] = []
        self._failures: Dict[str, List[Exception]] = {}
        self._gates: Dict[str, asyncio.Event] = {}
        self._sequence = itertools.count()
        self._order: Dict[str, int] = {}

    # Test controls

    def fail_next(self, operation: str, error: Optional[Exception] = None) -> None:
        self._failures.setdefault(operation, []).append(error or RemoteRejectionError())

    def block(self, operation: str) -> asyncio.Event:
        gate = asyncio.Event()
        self._gates[operation] = gate
        return gate

    def seed(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        """Store a row directly, without events or call records."""
        record = self._new_record(row)
        self.tables.setdefault(table, {})[record["id"]] = record
        return copy.deepcopy(record)

    def calls_for(self, operation: str, table: Optional[str] = None) -> List[Any]:
        return [
            payload
            for op, call_table, payload in self.calls
            if op == operation and (table is None or call_table == table)
        ]

    # RemoteStore

    async def select_all(
        self,
        table: str,
        scope_id: str,
        *,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> List[Dict[str, Any]]:
        await self._enter("select", table, {"scope_id": scope_id})
        rows = [
            row
            for row in self.tables.get(table, {}).values()
            if str(row.get(settings.SCOPE_COLUMN)) == str(scope_id)
        ]
        rows.sort(
            key=lambda row: (row.get(order_by) is not None, row.get(order_by) or "", self._order[row["id"]]),
            reverse=descending,
        )
        return copy.deepcopy(rows)

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter("insert", table, copy.deepcopy(row))
        self._check_columns(table, row)
        record = self._new_record(row)
        self.tables.setdefault(table, {})[record["id"]] = record
        self._broadcast(EventKind.INSERT, table, new=record)
        return copy.deepcopy(record)

    async def update(self, table: str, row_id: str, fields: Dict[str, Any]) -> Dict[str, Any]:
        await self._enter("update", table, {"id": row_id, **copy.deepcopy(fields)})
        self._check_columns(table, fields)
        record = self.tables.get(table, {}).get(row_id)
        if record is None:
            raise RemoteRejectionError(f"No {table} row with id {row_id}", status_code=404, code="PGRST116")
        record.update(copy.deepcopy(fields))
        record["updated_at"] = _utcnow()
        self._broadcast(EventKind.UPDATE, table, new=record)
        return copy.deepcopy(record)

    async def delete(self, table: str, row_id: str) -> None:
        await self._enter("delete", table, {"id": row_id})
        record = self.tables.get(table, {}).pop(row_id, None)
        if record is not None:
            self._broadcast(EventKind.DELETE, table, old={"id": row_id})

    async def aclose(self) -> None:
        return None

    # Internals

    def _new_record(self, row: Dict[str, Any]) -> Dict[str, Any]:
        now = _utcnow()
        record = copy.deepcopy(row)
        record["id"] = str(record.get("id") or uuid4())
        record.setdefault("created_at", now)
        record["updated_at"] = now
        self._order[record["id"]] = next(self._sequence)
        return record

    async def _enter(self, operation: str, table: str, payload: Any) -> None:
        self.calls.append((operation, table, payload))
        gate = self._gates.get(operation)
        if gate is not None:
            await gate.wait()
            self._gates.pop(operation, None)
        failures = self._failures.get(operation)
        if failures:
            raise failures.pop(0)

    def _check_columns(self, table: str, row: Dict[str, Any]) -> None:
        for column in row:
            if column in self.unsupported_columns.get(table, ()):
                raise SchemaMismatchError(
                    column,
                    f"Could not find the '{column}' column of '{table}' in the schema cache",
                    code="PGRST204",
                )

    def _broadcast(self, kind: EventKind, table: str, *, new=None, old=None) -> None:
        if self.push_hub is None:
            return
        self.push_hub.emit(
            kind.value,
            table,
            new=copy.deepcopy(new) if new is not None else None,
            old=copy.deepcopy(old) if old is not None else None,
        )


def get_remote_store(push_hub: Optional[InMemoryPushHub] = None) -> RemoteStore:
    """Build the remote store selected by REMOTE_MODE."""
    mode = RemoteMode(settings.REMOTE_MODE.lower())
    if mode == RemoteMode.STUB:
        return StubRemoteStore(push_hub=push_hub)
    return RestRemoteStore()
