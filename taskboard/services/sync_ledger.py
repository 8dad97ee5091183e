"""Per-entity sync status tracking."""
from __future__ import annotations

from typing import Dict, Optional

from taskboard.schemas.sync import SyncEntry, SyncStatus


class SyncLedger:
    """Maps entity ids (durable or temporary) to their sync status."""

    def __init__(self) -> None:
        self._entries: Dict[str, SyncEntry] = {}

    def set_status(self, entity_id: str, status: SyncStatus, error: Optional[str] = None) -> None:
        # Errors only make sense on failed entries.
        if status != SyncStatus.FAILED:
            error = None
        self._entries[entity_id] = SyncEntry(status=SyncStatus(status), error=error)

    def get_status(self, entity_id: str) -> Optional[SyncStatus]:
        entry = self._entries.get(entity_id)
        return entry.status if entry else None

    def get_error(self, entity_id: str) -> Optional[str]:
        entry = self._entries.get(entity_id)
        return entry.error if entry else None

    def clear(self, entity_id: str) -> None:
        self._entries.pop(entity_id, None)

    def rekey(self, old_id: str, new_id: str) -> None:
        """Move the entry for ``old_id`` to ``new_id``."""
        entry = self._entries.pop(old_id, None)
        if entry is not None:
            self._entries[new_id] = entry

    def reset(self) -> None:
        self._entries.clear()

    def __contains__(self, entity_id: object) -> bool:
        return entity_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def snapshot(self) -> Dict[str, SyncEntry]:
        return dict(self._entries)
