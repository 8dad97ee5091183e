"""Category replica for the open scope."""
from __future__ import annotations

import logging
from typing import List, Optional

from taskboard.config import settings
from taskboard.core.exceptions import RemoteRejectionError, ScopeError, ValidationError
from taskboard.integrations.push_channel import EventKind, RealtimeEvent
from taskboard.integrations.remote_store import RemoteStore
from taskboard.schemas.category import Category
from taskboard.services.mapper import category_mapper

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES = [
    {"label": "work", "color": "#2563eb"},
    {"label": "personal", "color": "#059669"},
    {"label": "errands", "color": "#d97706"},
    {"label": "learning", "color": "#9333ea"},
]


class CategoryBook:
    """Scope categories kept sorted by label.

    Removing a category leaves task references to it in place.
    """

    def __init__(self, remote: RemoteStore, *, table: Optional[str] = None):
        self.remote = remote
        self.table = table or settings.CATEGORIES_TABLE
        self.scope_id: Optional[str] = None
        self._categories: List[Category] = []

    @property
    def categories(self) -> List[Category]:
        return list(self._categories)

    def get(self, category_id: str) -> Optional[Category]:
        for category in self._categories:
            if category.id == category_id:
                return category
        return None

    def find_by_label(self, label: str) -> Optional[Category]:
        key = label.strip().lower()
        for category in self._categories:
            if category.label.lower() == key:
                return category
        return None

    def _require_scope(self) -> str:
        if not self.scope_id:
            raise ScopeError()
        return self.scope_id

    def _sort(self) -> None:
        self._categories.sort(key=lambda category: category.label)

    def _put(self, category: Category) -> None:
        self._categories = [item for item in self._categories if item.id != category.id]
        self._categories.append(category)
        self._sort()

    async def load(self, scope_id: str) -> List[Category]:
        """Fetch the scope's categories, seeding defaults for an empty scope."""
        self.scope_id = scope_id
        rows = await self.remote.select_all(self.table, scope_id, order_by="name", descending=False)

        if not rows:
            logger.info("Seeding default categories for scope %s", scope_id)
            rows = []
            for default in DEFAULT_CATEGORIES:
                rows.append(
                    await self.remote.insert(
                        self.table,
                        category_mapper.to_wire(default["label"], default["color"], scope_id),
                    )
                )

        self._categories = [category for category in map(category_mapper.from_wire, rows) if category]
        self._sort()
        return self.categories

    async def add(self, label: str, color: Optional[str] = None) -> Category:
        """Create a category, or return the existing one with the same label."""
        normalized = (label or "").strip()
        if not normalized:
            raise ValidationError("Category label must not be empty")

        existing = self.find_by_label(normalized)
        if existing:
            return existing

        scope_id = self._require_scope()
        row = await self.remote.insert(
            self.table,
            category_mapper.to_wire(normalized, color or settings.NEW_CATEGORY_COLOR, scope_id),
        )
        created = category_mapper.from_wire(row)
        if created is None or not created.id:
            raise RemoteRejectionError("Remote store returned no row for the created category")
        self._put(created)
        return created

    async def remove(self, category_id: str) -> None:
        """Delete a category remotely, then locally."""
        if not category_id:
            return
        try:
            await self.remote.delete(self.table, category_id)
        except RemoteRejectionError as exc:
            logger.error("Delete of category %s failed: %s", category_id, exc)
            raise
        self._categories = [category for category in self._categories if category.id != category_id]

    def apply_event(self, event: RealtimeEvent) -> None:
        record_id = event.record_id
        if record_id is None:
            return
        if event.kind == EventKind.DELETE:
            self._categories = [category for category in self._categories if category.id != record_id]
            return
        category = category_mapper.from_wire(event.new)
        if category is not None:
            self._put(category)

    def clear(self) -> None:
        self.scope_id = None
        self._categories = []
