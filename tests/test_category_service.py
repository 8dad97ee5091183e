"""Tests for the category book."""
import pytest

from taskboard.config import settings
from taskboard.core.exceptions import ScopeError, ValidationError
from taskboard.integrations.push_channel import RealtimeEvent
from taskboard.services.category_service import DEFAULT_CATEGORIES, CategoryBook

from conftest import SCOPE_ID

TABLE = settings.CATEGORIES_TABLE


@pytest.mark.asyncio
async def test_load_seeds_defaults_for_empty_scope(remote):
    book = CategoryBook(remote)

    categories = await book.load(SCOPE_ID)

    assert len(remote.calls_for("insert", TABLE)) == len(DEFAULT_CATEGORIES)
    assert [category.label for category in categories] == ["errands", "learning", "personal", "work"]
    work = book.find_by_label("WORK")
    assert work.color == "#2563eb"


@pytest.mark.asyncio
async def test_load_keeps_existing_categories(remote):
    remote.seed(TABLE, {"name": "garden", "color": "#00ff00", settings.SCOPE_COLUMN: SCOPE_ID})
    book = CategoryBook(remote)

    categories = await book.load(SCOPE_ID)

    assert [category.label for category in categories] == ["garden"]
    assert remote.calls_for("insert") == []


@pytest.mark.asyncio
async def test_add_returns_existing_label_without_remote_call(remote):
    book = CategoryBook(remote)
    await book.load(SCOPE_ID)
    inserts = len(remote.calls_for("insert"))

    existing = await book.add("  Work ")

    assert existing.label == "work"
    assert len(remote.calls_for("insert")) == inserts


@pytest.mark.asyncio
async def test_add_normalises_and_sorts(remote):
    book = CategoryBook(remote)
    await book.load(SCOPE_ID)

    created = await book.add("  Fitness ")

    assert created.label == "fitness"
    assert created.color == settings.NEW_CATEGORY_COLOR
    assert remote.calls_for("insert", TABLE)[-1]["name"] == "fitness"
    assert [category.label for category in book.categories] == [
        "errands",
        "fitness",
        "learning",
        "personal",
        "work",
    ]


@pytest.mark.asyncio
async def test_add_validates_label(remote):
    book = CategoryBook(remote)

    with pytest.raises(ValidationError):
        await book.add("   ")
    with pytest.raises(ScopeError):
        await book.add("Fitness")


@pytest.mark.asyncio
async def test_remove_deletes_remotely(remote):
    book = CategoryBook(remote)
    await book.load(SCOPE_ID)
    work = book.find_by_label("work")

    await book.remove(work.id)

    assert book.get(work.id) is None
    assert work.id not in remote.tables[TABLE]


def test_apply_event_replaces_and_removes(remote):
    book = CategoryBook(remote)

    book.apply_event(RealtimeEvent(kind="insert", table=TABLE, new={"id": "2", "name": "zeta"}))
    book.apply_event(RealtimeEvent(kind="insert", table=TABLE, new={"id": "1", "name": "alpha"}))
    book.apply_event(RealtimeEvent(kind="update", table=TABLE, new={"id": "2", "name": "beta", "color": "#111111"}))

    assert [(category.id, category.label) for category in book.categories] == [("1", "alpha"), ("2", "beta")]
    assert book.get("2").color == "#111111"

    book.apply_event(RealtimeEvent(kind="delete", table=TABLE, old={"id": "1"}))
    assert [category.id for category in book.categories] == ["2"]
