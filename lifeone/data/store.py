"""
LifeONE — Entity Store.

In-memory collections of contacts, schedule items, expenses, diary entries
and schedule categories, plus the trash that holds soft-deleted records.

Every mutation goes through this class so the invariants hold:
unique ids, the reserved ``default-uncategorized`` category always exists,
and deleting a category clears it from dependent schedule items.
"""

from __future__ import annotations

import copy
import logging
import re
from dataclasses import fields, replace
from datetime import datetime, timedelta, timezone

from lifeone.data.models import (
    UNCATEGORIZED_ID,
    Category,
    ChecklistItem,
    Contact,
    DiaryEntry,
    Expense,
    ScheduleItem,
    TrashItem,
    default_category,
    from_dict,
    new_id,
    to_dict,
)

logger = logging.getLogger(__name__)

COLLECTIONS = ("contacts", "schedule", "expenses", "diary")

RECORD_TYPES: dict[str, type] = {
    "contacts": Contact,
    "schedule": ScheduleItem,
    "expenses": Expense,
    "diary": DiaryEntry,
}

# collection name → TrashItem.type
TRASH_TYPES = {
    "contacts": "contact",
    "schedule": "schedule",
    "expenses": "expense",
    "diary": "diary",
}
_COLLECTION_BY_TRASH_TYPE = {v: k for k, v in TRASH_TYPES.items()}

_TAG_RE = re.compile(r"<[^>]+>")


class StoreError(Exception):
    """Raised on invalid store operations (reserved category, missing trash id …)."""


def record_label(record: object) -> str:
    """Human-readable label of a record: name, title, item or diary text."""
    for attr in ("name", "title", "item"):
        value = getattr(record, attr, None)
        if value:
            return str(value)
    entry = getattr(record, "entry", "") or ""
    text = _TAG_RE.sub(" ", entry)
    text = " ".join(text.split())
    return text[:50] or "(내용 없음)"


def find_category(categories: list[Category], name: str) -> Category | None:
    """Exact lookup after strip + casefold."""
    wanted = name.strip().casefold()
    for category in categories:
        if category.name.strip().casefold() == wanted:
            return category
    return None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EntityStore:
    """Per-user in-memory data: four collections, categories and trash."""

    def __init__(self) -> None:
        self.contacts: list[Contact] = []
        self.schedule: list[ScheduleItem] = []
        self.expenses: list[Expense] = []
        self.diary: list[DiaryEntry] = []
        self.categories: list[Category] = [default_category()]
        self.trash: list[TrashItem] = []

    # ------------------------------------------------------------------
    # Generic CRUD
    # ------------------------------------------------------------------

    def collection(self, name: str) -> list:
        if name not in COLLECTIONS:
            raise StoreError(f"Unknown collection: {name!r}")
        return getattr(self, name)

    def get(self, name: str, record_id: str):
        for record in self.collection(name):
            if record.id == record_id:
                return record
        return None

    def add(self, name: str, record):
        """Insert a record, assigning a new id when it has none."""
        items = self.collection(name)
        if not record.id:
            record.id = new_id()
        elif self.get(name, record.id) is not None:
            raise StoreError(f"Duplicate id {record.id!r} in {name}")
        items.append(record)
        logger.info("Added %s #%s '%s'", name, record.id, record_label(record))
        return record

    def update(self, name: str, record_id: str, changes: dict):
        """Overwrite only the given fields. Returns None for an unknown id."""
        record = self.get(name, record_id)
        if record is None:
            logger.debug("Update skipped: %s #%s not found", name, record_id)
            return None
        allowed = {f.name for f in fields(record)} - {"id"}
        for key, value in changes.items():
            if key in allowed:
                setattr(record, key, value)
            else:
                logger.debug("Ignoring unknown field %r for %s", key, name)
        logger.info("Updated %s #%s: %s", name, record_id, sorted(changes))
        return record

    def replace(self, name: str, record) -> bool:
        """Swap the stored record that has ``record.id`` for ``record``."""
        items = self.collection(name)
        for index, existing in enumerate(items):
            if existing.id == record.id:
                items[index] = record
                logger.info("Replaced %s #%s", name, record.id)
                return True
        return False

    def toggle_checklist_item(self, item_id: str) -> tuple[DiaryEntry, ChecklistItem]:
        """Flip ``completed`` on one checklist item, wherever it lives."""
        for entry in self.diary:
            for index, item in enumerate(entry.checklist_items):
                if item.id != item_id:
                    continue
                toggled = replace(item, completed=not item.completed)
                items = list(entry.checklist_items)
                items[index] = toggled
                self.update("diary", entry.id, {"checklist_items": items})
                return entry, toggled
        raise StoreError(f"Checklist item {item_id!r} not found")

    def delete(self, name: str, record_id: str, now: datetime | None = None) -> TrashItem | None:
        """Soft-delete: move the record into trash. Returns None for an unknown id."""
        items = self.collection(name)
        record = self.get(name, record_id)
        if record is None:
            logger.debug("Delete skipped: %s #%s not found", name, record_id)
            return None
        items.remove(record)
        trashed = TrashItem(
            id=new_id(),
            type=TRASH_TYPES[name],
            title=record_label(record),
            original_data=to_dict(record),
            deleted_at=(now or _utcnow()).isoformat(),
        )
        self.trash.insert(0, trashed)
        logger.info("Moved %s #%s to trash", name, record_id)
        return trashed

    # ------------------------------------------------------------------
    # Trash
    # ------------------------------------------------------------------

    def restore(self, trash_id: str):
        """Reinsert a trashed record with its original id."""
        trashed = self._find_trash(trash_id)
        if trashed is None:
            raise StoreError(f"Trash item {trash_id!r} not found")
        name = _COLLECTION_BY_TRASH_TYPE[trashed.type]
        record = from_dict(RECORD_TYPES[name], copy.deepcopy(trashed.original_data))
        if not self.replace(name, record):
            self.collection(name).append(record)
        self.trash.remove(trashed)
        logger.info("Restored %s #%s from trash", name, record.id)
        return record

    def delete_forever(self, trash_id: str) -> bool:
        trashed = self._find_trash(trash_id)
        if trashed is None:
            return False
        self.trash.remove(trashed)
        logger.info("Permanently deleted trash item #%s", trash_id)
        return True

    def empty_trash(self) -> int:
        count = len(self.trash)
        self.trash.clear()
        logger.info("Trash emptied (%d items)", count)
        return count

    def purge_expired_trash(self, now: datetime | None = None, retention_days: int = 30) -> int:
        """Drop trash entries older than ``retention_days``."""
        cutoff = (now or _utcnow()) - timedelta(days=retention_days)
        keep: list[TrashItem] = []
        for item in self.trash:
            try:
                deleted_at = datetime.fromisoformat(item.deleted_at)
            except ValueError:
                logger.warning("Bad deletedAt on trash item #%s: %r", item.id, item.deleted_at)
                keep.append(item)
                continue
            if deleted_at.tzinfo is None:
                deleted_at = deleted_at.replace(tzinfo=timezone.utc)
            if deleted_at >= cutoff:
                keep.append(item)
        purged = len(self.trash) - len(keep)
        self.trash = keep
        if purged:
            logger.info("Purged %d expired trash items", purged)
        return purged

    def _find_trash(self, trash_id: str) -> TrashItem | None:
        for item in self.trash:
            if item.id == trash_id:
                return item
        return None

    # ------------------------------------------------------------------
    # Categories
    # ------------------------------------------------------------------

    def get_category(self, category_id: str | None) -> Category | None:
        for category in self.categories:
            if category.id == category_id:
                return category
        return None

    def find_category_by_name(self, name: str) -> Category | None:
        return find_category(self.categories, name)

    def add_category(self, category: Category) -> Category:
        if not category.id:
            category.id = new_id()
        elif self.get_category(category.id) is not None:
            raise StoreError(f"Duplicate category id {category.id!r}")
        self.categories.append(category)
        logger.info("Category added: #%s '%s' %s", category.id, category.name, category.color)
        return category

    def update_category(self, category_id: str, name: str | None = None, color: str | None = None) -> Category:
        if category_id == UNCATEGORIZED_ID:
            raise StoreError("The default category cannot be modified")
        category = self.get_category(category_id)
        if category is None:
            raise StoreError(f"Category {category_id!r} not found")
        if name is not None and name.strip():
            category.name = name.strip()
        if color is not None:
            category.color = color
        return category

    def delete_category(self, category_id: str) -> int:
        """Remove a category and clear it from schedule items. Returns items touched."""
        if category_id == UNCATEGORIZED_ID:
            raise StoreError("The default category cannot be deleted")
        category = self.get_category(category_id)
        if category is None:
            raise StoreError(f"Category {category_id!r} not found")
        self.categories.remove(category)
        touched = 0
        for item in self.schedule:
            if item.category_id == category_id:
                item.category_id = None
                touched += 1
        logger.info("Category #%s deleted, %d schedule items uncategorized", category_id, touched)
        return touched

    # ------------------------------------------------------------------
    # Snapshots & persistence form
    # ------------------------------------------------------------------

    def snapshot(self) -> dict[str, list[dict]]:
        """Read-only camelCase copy of the four collections."""
        return {name: to_dict(self.collection(name)) for name in COLLECTIONS}

    def counts(self) -> dict[str, int]:
        return {name: len(self.collection(name)) for name in COLLECTIONS}

    def to_dict(self) -> dict:
        data = self.snapshot()
        data["categories"] = to_dict(self.categories)
        data["trash"] = to_dict(self.trash)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> EntityStore:
        store = cls()
        for name in COLLECTIONS:
            record_type = RECORD_TYPES[name]
            setattr(store, name, [from_dict(record_type, r) for r in data.get(name, []) if isinstance(r, dict)])
        categories = [from_dict(Category, c) for c in data.get("categories", []) if isinstance(c, dict)]
        if not any(c.id == UNCATEGORIZED_ID for c in categories):
            categories.insert(0, default_category())
        store.categories = categories
        store.trash = [from_dict(TrashItem, t) for t in data.get("trash", []) if isinstance(t, dict)]
        return store
