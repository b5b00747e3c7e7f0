"""
LifeONE — Duplicate detection for AI-proposed entries.

Compares proposed new contacts, schedule items and expenses against the
records already in the store. A proposal collides when its key (contact
name, schedule title, expense item) equals an existing record's key after
strip + casefold. Diary entries are never checked.

Pure: reads the store, never mutates it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from lifeone.data.store import record_label

if TYPE_CHECKING:
    from lifeone.core.reconciler import ExtractionPlan
    from lifeone.data.store import EntityStore

logger = logging.getLogger(__name__)

# collection name → attribute compared for duplicates
CONFLICT_KEYS = {
    "contacts": "name",
    "schedule": "title",
    "expenses": "item",
}


class ConflictDecision(Enum):
    OVERWRITE = "overwrite"   # replace the matching existing entries, keeping their ids
    IGNORE = "ignore"         # insert the proposals as duplicates
    CANCEL = "cancel"         # discard the whole batch


@dataclass
class ConflictReport:
    """Proposed records that collide with existing ones, per collection."""

    contacts: list = field(default_factory=list)
    schedule: list = field(default_factory=list)
    expenses: list = field(default_factory=list)

    @property
    def has_conflicts(self) -> bool:
        return bool(self.contacts or self.schedule or self.expenses)

    def collection(self, name: str) -> list:
        return getattr(self, name)

    def contains(self, name: str, record: object) -> bool:
        return any(r is record for r in self.collection(name))

    def labels(self) -> list[str]:
        """Display labels of every conflicting proposal, contacts first."""
        return [record_label(r) for name in CONFLICT_KEYS for r in self.collection(name)]

    def count(self) -> int:
        return len(self.contacts) + len(self.schedule) + len(self.expenses)


def normalize_key(value: object) -> str:
    return str(value or "").strip().casefold()


def find_existing(store: EntityStore, name: str, record: object):
    """First stored record of ``name`` whose key matches ``record``'s, or None."""
    attr = CONFLICT_KEYS[name]
    wanted = normalize_key(getattr(record, attr, ""))
    if not wanted:
        return None
    for existing in store.collection(name):
        if normalize_key(getattr(existing, attr, "")) == wanted:
            return existing
    return None


def find_conflicts(plan: ExtractionPlan, store: EntityStore) -> ConflictReport:
    """Collect the proposals in ``plan`` that duplicate existing records."""
    report = ConflictReport()
    for name in CONFLICT_KEYS:
        for record in plan.collection(name):
            if find_existing(store, name, record) is not None:
                report.collection(name).append(record)

    if report.has_conflicts:
        logger.info(
            "Conflicts found: %d contacts, %d schedule, %d expenses",
            len(report.contacts), len(report.schedule), len(report.expenses),
        )
    return report
