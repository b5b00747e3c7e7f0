"""
LifeONE — Response Reconciler.

Turns the structured instructions of a parsed ``AssistantResponse`` into
concrete entity-store operations:

    extraction   → build_plan() → [conflict check] → apply_extraction()
    modification → apply_modification()   (unknown ids are skipped)
    deletion     → apply_deletion()       (records move to trash)

Normalization happens here: dates become YYYY-MM-DD, times HH:MM, phone
numbers 010-1234-5678, and schedule categories referenced by name are
resolved or auto-created. Drafts whose dates cannot be normalized are
dropped with a warning.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable

from lifeone.core.calendar_utils import (
    format_phone,
    kst_today,
    normalize_date,
    normalize_time,
    random_bright_color,
)
from lifeone.core.conflict_checker import ConflictDecision, ConflictReport, find_existing
from lifeone.core.parser import (
    ContactDraft,
    DeletionPayload,
    DiaryDraft,
    ExpenseDraft,
    ExtractionPayload,
    ModificationPayload,
    ScheduleDraft,
)
from lifeone.data.models import (
    DEFAULT_GROUP,
    UNCATEGORIZED_ID,
    Category,
    ChecklistItem,
    Contact,
    DiaryEntry,
    Expense,
    ScheduleItem,
    new_id,
)
from lifeone.data.store import COLLECTIONS, EntityStore, find_category

logger = logging.getLogger(__name__)

ColorFactory = Callable[[], str]

_INCOME_TYPES = ("income", "수입")


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------


@dataclass
class ReconcileResult:
    """What a reconciliation step did to the store."""

    created: int = 0
    updated: int = 0
    deleted: int = 0
    new_categories: list[Category] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.updated or self.deleted or self.new_categories)

    def merge(self, other: ReconcileResult) -> ReconcileResult:
        self.created += other.created
        self.updated += other.updated
        self.deleted += other.deleted
        self.new_categories.extend(other.new_categories)
        return self

    def summary(self) -> str:
        """Short Korean summary, e.g. ``2건 추가 · 1건 삭제 · 새 카테고리: 스터디``."""
        parts = []
        if self.created:
            parts.append(f"{self.created}건 추가")
        if self.updated:
            parts.append(f"{self.updated}건 수정")
        if self.deleted:
            parts.append(f"{self.deleted}건 삭제")
        if self.new_categories:
            parts.append("새 카테고리: " + ", ".join(c.name for c in self.new_categories))
        return " · ".join(parts)


# ---------------------------------------------------------------------------
# Category resolution (pure)
# ---------------------------------------------------------------------------


def clean_category_name(raw: str | None) -> str:
    return (raw or "").strip().lstrip("@").strip()


def resolve_categories(
    names: list[str | None],
    categories: list[Category],
    color_factory: ColorFactory | None = None,
) -> tuple[list[str | None], list[Category]]:
    """Map category names to category ids, creating the missing ones.

    Matching is exact after strip + casefold. A name seen twice in one batch
    creates a single new category. The reserved 미분류 category resolves to
    None. Returns (ids in input order, new categories); ``categories`` is not
    modified.
    """
    color_factory = color_factory or random_bright_color
    known = list(categories)
    new_categories: list[Category] = []
    ids: list[str | None] = []

    for raw in names:
        name = clean_category_name(raw)
        if not name:
            ids.append(None)
            continue
        category = find_category(known, name)
        if category is None:
            category = Category(id=new_id(), name=name, color=color_factory())
            known.append(category)
            new_categories.append(category)
        ids.append(None if category.id == UNCATEGORIZED_ID else category.id)

    return ids, new_categories


# ---------------------------------------------------------------------------
# Draft → record conversion
# ---------------------------------------------------------------------------


def _expense_type(raw: str | None) -> str:
    return "income" if (raw or "").strip().lower() in _INCOME_TYPES else "expense"


def _optional_text(raw: str | None) -> str | None:
    text = (raw or "").strip()
    return text or None


def _time_or_none(raw: str | None, label: str) -> str | None:
    if not raw:
        return None
    normalized = normalize_time(raw)
    if normalized is None:
        logger.warning("Unparseable time %r on '%s', stored without time", raw, label)
    return normalized


def contact_from_draft(draft: ContactDraft) -> Contact | None:
    name = draft.name.strip()
    if not name:
        logger.warning("Dropping contact without a name")
        return None
    return Contact(
        id=new_id(),
        name=name,
        phone=format_phone(draft.phone),
        email=(draft.email or "").strip(),
        group=(draft.group or "").strip() or DEFAULT_GROUP,
    )


def schedule_from_draft(draft: ScheduleDraft, category_id: str | None = None) -> ScheduleItem | None:
    day = normalize_date(draft.date)
    if day is None:
        logger.warning("Dropping schedule item '%s': bad date %r", draft.title, draft.date)
        return None
    return ScheduleItem(
        id=new_id(),
        title=draft.title.strip(),
        date=day,
        time=_time_or_none(draft.time, draft.title),
        location=_optional_text(draft.location),
        category_id=category_id,
        is_dday=draft.is_dday,
    )


def expense_from_draft(draft: ExpenseDraft) -> Expense | None:
    day = normalize_date(draft.date)
    if day is None:
        logger.warning("Dropping expense '%s': bad date %r", draft.item, draft.date)
        return None
    return Expense(
        id=new_id(),
        date=day,
        item=draft.item.strip(),
        amount=draft.amount,
        type=_expense_type(draft.type),
        category=_optional_text(draft.category),
    )


def diary_from_draft(draft: DiaryDraft, today: date | None = None) -> DiaryEntry | None:
    if draft.date:
        day = normalize_date(draft.date)
        if day is None:
            logger.warning("Dropping diary entry: bad date %r", draft.date)
            return None
    else:
        day = (today or kst_today()).isoformat()
    return DiaryEntry(
        id=new_id(),
        date=day,
        entry=draft.entry,
        group=(draft.group or "").strip() or DEFAULT_GROUP,
        is_checklist=draft.is_checklist,
        checklist_items=[
            ChecklistItem(id=new_id(), text=item.text, completed=item.completed, due_date=item.due_date)
            for item in draft.checklist_items
            if item.text.strip()
        ],
    )


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


@dataclass
class ExtractionPlan:
    """Normalized new records awaiting commit, plus the categories they need."""

    contacts: list[Contact] = field(default_factory=list)
    schedule: list[ScheduleItem] = field(default_factory=list)
    expenses: list[Expense] = field(default_factory=list)
    diary: list[DiaryEntry] = field(default_factory=list)
    new_categories: list[Category] = field(default_factory=list)

    def collection(self, name: str) -> list:
        return getattr(self, name)

    @property
    def is_empty(self) -> bool:
        return not any(self.collection(name) for name in COLLECTIONS)

    def count(self) -> int:
        return sum(len(self.collection(name)) for name in COLLECTIONS)


def build_plan(
    payload: ExtractionPayload,
    categories: list[Category],
    today: date | None = None,
    color_factory: ColorFactory | None = None,
) -> ExtractionPlan:
    """Convert extraction drafts into records. Does not touch the store."""
    category_ids, new_categories = resolve_categories(
        [d.category for d in payload.schedule], categories, color_factory,
    )

    schedule = []
    used_ids: set[str] = set()
    for draft, category_id in zip(payload.schedule, category_ids):
        item = schedule_from_draft(draft, category_id)
        if item is not None:
            schedule.append(item)
            if category_id:
                used_ids.add(category_id)

    plan = ExtractionPlan(
        contacts=[c for c in (contact_from_draft(d) for d in payload.contacts) if c is not None],
        schedule=schedule,
        expenses=[e for e in (expense_from_draft(d) for d in payload.expenses) if e is not None],
        diary=[e for e in (diary_from_draft(d, today) for d in payload.diary) if e is not None],
        # a category whose only item was dropped is not created
        new_categories=[c for c in new_categories if c.id in used_ids],
    )
    logger.debug("Extraction plan: %d records, %d new categories", plan.count(), len(plan.new_categories))
    return plan


def apply_extraction(
    store: EntityStore,
    plan: ExtractionPlan,
    report: ConflictReport | None = None,
    decision: ConflictDecision = ConflictDecision.IGNORE,
) -> ReconcileResult:
    """Commit a plan. With OVERWRITE, conflicting proposals replace their match."""
    result = ReconcileResult()
    if decision is ConflictDecision.CANCEL:
        logger.info("Extraction batch cancelled (%d records discarded)", plan.count())
        return result

    for category in plan.new_categories:
        store.add_category(category)
        result.new_categories.append(category)

    for name in COLLECTIONS:
        for record in plan.collection(name):
            if decision is ConflictDecision.OVERWRITE and report is not None and report.contains(name, record):
                existing = find_existing(store, name, record)
                if existing is not None:
                    record.id = existing.id
                    store.replace(name, record)
                    result.updated += 1
                    continue
            store.add(name, record)
            result.created += 1

    return result


# ---------------------------------------------------------------------------
# Modification
# ---------------------------------------------------------------------------


def _normalize_changes(
    name: str,
    changes: dict,
    store: EntityStore,
    result: ReconcileResult,
    color_factory: ColorFactory | None,
) -> dict:
    """Normalize the fields of one modification like extraction does."""
    non_nullable = {"name", "title", "date", "item", "amount", "entry", "favorite", "is_dday"}
    normalized = {k: v for k, v in changes.items() if not (k in non_nullable and v is None)}

    if "date" in normalized:
        day = normalize_date(normalized["date"])
        if day is None:
            logger.warning("Ignoring bad date %r in %s modification", normalized["date"], name)
            del normalized["date"]
        else:
            normalized["date"] = day

    if name == "contacts":
        if "phone" in normalized:
            normalized["phone"] = format_phone(normalized["phone"])
        if "name" in normalized:
            normalized["name"] = normalized["name"].strip()
            if not normalized["name"]:
                del normalized["name"]
        for key in ("email", "group"):
            if key in normalized and normalized[key] is None:
                normalized[key] = "" if key == "email" else DEFAULT_GROUP

    elif name == "diary":
        if "group" in normalized and not (normalized["group"] or "").strip():
            normalized["group"] = DEFAULT_GROUP

    elif name == "schedule":
        if normalized.get("time"):
            time = normalize_time(normalized["time"])
            if time is None:
                logger.warning("Ignoring bad time %r in schedule modification", normalized["time"])
                del normalized["time"]
            else:
                normalized["time"] = time
        if "category" in normalized:
            category_name = normalized.pop("category")
            if clean_category_name(category_name):
                ids, created = resolve_categories([category_name], store.categories, color_factory)
                for category in created:
                    store.add_category(category)
                    result.new_categories.append(category)
                normalized["category_id"] = ids[0]
        if "category_id" in normalized:
            category_id = normalized["category_id"]
            if category_id == UNCATEGORIZED_ID:
                normalized["category_id"] = None
            elif category_id is not None and store.get_category(category_id) is None:
                logger.warning("Ignoring unknown categoryId %r", category_id)
                del normalized["category_id"]

    elif name == "expenses":
        if "type" in normalized:
            normalized["type"] = _expense_type(normalized["type"])

    return normalized


def apply_modification(
    store: EntityStore,
    payload: ModificationPayload,
    color_factory: ColorFactory | None = None,
) -> ReconcileResult:
    """Overwrite only the listed fields of existing records; unknown ids are skipped."""
    result = ReconcileResult()
    for name in COLLECTIONS:
        for modification in getattr(payload, name):
            if store.get(name, modification.id) is None:
                logger.info("Modification skipped: %s #%s does not exist", name, modification.id)
                continue
            changes = modification.fields_to_update.model_dump(exclude_unset=True)
            changes = _normalize_changes(name, changes, store, result, color_factory)
            if not changes:
                continue
            store.update(name, modification.id, changes)
            result.updated += 1
    return result


# ---------------------------------------------------------------------------
# Deletion
# ---------------------------------------------------------------------------


def deletion_count(payload: DeletionPayload) -> int:
    return sum(len(getattr(payload, name)) for name in COLLECTIONS)


def apply_deletion(
    store: EntityStore,
    payload: DeletionPayload,
    now: datetime | None = None,
) -> ReconcileResult:
    """Move the referenced records to trash; unknown ids are skipped."""
    result = ReconcileResult()
    for name in COLLECTIONS:
        for record_id in getattr(payload, name):
            if store.delete(name, record_id, now) is not None:
                result.deleted += 1
    return result
