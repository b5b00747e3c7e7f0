"""
LifeONE — Data Models.

Local state managed by LifeONE: the four entity collections (contacts,
schedule, expenses, diary), schedule categories, trash, chat sessions and
notification settings.

Records use snake_case attributes in Python. Their persisted / AI-facing
form is a camelCase dict (``isDday``, ``categoryId``, ``checklistItems`` …)
produced by ``to_dict`` and read back by ``from_dict``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, fields, is_dataclass
from typing import Any, ClassVar

UNCATEGORIZED_ID = "default-uncategorized"
UNCATEGORIZED_NAME = "미분류"
UNCATEGORIZED_COLOR = "#9CA3AF"
DEFAULT_GROUP = "기타"


def new_id() -> str:
    """Return a fresh unique record id."""
    return uuid.uuid4().hex


@dataclass
class Contact:
    """A person in the address book. Phone is stored as ``010-1234-5678``."""

    id: str
    name: str
    phone: str = ""
    email: str = ""
    group: str = DEFAULT_GROUP
    favorite: bool = False


@dataclass
class Category:
    """A colored schedule category (e.g. 회의, 스터디)."""

    id: str
    name: str
    color: str


@dataclass
class ScheduleItem:
    """A calendar entry. ``category_id`` None renders as 미분류."""

    id: str
    title: str
    date: str                       # YYYY-MM-DD
    time: str | None = None         # HH:MM (24h)
    location: str | None = None
    category_id: str | None = None
    is_dday: bool = False


@dataclass
class Expense:
    """A single income or expense transaction."""

    id: str
    date: str                       # YYYY-MM-DD
    item: str
    amount: float                   # always > 0
    type: str = "expense"           # "expense" | "income"
    category: str | None = None


@dataclass
class ChecklistItem:
    id: str
    text: str
    completed: bool = False
    due_date: str | None = None     # free text, e.g. "2024-12-25" or "이번 주까지"


@dataclass
class DiaryEntry:
    """A memo, diary note or to-do checklist."""

    id: str
    date: str
    entry: str
    group: str = DEFAULT_GROUP
    is_checklist: bool = False
    checklist_items: list[ChecklistItem] = field(default_factory=list)

    _nested: ClassVar[dict[str, type]] = {"checklist_items": ChecklistItem}


@dataclass
class TrashItem:
    """A soft-deleted record, restorable until it expires."""

    id: str
    type: str                       # "contact" | "schedule" | "expense" | "diary"
    title: str
    original_data: dict
    deleted_at: str                 # ISO timestamp (UTC)


@dataclass
class WebSource:
    title: str
    uri: str


@dataclass
class ChatMessage:
    """One chat turn.

    ``clarification_options`` is None for ordinary answers and a (possibly
    empty) list when the assistant asked a follow-up question.
    """

    id: str
    role: str                       # "user" | "model"
    text: str
    image: str | None = None        # opaque image reference (e.g. Telegram file id)
    clarification_options: list[str] | None = None
    web_search_sources: list[WebSource] | None = None

    _nested: ClassVar[dict[str, type]] = {"web_search_sources": WebSource}


@dataclass
class ChatSession:
    id: str
    title: str
    created_at: str
    messages: list[ChatMessage] = field(default_factory=list)
    # Transient: never persisted
    pending_conflict: Any = None
    in_flight: bool = False

    _nested: ClassVar[dict[str, type]] = {"messages": ChatMessage}
    _transient: ClassVar[frozenset[str]] = frozenset({"pending_conflict", "in_flight"})


@dataclass
class CalendarAlertSettings:
    enabled: bool = True
    d_day_alerts: bool = True
    today_event_alerts: bool = True


@dataclass
class BudgetAlertSettings:
    enabled: bool = False
    monthly_limit: int = 0


@dataclass
class NotificationSettings:
    calendar: CalendarAlertSettings = field(default_factory=CalendarAlertSettings)
    budget: BudgetAlertSettings = field(default_factory=BudgetAlertSettings)

    _nested: ClassVar[dict[str, type]] = {
        "calendar": CalendarAlertSettings,
        "budget": BudgetAlertSettings,
    }


@dataclass
class AppNotification:
    id: str                         # deterministic, used for de-duplication
    type: str                       # "calendar" | "budget" | "system"
    title: str
    message: str
    date: str


def default_category() -> Category:
    return Category(id=UNCATEGORIZED_ID, name=UNCATEGORIZED_NAME, color=UNCATEGORIZED_COLOR)


# ---------------------------------------------------------------------------
# camelCase (de)serialization
# ---------------------------------------------------------------------------


def to_camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def to_dict(record: Any) -> Any:
    """Convert a record (or list of records) into a camelCase JSON-ready dict."""
    if isinstance(record, list):
        return [to_dict(r) for r in record]
    if not is_dataclass(record):
        return record
    transient = getattr(record, "_transient", frozenset())
    return {
        to_camel(f.name): to_dict(getattr(record, f.name))
        for f in fields(record)
        if f.name not in transient
    }


def from_dict(cls: type, data: dict) -> Any:
    """Build a record of ``cls`` from a camelCase (or snake_case) dict.

    Unknown keys are ignored; missing keys fall back to the field default.
    """
    nested: dict[str, type] = getattr(cls, "_nested", {})
    transient = getattr(cls, "_transient", frozenset())
    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name in transient:
            continue
        camel = to_camel(f.name)
        if camel in data:
            value = data[camel]
        elif f.name in data:
            value = data[f.name]
        else:
            continue
        if f.name in nested and value is not None:
            sub = nested[f.name]
            if isinstance(value, list):
                value = [from_dict(sub, v) for v in value if isinstance(v, dict)]
            elif isinstance(value, dict):
                value = from_dict(sub, value)
        kwargs[f.name] = value
    return cls(**kwargs)
