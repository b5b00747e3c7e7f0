"""
LifeONE — AI Response Parser.

Turns the raw text returned by the LLM into a structurally complete
``AssistantResponse``. The provider is asked for a strict JSON object but
may wrap it in prose or code fences, or break it altogether; parsing never
raises. Malformed items inside a collection are dropped one by one so a
single bad entry does not cost the whole reply.
"""

from __future__ import annotations

import json
import logging
import re

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

NO_INPUT_ANSWER = "입력된 내용이 없습니다."


# ---------------------------------------------------------------------------
# Shared JSON contract — consumed by the prompt builder and the reconciler
# ---------------------------------------------------------------------------


class _Wire(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _parse_amount(v: object) -> object:
    """Accept ``12,000``, ``₩12000``, ``"3500원"`` as well as plain numbers."""
    if isinstance(v, str):
        cleaned = re.sub(r"[^\d.\-]", "", v)
        return cleaned or v
    return v


class ContactDraft(_Wire):
    """A new contact extracted from the user's input.

    JSON example:
    {"name": "김민준", "phone": "010-1234-5678", "email": "mj@naver.com", "group": "친구"}
    """
    name: str = Field(description="Full name of the person.")
    phone: str | None = Field(None, description="Phone number. MUST be formatted as '000-0000-0000'.")
    email: str | None = Field(None, description="Email address.")
    group: str | None = Field(None, description="Group, e.g. '가족', '친구', '직장'. Defaults to '기타'.")


class ScheduleDraft(_Wire):
    """A new schedule item.

    JSON example:
    {"title": "팀 미팅", "date": "2025-03-10", "time": "15:00", "category": "회의", "isDday": false}
    """
    title: str = Field(description="Title of the event or appointment.")
    date: str = Field(description="Date of the event in YYYY-MM-DD format.")
    time: str | None = Field(None, description="Time of the event in HH:MM format (24-hour).")
    location: str | None = Field(None, description="Location of the event.")
    category: str | None = Field(None, description="Category name for the event, extracted from an @-mention.")
    is_dday: bool = Field(False, alias="isDday", description="Set to true if this is a D-Day event.")


class ExpenseDraft(_Wire):
    """A new income/expense transaction.

    JSON example:
    {"date": "2025-03-10", "item": "점심", "amount": 9000, "type": "expense", "category": "식비"}
    """
    date: str = Field(description="Date of the transaction in YYYY-MM-DD format.")
    item: str = Field(description="Name of the item, service, or income source.")
    amount: float = Field(description="Amount as a number, without currency symbols or commas.")
    type: str = Field("expense", description="Either 'expense' or 'income'.")
    category: str | None = Field(
        None,
        description="For income: '급여', '용돈', '부수입', '기타'. For expenses: '식비', '교통', '쇼핑', '기타'.",
    )

    @field_validator("amount", mode="before")
    @classmethod
    def amount_from_text(cls, v: object) -> object:
        return _parse_amount(v)

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("amount must be positive")
        return v


class ChecklistItemDraft(_Wire):
    text: str = Field(description="The description of the task.")
    completed: bool = Field(False, description="Completion status; false for new tasks.")
    due_date: str | None = Field(None, alias="dueDate", description="Optional due date or period, e.g. '이번 주까지'.")


class DiaryDraft(_Wire):
    """A new memo, diary note or checklist.

    JSON example:
    {"date": "2025-03-10", "entry": "장보기", "group": "To-do list", "isChecklist": true,
     "checklistItems": [{"text": "우유", "completed": false}]}
    """
    date: str | None = Field(None, description="Date in YYYY-MM-DD. Use today's date if not specified.")
    entry: str = Field(description="The content of the note or the title of the checklist.")
    group: str | None = Field(None, description="Group, e.g. 'To-do list', '기타'. Defaults to '기타'.")
    is_checklist: bool = Field(False, alias="isChecklist", description="True for a to-do list/checklist.")
    checklist_items: list[ChecklistItemDraft] = Field(default_factory=list, alias="checklistItems")


class ContactFields(_Wire):
    name: str | None = None
    phone: str | None = Field(None, description="Format as 000-0000-0000")
    email: str | None = None
    group: str | None = None
    favorite: bool | None = None


class ScheduleFields(_Wire):
    title: str | None = None
    date: str | None = None
    time: str | None = None
    location: str | None = None
    category_id: str | None = Field(None, alias="categoryId")
    category: str | None = Field(None, description="Category name; resolved or created like in extraction.")
    is_dday: bool | None = Field(None, alias="isDday")


class ExpenseFields(_Wire):
    date: str | None = None
    item: str | None = None
    amount: float | None = None
    type: str | None = None
    category: str | None = None

    @field_validator("amount", mode="before")
    @classmethod
    def amount_from_text(cls, v: object) -> object:
        return _parse_amount(v)

    @field_validator("amount")
    @classmethod
    def amount_positive(cls, v: float | None) -> float | None:
        if v is not None and v <= 0:
            raise ValueError("amount must be positive")
        return v


class DiaryFields(_Wire):
    date: str | None = None
    entry: str | None = Field(
        None,
        description="The FULL new content of the diary entry. If appending, combine original and new text.",
    )
    group: str | None = None


class ContactModification(_Wire):
    id: str
    fields_to_update: ContactFields = Field(alias="fieldsToUpdate")


class ScheduleModification(_Wire):
    id: str
    fields_to_update: ScheduleFields = Field(alias="fieldsToUpdate")


class ExpenseModification(_Wire):
    id: str
    fields_to_update: ExpenseFields = Field(alias="fieldsToUpdate")


class DiaryModification(_Wire):
    id: str
    fields_to_update: DiaryFields = Field(alias="fieldsToUpdate")


class ExtractionPayload(_Wire):
    """NEW data entries to be created."""
    contacts: list[ContactDraft] = Field(default_factory=list)
    schedule: list[ScheduleDraft] = Field(default_factory=list)
    expenses: list[ExpenseDraft] = Field(default_factory=list)
    diary: list[DiaryDraft] = Field(default_factory=list)


class ModificationPayload(_Wire):
    """Changes to existing entries: the entry's id plus only the changed fields."""
    contacts: list[ContactModification] = Field(default_factory=list)
    schedule: list[ScheduleModification] = Field(default_factory=list)
    expenses: list[ExpenseModification] = Field(default_factory=list)
    diary: list[DiaryModification] = Field(default_factory=list)


class DeletionPayload(_Wire):
    """Ids of existing entries to delete."""
    contacts: list[str] = Field(default_factory=list)
    schedule: list[str] = Field(default_factory=list)
    expenses: list[str] = Field(default_factory=list)
    diary: list[str] = Field(default_factory=list)


class SearchSource(_Wire):
    title: str = "Source"
    uri: str


class AssistantResponse(_Wire):
    """The full structured reply of the assistant."""
    answer: str = Field(
        "",
        description=(
            "A natural language response in Korean: a confirmation if data was extracted, "
            "a direct answer if a question was asked, or a clarifying question if the input is ambiguous."
        ),
    )
    clarification_needed: bool = Field(
        False, alias="clarificationNeeded",
        description="True if the input is ambiguous and requires a follow-up question.",
    )
    clarification_options: list[str] = Field(
        default_factory=list, alias="clarificationOptions",
        description="Short reply options for the follow-up question, like ['일정', '메모'].",
    )
    data_extraction: ExtractionPayload = Field(default_factory=ExtractionPayload, alias="dataExtraction")
    data_modification: ModificationPayload = Field(default_factory=ModificationPayload, alias="dataModification")
    data_deletion: DeletionPayload = Field(default_factory=DeletionPayload, alias="dataDeletion")
    web_search_sources: list[SearchSource] = Field(default_factory=list, alias="webSearchSources")


def response_schema() -> dict:
    """JSON schema of the reply, embedded in the system prompt."""
    schema = AssistantResponse.model_json_schema(by_alias=True)
    schema.get("properties", {}).pop("webSearchSources", None)
    return schema


def plain_answer(text: str) -> AssistantResponse:
    """A conversational answer with all structured payloads empty."""
    return AssistantResponse(answer=text)


def no_input_response() -> AssistantResponse:
    return plain_answer(NO_INPUT_ANSWER)


# ---------------------------------------------------------------------------
# Response Cleaning Functions
# ---------------------------------------------------------------------------


def _clean_llm_response(raw_text: str) -> str:
    """Remove markdown code block delimiters from LLM's raw response."""
    cleaned_text = raw_text.strip()
    if cleaned_text.startswith("```json"):
        cleaned_text = cleaned_text.removeprefix("```json")
    elif cleaned_text.startswith("```"):
        cleaned_text = cleaned_text.removeprefix("```")
    if cleaned_text.endswith("```"):
        cleaned_text = cleaned_text.removesuffix("```")
    return cleaned_text.strip()


def _extract_json_object(raw_text: str) -> dict | None:
    """Parse the reply as a JSON object, falling back to the outermost braces.

    Returns None when no JSON object can be recovered.
    """
    cleaned = _clean_llm_response(raw_text)
    try:
        data = json.loads(cleaned)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    first = cleaned.find("{")
    last = cleaned.rfind("}")
    if first == -1 or last <= first:
        return None
    try:
        data = json.loads(cleaned[first:last + 1])
    except json.JSONDecodeError as exc:
        logger.error("Failed to parse LLM response as JSON: %s — raw: '%s'", exc, raw_text[:500])
        return None
    return data if isinstance(data, dict) else None


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _as_bool(value: object) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes")
    return bool(value)


def _as_list(value: object, label: str) -> list:
    if value is None:
        return []
    if isinstance(value, list):
        return value
    logger.warning("Expected a list for '%s', got %s", label, type(value).__name__)
    return []


def _parse_items(raw: object, model: type[BaseModel], label: str) -> list:
    """Validate each dict in ``raw`` against ``model``; drop the invalid ones."""
    items = []
    for entry in _as_list(raw, label):
        if not isinstance(entry, dict):
            logger.warning("Skipping non-dict item in '%s': %r", label, entry)
            continue
        try:
            items.append(model.model_validate(entry))
        except ValidationError as exc:
            logger.warning("Dropping invalid '%s' item %r: %s", label, entry, exc.errors()[:1])
    return items


def _parse_ids(raw: object, label: str) -> list[str]:
    ids = []
    for entry in _as_list(raw, label):
        if isinstance(entry, (str, int)) and str(entry).strip():
            ids.append(str(entry).strip())
        elif isinstance(entry, dict) and entry.get("id"):
            ids.append(str(entry["id"]))
        else:
            logger.warning("Skipping invalid id in '%s': %r", label, entry)
    return ids


def _section(data: dict, key: str) -> dict:
    section = data.get(key)
    if section is None:
        return {}
    if not isinstance(section, dict):
        logger.warning("Expected an object for '%s', got %s", key, type(section).__name__)
        return {}
    return section


def build_response(data: dict) -> AssistantResponse:
    """Normalize a decoded JSON object into an ``AssistantResponse``."""
    extraction = _section(data, "dataExtraction")
    modification = _section(data, "dataModification")
    deletion = _section(data, "dataDeletion")

    options = [str(o).strip() for o in _as_list(data.get("clarificationOptions"), "clarificationOptions")]

    return AssistantResponse(
        answer=str(data.get("answer") or ""),
        clarification_needed=_as_bool(data.get("clarificationNeeded", False)),
        clarification_options=[o for o in options if o],
        data_extraction=ExtractionPayload(
            contacts=_parse_items(extraction.get("contacts"), ContactDraft, "contacts"),
            schedule=_parse_items(extraction.get("schedule"), ScheduleDraft, "schedule"),
            expenses=_parse_items(extraction.get("expenses"), ExpenseDraft, "expenses"),
            diary=_parse_items(extraction.get("diary"), DiaryDraft, "diary"),
        ),
        data_modification=ModificationPayload(
            contacts=_parse_items(modification.get("contacts"), ContactModification, "contacts"),
            schedule=_parse_items(modification.get("schedule"), ScheduleModification, "schedule"),
            expenses=_parse_items(modification.get("expenses"), ExpenseModification, "expenses"),
            diary=_parse_items(modification.get("diary"), DiaryModification, "diary"),
        ),
        data_deletion=DeletionPayload(
            contacts=_parse_ids(deletion.get("contacts"), "contacts"),
            schedule=_parse_ids(deletion.get("schedule"), "schedule"),
            expenses=_parse_ids(deletion.get("expenses"), "expenses"),
            diary=_parse_ids(deletion.get("diary"), "diary"),
        ),
    )


def parse_response(raw_text: str | None) -> AssistantResponse:
    """Parse the raw LLM reply. Never raises.

    Falls back to a plain conversational answer (the raw text itself) when
    no JSON object can be recovered.
    """
    raw_text = raw_text or ""
    try:
        data = _extract_json_object(raw_text)
        if data is None:
            logger.info("LLM reply is not JSON, treating it as a plain answer")
            return plain_answer(raw_text.strip())
        return build_response(data)
    except Exception as exc:
        logger.error("Unexpected error in parse_response: %s", exc)
        return plain_answer(raw_text.strip())
