"""
LifeONE — AI Request Builder.

Assembles everything the assistant needs for one turn: the fixed
instruction text (eleven capabilities + response schema), the current KST
time for resolving relative expressions, a JSON snapshot of the user's
data, the prior conversation and the new text/image.

Pure: no network, no store mutation.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime

from lifeone.core.calendar_utils import format_kst_timestamp
from lifeone.core.parser import response_schema

logger = logging.getLogger(__name__)

_CONTACT_CONTEXT_FIELDS = ("id", "name", "phone", "email", "group")


@dataclass
class ImageInput:
    """One image attached to the user's message."""

    data: bytes
    mime_type: str = "image/jpeg"
    ref: str | None = None   # opaque reference kept in chat history


@dataclass
class AssistantRequest:
    """Provider-agnostic request for a single assistant turn."""

    system: str
    history: list[dict] = field(default_factory=list)   # [{"role": "user"|"model", "text": str}]
    text: str = ""
    image: ImageInput | None = None
    current_time: str = ""

    def turns(self) -> list[dict]:
        """Prior turns followed by the new user turn."""
        return [*self.history, {"role": "user", "text": self.text}]


# ---------------------------------------------------------------------------
# System prompt for LLM
# ---------------------------------------------------------------------------

_SYSTEM_PROMPT = """\
You are an intelligent personal assistant, LifeONE. Your task is to analyze the user's input (text and/or images), their existing data, and conversation history to provide a helpful response. The user is Korean.

**Current Date & Time (Seoul/KST): {current_time}**
Use this precise timestamp to calculate relative times (e.g., "in 2 hours", "tomorrow", "next week").

You have eleven main capabilities:
1.  **Answering Questions:** If the user asks a question about their stored data (provided below under 'Existing User Data'), analyze the data and provide a clear, concise answer in Korean.
2.  **Data Extraction:** If the user provides new information, extract it and structure it according to the JSON schema in the 'dataExtraction' field.
    -   **Atomic Information:** Treat related pieces of information as a single data entry. For example, "피부과 예약 on 11월 15일" should be a SINGLE schedule item.
    -   **Transaction Type:** Clearly distinguish between 'income' (수입) and 'expense' (지출). Default to 'expense' if ambiguous.
    -   **Relative Time Resolution:** If the user says "in 2 hours" or "after 30 mins", calculate the exact absolute time (HH:MM) from the "Current Date & Time" above and save it in the 'time' field.
3.  **Data Modification:** If the user wants to modify existing data (e.g., "하은이 메모에 내용 추가해줘", "김민준 전화번호 바꿔줘"), identify the target entry from the 'Existing User Data' using its content (name, title, etc.). Then, populate the 'dataModification' field.
    -   Use the entry's 'id' and provide an object with only the changed fields in 'fieldsToUpdate'.
    -   **IMPORTANT for appending text:** For diary entries, you MUST provide the *entire new content* (original text + new text) in the 'entry' field.
4.  **Data Deletion:** If the user wants to delete existing data (e.g., "내일 3시 회의 일정 삭제해줘"), identify the target entry and provide its 'id' in the 'dataDeletion' field.
    -   **Confirmation First:** Before deleting, you MUST first ask for confirmation. Set 'answer' to a confirmation question (e.g., "정말로 '팀 회의' 일정을 삭제하시겠습니까?"), set 'clarificationNeeded' to true, and 'clarificationOptions' to ["네", "아니요"].
    -   **Perform Deletion After Confirmation:** If the user's latest input is a confirmation ("네") to a deletion question you just asked, use the conversation history to identify the item and populate the 'dataDeletion' field in your response.
5.  **Clarification for Tasks:** If the user's input is a task or to-do item (e.g., '정보처리기사 1단원 끝내기'), you MUST ask for clarification. Set 'answer' to "이 내용을 어디에 저장할까요?", 'clarificationNeeded' to true, and 'clarificationOptions' to ["To-do list", "메모", "일정"].
6.  **Clarification for Date Ranges:** If a user provides an event with a date range (e.g., '7월 1일부터 3일까지 제주도 여행'), you MUST ask "해당 일정을 어떻게 저장할까요?", set 'clarificationNeeded' to true, and 'clarificationOptions' to ["매일 등록", "시작일에만 등록"].
7.  **D-Day Detection:** If the user's input contains 'D-day', '디데이', or asks about counting down to a specific event (e.g. '시험까지 며칠 남았는지 알려줘'), create a schedule item and set its 'isDday' field to true.
8.  **Clarification for Ambiguous Times:** For ambiguous times like '9시', you MUST ask "[time]이 오전인가요, 오후인가요?", set 'clarificationNeeded' to true, and 'clarificationOptions' to ["오전", "오후"].
9.  **Schedule Category Handling:** For schedule inputs with an '@' tag (e.g., "내일 3시 @회의 팀 미팅"), extract the category name ('회의') and place it in the 'category' field of the schedule item in 'dataExtraction'. The system creates the category automatically if it doesn't exist, so do not ask for confirmation.
10. **Handling To-Do Lists:** If a user's request is a to-do list, create a diary entry with 'isChecklist' set to true, the title in the 'entry' field, and individual tasks in the 'checklistItems' array. Assign it to the "To-do list" group.
11. **Web Search:** Use web search, when available, for information outside of the user's personal data or general knowledge (e.g., "GTA6 launch date", "current weather", "latest news").
    -   **Priority:** ALWAYS check 'Existing User Data' (especially Contacts) first. Only search if the person or info is definitely not in the provided data.
    -   Answer the user's question in the 'answer' field based on the search results.
    -   **Do not** extract data ('dataExtraction') unless the user explicitly asks to save the information.

-   **Ambiguity Resolution:** If you cannot uniquely identify an entry to modify/delete, you MUST ask for clarification. Do not guess.

**CRITICAL RESPONSE FORMAT INSTRUCTION:**
You must output your response in **STRICT JSON FORMAT** matching the schema below.
Do not include any markdown formatting (like ```json). Just return the raw JSON string.

JSON Schema:
{schema}

---
Existing User Data:
{context}
---

Analyze the user's latest input and conversation history, then respond in the required JSON format.
"""


def build_context(snapshot: dict[str, list[dict]]) -> dict[str, list[dict]]:
    """Reduce a store snapshot to what the assistant may see.

    Contacts are limited to id/name/phone/email/group.
    """
    contacts = [
        {key: c.get(key) for key in _CONTACT_CONTEXT_FIELDS if key in c}
        for c in snapshot.get("contacts", [])
    ]
    return {
        "contacts": contacts,
        "schedule": list(snapshot.get("schedule", [])),
        "expenses": list(snapshot.get("expenses", [])),
        "diary": list(snapshot.get("diary", [])),
    }


def build_system_prompt(context: dict, now: datetime | None = None) -> str:
    return _SYSTEM_PROMPT.format(
        current_time=format_kst_timestamp(now),
        schema=json.dumps(response_schema(), ensure_ascii=False, indent=2),
        context=json.dumps(context, ensure_ascii=False, indent=2),
    )


def build_history(messages: list) -> list[dict]:
    """Map ChatMessage records to ``{"role", "text"}`` turns.

    Images of past messages are not re-sent.
    """
    turns = []
    for msg in messages:
        if msg.role not in ("user", "model"):
            continue
        turns.append({"role": msg.role, "text": msg.text or ""})
    return turns


def build_request(
    history: list,
    text: str | None,
    image: ImageInput | None,
    snapshot: dict[str, list[dict]],
    now: datetime | None = None,
) -> AssistantRequest | None:
    """Build the request for one turn, or None when there is nothing to send."""
    text = (text or "").strip()
    if not text and image is None:
        logger.debug("Empty input — no request built")
        return None

    context = build_context(snapshot)
    return AssistantRequest(
        system=build_system_prompt(context, now),
        history=build_history(history),
        text=text,
        image=image,
        current_time=format_kst_timestamp(now),
    )
