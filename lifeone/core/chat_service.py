"""
LifeONE — UI-Agnostic Chat Service.

Orchestrates one conversational turn:
build request -> call assistant -> parse reply -> apply modification /
guarded deletion -> conflict-check extraction -> record the answer ->
return a structured response object.

The Telegram bot (or any other UI adapter) calls this service and renders
the response objects in its own way; the service never sends messages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING

from lifeone.core.calendar_utils import kst_now
from lifeone.core.clarification import derive_state, deletion_confirmed, option_reply
from lifeone.core.conflict_checker import ConflictDecision, ConflictReport, find_conflicts
from lifeone.core.parser import AssistantResponse, no_input_response, parse_response
from lifeone.core.prompt_builder import ImageInput, build_request
from lifeone.core.reconciler import (
    ExtractionPlan,
    ReconcileResult,
    apply_deletion,
    apply_extraction,
    apply_modification,
    build_plan,
    deletion_count,
)
from lifeone.data.models import ChatMessage, ChatSession, WebSource, new_id
from lifeone.ports.assistant_port import AssistantError

if TYPE_CHECKING:
    from lifeone.data.state import AppState
    from lifeone.ports.assistant_port import AssistantPort

logger = logging.getLogger(__name__)

FAILURE_MESSAGE = "요청을 처리하는 데 실패했습니다. 잠시 후 다시 시도해 주세요."
BUSY_MESSAGE = "이전 요청을 처리하고 있습니다. 잠시만 기다려 주세요."
CONFLICT_QUESTION = "이미 저장된 항목과 겹치는 데이터가 있습니다. 어떻게 할까요?"


# ---------------------------------------------------------------------------
# Response types
# ---------------------------------------------------------------------------


class ResponseKind(Enum):
    ANSWER = "answer"
    CLARIFICATION = "clarification"
    CONFLICT_PROMPT = "conflict_prompt"
    SUCCESS = "success"
    ERROR = "error"
    BUSY = "busy"
    NO_INPUT = "no_input"
    STALE = "stale"


@dataclass
class ConflictOption:
    key: str      # "overwrite" | "ignore" | "cancel"
    label: str


CONFLICT_OPTIONS = [
    ConflictOption(key=ConflictDecision.OVERWRITE.value, label="덮어쓰기"),
    ConflictOption(key=ConflictDecision.IGNORE.value, label="무시하고 추가"),
    ConflictOption(key=ConflictDecision.CANCEL.value, label="취소"),
]


@dataclass
class PendingConflict:
    """An extraction batch waiting for an overwrite/ignore/cancel decision."""

    plan: ExtractionPlan
    report: ConflictReport


@dataclass
class ServiceResponse:
    kind: ResponseKind
    message: str


@dataclass
class AnswerResponse(ServiceResponse):
    result: ReconcileResult = field(default_factory=ReconcileResult)
    sources: list[WebSource] = field(default_factory=list)


@dataclass
class ClarificationResponse(ServiceResponse):
    options: list[str] = field(default_factory=list)
    result: ReconcileResult = field(default_factory=ReconcileResult)


@dataclass
class ConflictPromptResponse(ServiceResponse):
    options: list[ConflictOption] = field(default_factory=list)
    conflicting: list[str] = field(default_factory=list)
    result: ReconcileResult = field(default_factory=ReconcileResult)


@dataclass
class SuccessResponse(ServiceResponse):
    result: ReconcileResult = field(default_factory=ReconcileResult)


@dataclass
class ErrorResponse(ServiceResponse):
    pass


@dataclass
class NoActionResponse(ServiceResponse):
    pass


# ---------------------------------------------------------------------------
# Single turn
# ---------------------------------------------------------------------------


async def process_chat(
    assistant: AssistantPort,
    history: list[ChatMessage],
    text: str | None,
    image: ImageInput | None,
    snapshot: dict[str, list[dict]],
    now: datetime | None = None,
) -> tuple[AssistantResponse, list[WebSource]]:
    """Ask the assistant about one user turn and parse its reply.

    Empty input returns the canned no-input answer without calling the
    assistant. Raises AssistantError when the provider call fails.
    """
    request = build_request(history, text, image, snapshot, now)
    if request is None:
        return no_input_response(), []
    reply = await assistant.generate(request)
    return parse_response(reply.text), list(reply.sources)


# ---------------------------------------------------------------------------
# ChatService
# ---------------------------------------------------------------------------


class ChatService:
    """Applies assistant replies to one user's AppState.

    Returns structured response objects; never sends messages directly.
    """

    def __init__(
        self,
        state: AppState,
        assistant: AssistantPort,
        require_delete_confirmation: bool | None = None,
    ) -> None:
        if require_delete_confirmation is None:
            from lifeone.config import settings
            require_delete_confirmation = settings.REQUIRE_DELETE_CONFIRMATION
        self._state = state
        self._assistant = assistant
        self._require_delete_confirmation = require_delete_confirmation

    # ------------------------------------------------------------------
    # Public: free text / image
    # ------------------------------------------------------------------

    async def send_message(
        self,
        text: str | None,
        image: ImageInput | None = None,
        now: datetime | None = None,
    ) -> ServiceResponse:
        """Run one chat turn in the active session."""
        text = (text or "").strip()
        if not text and image is None:
            return NoActionResponse(kind=ResponseKind.NO_INPUT, message=no_input_response().answer)

        session = self._state.active_session()
        if session.in_flight:
            logger.info("Session #%s busy, message rejected", session.id)
            return ErrorResponse(kind=ResponseKind.BUSY, message=BUSY_MESSAGE)

        if session.pending_conflict is not None:
            logger.info("New message in session #%s discards the pending conflict", session.id)
            session.pending_conflict = None

        now = now or kst_now()
        before = derive_state(session.messages)
        history = list(session.messages)
        session.messages.append(ChatMessage(
            id=new_id(),
            role="user",
            text=text,
            image=image.ref if image is not None else None,
        ))

        session.in_flight = True
        try:
            parsed, sources = await process_chat(
                self._assistant, history, text, image, self._state.store.snapshot(), now,
            )
        except AssistantError as exc:
            logger.error("Assistant call failed in session #%s: %s", session.id, exc)
            if self._is_open(session):
                self._record_answer(session, FAILURE_MESSAGE)
            return ErrorResponse(kind=ResponseKind.ERROR, message=FAILURE_MESSAGE)
        finally:
            session.in_flight = False

        if not self._is_open(session):
            logger.info("Session #%s closed while waiting, reply dropped", session.id)
            return NoActionResponse(kind=ResponseKind.STALE, message="")

        return self._apply(session, parsed, sources, confirmed=deletion_confirmed(before, text), now=now)

    # ------------------------------------------------------------------
    # Public: clarification buttons
    # ------------------------------------------------------------------

    async def answer_clarification(self, index: int, now: datetime | None = None) -> ServiceResponse:
        """Re-submit the chosen option of the pending question as a user message."""
        session = self._state.active_session()
        option = option_reply(derive_state(session.messages), index)
        if option is None:
            return NoActionResponse(kind=ResponseKind.STALE, message="이미 답변한 질문입니다.")
        return await self.send_message(option, now=now)

    # ------------------------------------------------------------------
    # Public: conflict resolution
    # ------------------------------------------------------------------

    def resolve_conflict(self, decision: ConflictDecision | str) -> ServiceResponse:
        """Commit or discard the extraction batch waiting on a conflict decision."""
        session = self._state.active_session()
        pending = session.pending_conflict
        if pending is None:
            return ErrorResponse(kind=ResponseKind.ERROR, message="처리할 중복 항목이 없습니다.")

        try:
            decision = ConflictDecision(decision)
        except ValueError:
            return ErrorResponse(kind=ResponseKind.ERROR, message=f"알 수 없는 선택입니다: {decision}")

        session.pending_conflict = None
        result = apply_extraction(self._state.store, pending.plan, pending.report, decision)
        if decision is ConflictDecision.CANCEL:
            message = "저장을 취소했습니다."
        elif decision is ConflictDecision.OVERWRITE:
            message = "기존 항목을 새 내용으로 덮어썼습니다."
        else:
            message = "중복 여부와 관계없이 추가했습니다."
        if result.changed:
            message += f" ({result.summary()})"
        logger.info("Conflict resolved in session #%s: %s", session.id, decision.value)
        return SuccessResponse(kind=ResponseKind.SUCCESS, message=message, result=result)

    # ------------------------------------------------------------------
    # Public: sessions
    # ------------------------------------------------------------------

    def new_session(self) -> ChatSession:
        return self._state.new_session()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _is_open(self, session: ChatSession) -> bool:
        return self._state.get_session(session.id) is session

    def _record_answer(
        self,
        session: ChatSession,
        text: str,
        options: list[str] | None = None,
        sources: list[WebSource] | None = None,
    ) -> None:
        session.messages.append(ChatMessage(
            id=new_id(),
            role="model",
            text=text,
            clarification_options=options,
            web_search_sources=sources or None,
        ))

    def _apply(
        self,
        session: ChatSession,
        parsed: AssistantResponse,
        sources: list[WebSource],
        confirmed: bool,
        now: datetime,
    ) -> ServiceResponse:
        store = self._state.store
        result = apply_modification(store, parsed.data_modification)

        if deletion_count(parsed.data_deletion):
            if confirmed or not self._require_delete_confirmation:
                result.merge(apply_deletion(store, parsed.data_deletion))
            else:
                logger.warning(
                    "Dropping %d unconfirmed deletions in session #%s",
                    deletion_count(parsed.data_deletion), session.id,
                )

        plan = build_plan(parsed.data_extraction, store.categories, today=now.date())
        report = find_conflicts(plan, store)
        if report.has_conflicts:
            session.pending_conflict = PendingConflict(plan=plan, report=report)
            answer = parsed.answer or CONFLICT_QUESTION
            options = list(parsed.clarification_options) if parsed.clarification_needed else None
            self._record_answer(session, answer, options=options, sources=sources)
            return ConflictPromptResponse(
                kind=ResponseKind.CONFLICT_PROMPT,
                message=answer,
                options=list(CONFLICT_OPTIONS),
                conflicting=report.labels(),
                result=result,
            )
        if not plan.is_empty:
            result.merge(apply_extraction(store, plan))

        answer = parsed.answer or result.summary() or "처리했습니다."
        if parsed.clarification_needed:
            options = list(parsed.clarification_options)
            self._record_answer(session, answer, options=options, sources=sources)
            return ClarificationResponse(
                kind=ResponseKind.CLARIFICATION, message=answer, options=options, result=result,
            )

        self._record_answer(session, answer, sources=sources)
        return AnswerResponse(kind=ResponseKind.ANSWER, message=answer, result=result, sources=sources)
