"""
LifeONE — Clarification state.

The pending follow-up question is not stored anywhere: it is derived from
the chat history. If the last message is an assistant message that asked a
question (``clarification_options`` is a list), the next user message is
its answer.

    Idle ──AI asks──▶ AwaitingClarification(options)
                      AwaitingDeletionConfirmation(options)   ("삭제" + "네")
    Awaiting* ──user replies──▶ Idle

Only the latest question is considered; out-of-order or multi-intent
replies are not interpreted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from lifeone.data.models import ChatMessage

AFFIRMATIVE_REPLIES = frozenset({"네", "예", "응", "yes", "y", "ok", "확인"})
DELETE_KEYWORD = "삭제"
DELETE_CONFIRM_OPTION = "네"


class ClarificationState(Enum):
    IDLE = "idle"
    AWAITING_CLARIFICATION = "awaiting_clarification"
    AWAITING_DELETION_CONFIRMATION = "awaiting_deletion_confirmation"


@dataclass
class ConversationState:
    state: ClarificationState = ClarificationState.IDLE
    question: str = ""
    options: list[str] = field(default_factory=list)

    @property
    def awaiting(self) -> bool:
        return self.state is not ClarificationState.IDLE


def is_deletion_question(text: str, options: list[str]) -> bool:
    return DELETE_KEYWORD in (text or "") and DELETE_CONFIRM_OPTION in options


def derive_state(messages: list[ChatMessage]) -> ConversationState:
    """Derive the pending clarification from the end of the history."""
    if not messages:
        return ConversationState()
    last = messages[-1]
    if last.role != "model" or last.clarification_options is None:
        return ConversationState()
    options = list(last.clarification_options)
    if is_deletion_question(last.text, options):
        state = ClarificationState.AWAITING_DELETION_CONFIRMATION
    else:
        state = ClarificationState.AWAITING_CLARIFICATION
    return ConversationState(state=state, question=last.text, options=options)


def is_affirmative(text: str | None) -> bool:
    return (text or "").strip().casefold() in AFFIRMATIVE_REPLIES


def deletion_confirmed(before: ConversationState, reply: str | None) -> bool:
    """True when ``reply`` answers a pending delete question with yes."""
    return before.state is ClarificationState.AWAITING_DELETION_CONFIRMATION and is_affirmative(reply)


def option_reply(state: ConversationState, index: int) -> str | None:
    """The option text at ``index`` of the pending question, or None if stale."""
    if not state.awaiting or not 0 <= index < len(state.options):
        return None
    return state.options[index]
