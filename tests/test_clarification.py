"""Tests for lifeone.core.clarification — pending question derived from history."""

import pytest

from lifeone.core.clarification import (
    ClarificationState,
    ConversationState,
    deletion_confirmed,
    derive_state,
    is_affirmative,
    is_deletion_question,
    option_reply,
)
from lifeone.data.models import ChatMessage


def _user(text):
    return ChatMessage(id="u", role="user", text=text)


def _model(text, options=None):
    return ChatMessage(id="m", role="model", text=text, clarification_options=options)


class TestDeriveState:
    def test_empty_history_is_idle(self):
        assert derive_state([]).state is ClarificationState.IDLE

    def test_plain_answer_is_idle(self):
        assert derive_state([_user("안녕"), _model("안녕하세요")]).state is ClarificationState.IDLE

    def test_question_awaits_clarification(self):
        state = derive_state([_user("정보처리기사 1단원 끝내기"),
                              _model("이 내용을 어디에 저장할까요?", ["To-do list", "메모", "일정"])])
        assert state.state is ClarificationState.AWAITING_CLARIFICATION
        assert state.options == ["To-do list", "메모", "일정"]
        assert state.awaiting is True

    def test_delete_question(self):
        state = derive_state([_model("정말로 '팀 회의' 일정을 삭제하시겠습니까?", ["네", "아니요"])])
        assert state.state is ClarificationState.AWAITING_DELETION_CONFIRMATION

    def test_answered_question_is_idle(self):
        history = [_model("9시가 오전인가요, 오후인가요?", ["오전", "오후"]), _user("오후")]
        assert derive_state(history).state is ClarificationState.IDLE

    def test_question_without_options(self):
        state = derive_state([_model("몇 시인가요?", [])])
        assert state.state is ClarificationState.AWAITING_CLARIFICATION
        assert state.options == []


def test_is_deletion_question_needs_both_keyword_and_yes():
    assert is_deletion_question("삭제할까요?", ["네", "아니요"]) is True
    assert is_deletion_question("저장할까요?", ["네", "아니요"]) is False
    assert is_deletion_question("삭제할까요?", ["예", "아니오"]) is False


class TestAffirmative:
    @pytest.mark.parametrize("reply", ["네", " 네 ", "예", "응", "YES", "ok", "확인"])
    def test_yes(self, reply):
        assert is_affirmative(reply) is True

    @pytest.mark.parametrize("reply", ["아니요", "네 그런데 잠깐", "", None])
    def test_not_yes(self, reply):
        assert is_affirmative(reply) is False


class TestDeletionConfirmed:
    def test_yes_after_delete_question(self):
        before = derive_state([_model("정말로 삭제하시겠습니까?", ["네", "아니요"])])
        assert deletion_confirmed(before, "네") is True

    def test_no_after_delete_question(self):
        before = derive_state([_model("정말로 삭제하시겠습니까?", ["네", "아니요"])])
        assert deletion_confirmed(before, "아니요") is False

    def test_yes_without_question(self):
        assert deletion_confirmed(ConversationState(), "네") is False


class TestOptionReply:
    def test_valid_index(self):
        state = derive_state([_model("오전인가요, 오후인가요?", ["오전", "오후"])])
        assert option_reply(state, 1) == "오후"

    def test_out_of_range(self):
        state = derive_state([_model("오전인가요, 오후인가요?", ["오전", "오후"])])
        assert option_reply(state, 5) is None

    def test_idle(self):
        assert option_reply(ConversationState(), 0) is None
