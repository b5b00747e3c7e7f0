"""Tests for lifeone.bot.telegram_bot — Telegram bot handlers.

Tests rendering, command handlers, callbacks and authorization.
The assistant is scripted and the state lives in an in-memory StateDB.
"""

import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from lifeone.bot.telegram_bot import (
    _handle_clarify_callback,
    _handle_conflict_callback,
    _handle_todo_callback,
    _handle_trash_callback,
    _parse_month,
    cmd_budget,
    cmd_export,
    cmd_new,
    cmd_notify,
    cmd_stats,
    cmd_todo,
    cmd_trash,
    handle_import,
    handle_text,
    render_response,
    render_todo,
)
from lifeone.core.chat_service import (
    CONFLICT_OPTIONS,
    AnswerResponse,
    ClarificationResponse,
    ConflictPromptResponse,
    ErrorResponse,
    ResponseKind,
)
from lifeone.core.reconciler import ReconcileResult
from lifeone.data.db import StateDB
from lifeone.data.models import ChecklistItem, Contact, DiaryEntry, Expense, WebSource

USER_ID = 12345


def _make_update(text=None, user_id=USER_ID):
    """Create a mock Update with a text message from an authorized user."""
    update = MagicMock()
    update.message.text = text
    update.effective_user.id = user_id
    processing = MagicMock()
    processing.delete = AsyncMock()
    update.message.reply_text = AsyncMock(return_value=processing)
    update.message.reply_document = AsyncMock()
    update.effective_message = update.message
    return update


def _make_callback(data, user_id=USER_ID):
    update = _make_update(user_id=user_id)
    update.callback_query.data = data
    update.callback_query.from_user.id = user_id
    update.callback_query.answer = AsyncMock()
    update.callback_query.edit_message_text = AsyncMock()
    update.callback_query.edit_message_reply_markup = AsyncMock()
    return update


def _make_context(assistant=None, args=None, state_db=None):
    """Create a mock context with the ports in bot_data."""
    context = MagicMock()
    context.args = args or []
    context.bot_data = {
        "assistant": assistant or MagicMock(),
        "state_db": state_db or StateDB(db_path=":memory:"),
    }
    return context


def _reply_texts(update):
    return [call.args[0] for call in update.message.reply_text.await_args_list]


# ---------------------------------------------------------------------------
# render_response
# ---------------------------------------------------------------------------


class TestRenderResponse:
    def test_clarification_buttons(self):
        text, markup = render_response(ClarificationResponse(
            kind=ResponseKind.CLARIFICATION, message="오전인가요?", options=["오전", "오후"],
        ))
        assert text == "오전인가요?"
        buttons = [row[0] for row in markup.inline_keyboard]
        assert [(b.text, b.callback_data) for b in buttons] == [("오전", "clarify:0"), ("오후", "clarify:1")]

    def test_conflict_buttons_and_labels(self):
        text, markup = render_response(ConflictPromptResponse(
            kind=ResponseKind.CONFLICT_PROMPT, message="중복", options=list(CONFLICT_OPTIONS), conflicting=["김민준"],
        ))
        assert "⚠️ 이미 있는 항목: 김민준" in text
        assert [row[0].callback_data for row in markup.inline_keyboard] == [
            "conflict:overwrite", "conflict:ignore", "conflict:cancel",
        ]

    def test_answer_with_summary_and_sources(self):
        text, markup = render_response(AnswerResponse(
            kind=ResponseKind.ANSWER,
            message="저장했어요.",
            result=ReconcileResult(created=2),
            sources=[WebSource(title="뉴스", uri="https://news.example")],
        ))
        assert markup is None
        assert "✅ 2건 추가" in text
        assert "• 뉴스: https://news.example" in text

    def test_error_plain(self):
        assert render_response(ErrorResponse(kind=ResponseKind.ERROR, message="실패")) == ("실패", None)


def test_parse_month():
    today = date(2025, 3, 10)
    assert _parse_month(None, today) == (2025, 3)
    assert _parse_month("2024-12", today) == (2024, 12)
    assert _parse_month("2024.02", today) == (2024, 2)
    assert _parse_month("2024-13", today) is None
    assert _parse_month("march", today) is None


# ---------------------------------------------------------------------------
# Authorization
# ---------------------------------------------------------------------------


class TestAuthorization:
    @pytest.mark.asyncio
    async def test_unauthorized_user_ignored(self, fake_assistant):
        update = _make_update("점심 9000원", user_id=999)
        context = _make_context(fake_assistant)
        await handle_text(update, context)
        update.message.reply_text.assert_not_awaited()
        assert fake_assistant.requests == []

    @pytest.mark.asyncio
    async def test_unauthorized_callback_ignored(self):
        update = _make_callback("conflict:overwrite", user_id=999)
        await _handle_conflict_callback(update, _make_context())
        update.callback_query.edit_message_text.assert_not_awaited()


# ---------------------------------------------------------------------------
# Chat flow
# ---------------------------------------------------------------------------


class TestHandleText:
    @pytest.mark.asyncio
    async def test_answer_replied_and_state_saved(self, fake_assistant):
        fake_assistant.queue({
            "answer": "연락처를 저장했어요.",
            "dataExtraction": {"contacts": [{"name": "김민준", "phone": "01012345678"}]},
        })
        state_db = StateDB(db_path=":memory:")
        update = _make_update("김민준 01012345678")
        await handle_text(update, _make_context(fake_assistant, state_db=state_db))

        texts = _reply_texts(update)
        assert texts[0] == "처리 중..."
        assert texts[-1].startswith("연락처를 저장했어요.")
        assert state_db.list_owners() == [USER_ID]
        assert state_db.load(USER_ID).store.contacts[0].phone == "010-1234-5678"

    @pytest.mark.asyncio
    async def test_clarification_keyboard(self, fake_assistant):
        fake_assistant.queue({
            "answer": "어디에 저장할까요?", "clarificationNeeded": True, "clarificationOptions": ["메모", "일정"],
        })
        update = _make_update("정보처리기사 1단원")
        await handle_text(update, _make_context(fake_assistant))
        markup = update.message.reply_text.await_args_list[-1].kwargs["reply_markup"]
        assert [row[0].text for row in markup.inline_keyboard] == ["메모", "일정"]


class TestCallbacks:
    @pytest.mark.asyncio
    async def test_clarify_resubmits_option(self, fake_assistant):
        fake_assistant.queue({
            "answer": "오전인가요, 오후인가요?", "clarificationNeeded": True, "clarificationOptions": ["오전", "오후"],
        })
        fake_assistant.queue({"answer": "알겠습니다."})
        context = _make_context(fake_assistant)
        await handle_text(_make_update("9시 병원"), context)

        update = _make_callback("clarify:1")
        await _handle_clarify_callback(update, context)
        assert fake_assistant.requests[-1].text == "오후"
        update.callback_query.edit_message_reply_markup.assert_awaited_once_with(reply_markup=None)
        assert _reply_texts(update) == ["알겠습니다."]

    @pytest.mark.asyncio
    async def test_conflict_overwrite(self, fake_assistant):
        state_db = StateDB(db_path=":memory:")
        state_db.load(USER_ID).store.add("contacts", Contact(id="", name="김민준", phone="010-1111-2222"))
        fake_assistant.queue({"dataExtraction": {"contacts": [{"name": "김민준", "phone": "010-3333-4444"}]}})
        context = _make_context(fake_assistant, state_db=state_db)
        await handle_text(_make_update("김민준 010-3333-4444"), context)

        update = _make_callback("conflict:overwrite")
        await _handle_conflict_callback(update, context)
        message = update.callback_query.edit_message_text.await_args.args[0]
        assert message.startswith("기존 항목을 새 내용으로 덮어썼습니다.")
        assert [c.phone for c in state_db.load(USER_ID).store.contacts] == ["010-3333-4444"]

    @pytest.mark.asyncio
    async def test_trash_restore(self):
        state_db = StateDB(db_path=":memory:")
        store = state_db.load(USER_ID).store
        contact = store.add("contacts", Contact(id="", name="김민준"))
        trashed = store.delete("contacts", contact.id)

        update = _make_callback(f"trash:{trashed.id}")
        await _handle_trash_callback(update, _make_context(state_db=state_db))
        update.callback_query.edit_message_text.assert_awaited_once_with("복원했습니다.")
        assert [c.name for c in store.contacts] == ["김민준"]

        again = _make_callback(f"trash:{trashed.id}")
        await _handle_trash_callback(again, _make_context(state_db=state_db))
        again.callback_query.edit_message_text.assert_awaited_once_with("이미 복원되었거나 삭제된 항목입니다.")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestCmdBudget:
    @pytest.mark.asyncio
    async def test_set_limit(self):
        context = _make_context(args=["500,000"])
        update = _make_update("/budget 500,000")
        await cmd_budget(update, context)
        budget = context.bot_data["state_db"].load(USER_ID).notification_settings.budget
        assert (budget.monthly_limit, budget.enabled) == (500000, True)
        assert "500,000원" in _reply_texts(update)[0]

    @pytest.mark.asyncio
    async def test_zero_disables(self):
        context = _make_context(args=["0"])
        await cmd_budget(_make_update("/budget 0"), context)
        assert context.bot_data["state_db"].load(USER_ID).notification_settings.budget.enabled is False

    @pytest.mark.asyncio
    async def test_invalid_amount(self):
        update = _make_update("/budget lots")
        await cmd_budget(update, _make_context(args=["lots"]))
        assert _reply_texts(update) == ["사용법: /budget 500000"]

    @pytest.mark.asyncio
    async def test_show_without_limit(self):
        update = _make_update("/budget")
        await cmd_budget(update, _make_context())
        assert "예산 미설정" in _reply_texts(update)[0]


class TestCmdNotify:
    @pytest.mark.asyncio
    async def test_toggle_off(self):
        context = _make_context(args=["dday", "off"])
        update = _make_update("/notify dday off")
        await cmd_notify(update, context)
        calendar = context.bot_data["state_db"].load(USER_ID).notification_settings.calendar
        assert calendar.d_day_alerts is False
        assert _reply_texts(update) == ["D-Day 알림: 꺼짐"]

    @pytest.mark.asyncio
    async def test_budget_on_requires_limit(self):
        context = _make_context(args=["budget", "on"])
        update = _make_update("/notify budget on")
        await cmd_notify(update, context)
        assert context.bot_data["state_db"].load(USER_ID).notification_settings.budget.enabled is False
        assert "/budget" in _reply_texts(update)[0]

    @pytest.mark.asyncio
    async def test_show_settings(self):
        update = _make_update("/notify")
        await cmd_notify(update, _make_context())
        text = _reply_texts(update)[0]
        assert "D-Day 알림 (dday): 켜짐" in text
        assert "예산 알림 (budget): 꺼짐" in text


class TestCmdStats:
    @pytest.mark.asyncio
    async def test_month_breakdown(self):
        state_db = StateDB(db_path=":memory:")
        store = state_db.load(USER_ID).store
        store.add("expenses", Expense(id="", date="2025-03-01", item="점심", amount=9000, category="식비"))
        store.add("expenses", Expense(id="", date="2025-03-02", item="월급", amount=100000, type="income"))
        update = _make_update("/stats 2025-03")
        await cmd_stats(update, _make_context(args=["2025-03"], state_db=state_db))
        text = _reply_texts(update)[0]
        assert "📊 2025년 3월" in text
        assert "지출: 9,000원" in text
        assert "• 식비: 9,000원 (100%)" in text

    @pytest.mark.asyncio
    async def test_bad_month(self):
        update = _make_update("/stats x")
        await cmd_stats(update, _make_context(args=["x"]))
        assert _reply_texts(update) == ["사용법: /stats 2025-03"]


class TestCmdTrash:
    @pytest.mark.asyncio
    async def test_empty(self):
        update = _make_update("/trash")
        await cmd_trash(update, _make_context())
        assert _reply_texts(update) == ["휴지통이 비어 있습니다."]

    @pytest.mark.asyncio
    async def test_restore_buttons(self):
        state_db = StateDB(db_path=":memory:")
        store = state_db.load(USER_ID).store
        contact = store.add("contacts", Contact(id="", name="김민준"))
        trashed = store.delete("contacts", contact.id)
        update = _make_update("/trash")
        await cmd_trash(update, _make_context(state_db=state_db))
        markup = update.message.reply_text.await_args.kwargs["reply_markup"]
        button = markup.inline_keyboard[0][0]
        assert button.callback_data == f"trash:{trashed.id}"
        assert "[연락처] 김민준" in button.text


def _add_checklist(state_db):
    store = state_db.load(USER_ID).store
    return store.add("diary", DiaryEntry(
        id="", date="2025-03-10", entry="장보기", is_checklist=True,
        checklist_items=[
            ChecklistItem(id="i1", text="우유"),
            ChecklistItem(id="i2", text="계란", completed=True, due_date="이번 주까지"),
        ],
    ))


class TestTodo:
    @pytest.mark.asyncio
    async def test_empty(self):
        update = _make_update("/todo")
        await cmd_todo(update, _make_context())
        assert _reply_texts(update) == ["체크리스트가 없습니다."]

    def test_plain_memos_not_listed(self):
        state_db = StateDB(db_path=":memory:")
        state_db.load(USER_ID).store.add("diary", DiaryEntry(id="", date="2025-03-10", entry="메모"))
        assert render_todo(state_db.load(USER_ID).store) == ("체크리스트가 없습니다.", None)

    @pytest.mark.asyncio
    async def test_item_buttons(self):
        state_db = StateDB(db_path=":memory:")
        _add_checklist(state_db)
        update = _make_update("/todo")
        await cmd_todo(update, _make_context(state_db=state_db))
        assert _reply_texts(update) == ["📝 장보기 (1/2)"]
        markup = update.message.reply_text.await_args.kwargs["reply_markup"]
        assert [(row[0].text, row[0].callback_data) for row in markup.inline_keyboard] == [
            ("⬜ 우유", "todo:i1"),
            ("✅ 계란 (이번 주까지)", "todo:i2"),
        ]

    @pytest.mark.asyncio
    async def test_tap_toggles_and_redraws(self):
        state_db = StateDB(db_path=":memory:")
        entry = _add_checklist(state_db)
        update = _make_callback("todo:i1")
        await _handle_todo_callback(update, _make_context(state_db=state_db))

        assert entry.checklist_items[0].completed is True
        call = update.callback_query.edit_message_text.await_args
        assert call.args[0] == "📝 장보기 (2/2)"
        assert call.kwargs["reply_markup"].inline_keyboard[0][0].text == "✅ 우유"

    @pytest.mark.asyncio
    async def test_unknown_item(self):
        state_db = StateDB(db_path=":memory:")
        _add_checklist(state_db)
        update = _make_callback("todo:gone")
        await _handle_todo_callback(update, _make_context(state_db=state_db))
        update.callback_query.edit_message_text.assert_awaited_once_with("삭제되었거나 찾을 수 없는 항목입니다.")

    @pytest.mark.asyncio
    async def test_unauthorized_ignored(self):
        state_db = StateDB(db_path=":memory:")
        entry = _add_checklist(state_db)
        update = _make_callback("todo:i1", user_id=999)
        await _handle_todo_callback(update, _make_context(state_db=state_db))
        assert entry.checklist_items[0].completed is False
        update.callback_query.edit_message_text.assert_not_awaited()


class TestSessionsAndBackup:
    @pytest.mark.asyncio
    async def test_new_session(self):
        context = _make_context()
        state = context.bot_data["state_db"].load(USER_ID)
        first = state.active_session()
        await cmd_new(_make_update("/new"), context)
        assert state.active_session() is not first

    @pytest.mark.asyncio
    async def test_export_sends_document(self):
        update = _make_update("/export")
        await cmd_export(update, _make_context())
        kwargs = update.message.reply_document.await_args.kwargs
        data = json.loads(kwargs["document"].getvalue().decode("utf-8"))
        assert "contacts" in data
        assert kwargs["filename"].endswith(".json")

    @pytest.mark.asyncio
    async def test_import_rejects_bad_file(self):
        update = _make_update()
        context = _make_context()
        doc_file = MagicMock()
        doc_file.download_as_bytearray = AsyncMock(return_value=bytearray(b"[1, 2]"))
        context.bot.get_file = AsyncMock(return_value=doc_file)
        await handle_import(update, context)
        assert "가져올 수 없는 파일" in _reply_texts(update)[0]

    @pytest.mark.asyncio
    async def test_import_rejects_malformed_records(self):
        update = _make_update()
        context = _make_context()
        context.bot_data["state_db"].load(USER_ID).store.add("contacts", Contact(id="c1", name="원래"))
        doc_file = MagicMock()
        doc_file.download_as_bytearray = AsyncMock(return_value=bytearray('{"contacts": [{"name": "김민준"}]}'.encode("utf-8")))
        context.bot.get_file = AsyncMock(return_value=doc_file)
        await handle_import(update, context)
        assert "가져올 수 없는 파일" in _reply_texts(update)[0]
        assert [c.name for c in context.bot_data["state_db"].load(USER_ID).store.contacts] == ["원래"]

    @pytest.mark.asyncio
    async def test_import_replaces_state(self):
        source = StateDB(db_path=":memory:")
        source.load(1).store.add("contacts", Contact(id="c1", name="가져온"))
        update = _make_update()
        context = _make_context()
        doc_file = MagicMock()
        doc_file.download_as_bytearray = AsyncMock(return_value=bytearray(source.export_json(1).encode("utf-8")))
        context.bot.get_file = AsyncMock(return_value=doc_file)
        await handle_import(update, context)
        assert _reply_texts(update)[0].startswith("데이터를 가져왔습니다: 연락처 1")
        assert context.bot_data["state_db"].load(USER_ID).store.contacts[0].name == "가져온"
