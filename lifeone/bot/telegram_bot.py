"""
LifeONE — Telegram Bot.

Telegram is the only user interface. Text and photo messages go through the
chat service (AI extraction / modification / deletion / answers);
clarification options and the overwrite/ignore/cancel conflict decision are
inline keyboard buttons; slash commands cover the non-AI surfaces (today,
D-Day list, expense stats, budget, notification settings, checklists,
trash, export).

Security-first: unauthorized users are silently ignored.
"""

from __future__ import annotations

import io
import logging
from datetime import date
from datetime import time as dt_time
from functools import wraps
from typing import TYPE_CHECKING, Any, Callable, Coroutine
from zoneinfo import ZoneInfo

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import (
    Application,
    ApplicationBuilder,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

from lifeone.config import settings
from lifeone.core.calendar_utils import dday_label, korean_holiday, kst_today
from lifeone.core.chat_service import (
    AnswerResponse,
    ChatService,
    ClarificationResponse,
    ConflictPromptResponse,
    ServiceResponse,
)
from lifeone.core.prompt_builder import ImageInput
from lifeone.core.stats import month_bounds, monthly_expense_total, summarize_expenses
from lifeone.data.models import UNCATEGORIZED_NAME
from lifeone.data.store import StoreError, record_label

if TYPE_CHECKING:
    from lifeone.data.db import StateDB
    from lifeone.data.state import AppState
    from lifeone.data.store import EntityStore
    from lifeone.ports.assistant_port import AssistantPort
    from lifeone.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

TRASH_PAGE_SIZE = 10
TODO_BUTTON_LIMIT = 50

_TRASH_TYPE_LABELS = {"contact": "연락처", "schedule": "일정", "expense": "가계부", "diary": "메모"}


# ---------------------------------------------------------------------------
# Security: silent-ignore decorator
# ---------------------------------------------------------------------------


def _is_authorized(user: Any) -> bool:
    return user is not None and user.id in settings.ALLOWED_USER_IDS


def authorized_only(
    func: Callable[..., Coroutine[Any, Any, None]],
) -> Callable[..., Coroutine[Any, Any, None]]:
    """Decorator that silently ignores updates from unauthorized users.

    Does NOT send any response to strangers — the bot must not reveal
    its existence to unauthorized users.
    """

    @wraps(func)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        user = update.effective_user
        if not _is_authorized(user):
            uid = user.id if user else "unknown"
            logger.warning("Unauthorized access attempt from user_id=%s", uid)
            return  # Silent ignore
        return await func(update, context)

    return wrapper


# ---------------------------------------------------------------------------
# State access
# ---------------------------------------------------------------------------


def _state_db(context: ContextTypes.DEFAULT_TYPE) -> StateDB:
    return context.bot_data["state_db"]


def _get_state(update: Update, context: ContextTypes.DEFAULT_TYPE) -> AppState:
    return _state_db(context).load(update.effective_user.id)


def _save_state(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    _state_db(context).save(update.effective_user.id)


def _chat_service(update: Update, context: ContextTypes.DEFAULT_TYPE) -> ChatService:
    return ChatService(_get_state(update, context), context.bot_data["assistant"])


# ---------------------------------------------------------------------------
# Rendering service responses
# ---------------------------------------------------------------------------


def render_response(response: ServiceResponse) -> tuple[str, InlineKeyboardMarkup | None]:
    """Plain-text message and optional keyboard for a chat service response."""
    text = response.message
    markup = None

    if isinstance(response, ClarificationResponse):
        if response.options:
            markup = InlineKeyboardMarkup([
                [InlineKeyboardButton(option, callback_data=f"clarify:{index}")]
                for index, option in enumerate(response.options)
            ])
    elif isinstance(response, ConflictPromptResponse):
        if response.conflicting:
            text += "\n\n⚠️ 이미 있는 항목: " + ", ".join(response.conflicting)
        markup = InlineKeyboardMarkup([
            [InlineKeyboardButton(option.label, callback_data=f"conflict:{option.key}")]
            for option in response.options
        ])
    elif isinstance(response, AnswerResponse):
        if response.result.changed:
            text += f"\n\n✅ {response.result.summary()}"
        if response.sources:
            text += "\n\n🔎 출처:\n" + "\n".join(f"• {s.title}: {s.uri}" for s in response.sources)

    return text, markup


async def _reply(update: Update, response: ServiceResponse) -> None:
    text, markup = render_response(response)
    if not text:
        return
    await update.effective_message.reply_text(text, reply_markup=markup)


# ---------------------------------------------------------------------------
# Message handlers
# ---------------------------------------------------------------------------


async def _process(
    update: Update,
    context: ContextTypes.DEFAULT_TYPE,
    text: str | None,
    image: ImageInput | None = None,
) -> None:
    processing_msg = await update.message.reply_text("처리 중...")
    service = _chat_service(update, context)
    response = await service.send_message(text, image)
    _save_state(update, context)
    await _reply(update, response)
    try:
        await processing_msg.delete()
    except Exception:
        pass  # Non-critical if delete fails


@authorized_only
async def handle_text(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle plain text messages — one assistant turn."""
    await _process(update, context, update.message.text)


@authorized_only
async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle photos (receipts, business cards, posters) with an optional caption."""
    photo = update.message.photo[-1]  # largest size
    try:
        photo_file = await context.bot.get_file(photo.file_id)
        data = await photo_file.download_as_bytearray()
    except Exception as exc:
        logger.error("Photo download error: %s", exc)
        await update.message.reply_text("사진을 불러오지 못했습니다. 다시 보내 주세요.")
        return

    image = ImageInput(data=bytes(data), mime_type="image/jpeg", ref=photo.file_id)
    await _process(update, context, update.message.caption, image)


@authorized_only
async def handle_import(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Replace the user's data with an uploaded /export JSON document."""
    document = update.message.document
    try:
        doc_file = await context.bot.get_file(document.file_id)
        payload = (await doc_file.download_as_bytearray()).decode("utf-8")
        state = _state_db(context).import_json(update.effective_user.id, payload)
    except (ValueError, UnicodeDecodeError) as exc:
        logger.warning("Import rejected for %d: %s", update.effective_user.id, exc)
        await update.message.reply_text("가져올 수 없는 파일입니다. /export 로 만든 JSON 파일을 보내 주세요.")
        return

    counts = state.store.counts()
    await update.message.reply_text(
        "데이터를 가져왔습니다: "
        f"연락처 {counts['contacts']}, 일정 {counts['schedule']}, "
        f"가계부 {counts['expenses']}, 메모 {counts['diary']}"
    )


# ---------------------------------------------------------------------------
# Callback handlers (inline keyboards)
# ---------------------------------------------------------------------------


async def _handle_clarify_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """An option button of the pending question was tapped."""
    query = update.callback_query
    await query.answer()
    if not _is_authorized(query.from_user):
        return

    index = int(query.data.split(":")[1])
    await query.edit_message_reply_markup(reply_markup=None)
    service = _chat_service(update, context)
    response = await service.answer_clarification(index)
    _save_state(update, context)
    await _reply(update, response)


async def _handle_conflict_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Overwrite / ignore / cancel for a batch with duplicates."""
    query = update.callback_query
    await query.answer()
    if not _is_authorized(query.from_user):
        return

    decision = query.data.split(":")[1]
    response = _chat_service(update, context).resolve_conflict(decision)
    _save_state(update, context)
    await query.edit_message_text(response.message)


async def _handle_trash_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Restore one trashed record."""
    query = update.callback_query
    await query.answer()
    if not _is_authorized(query.from_user):
        return

    trash_id = query.data.split(":", 1)[1]
    store = _get_state(update, context).store
    try:
        store.restore(trash_id)
    except StoreError as exc:
        logger.warning("Restore failed: %s", exc)
        await query.edit_message_text("이미 복원되었거나 삭제된 항목입니다.")
        return
    _save_state(update, context)
    await query.edit_message_text("복원했습니다.")


async def _handle_todo_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Check or uncheck one checklist item and redraw the list."""
    query = update.callback_query
    await query.answer()
    if not _is_authorized(query.from_user):
        return

    item_id = query.data.split(":", 1)[1]
    store = _get_state(update, context).store
    try:
        store.toggle_checklist_item(item_id)
    except StoreError as exc:
        logger.warning("Checklist toggle failed: %s", exc)
        await query.edit_message_text("삭제되었거나 찾을 수 없는 항목입니다.")
        return
    _save_state(update, context)
    text, markup = render_todo(store)
    await query.edit_message_text(text, reply_markup=markup)


# ---------------------------------------------------------------------------
# Command handlers
# ---------------------------------------------------------------------------


@authorized_only
async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start — welcome message."""
    await update.message.reply_text(
        "안녕하세요, LifeONE 입니다!\n\n"
        "일정, 연락처, 가계부, 메모를 말로 관리해 보세요:\n"
        "• \"내일 3시 @회의 팀 미팅\"\n"
        "• \"점심 9,000원\"\n"
        "• \"김민준 010-1234-5678 친구\"\n"
        "• 영수증이나 명함 사진도 보낼 수 있어요\n\n"
        "/help 로 전체 명령어를 볼 수 있습니다."
    )


@authorized_only
async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help — list available commands."""
    await update.message.reply_text(
        "명령어:\n"
        "/new — 새 대화 시작\n"
        "/today — 오늘 일정\n"
        "/dday — D-Day 목록\n"
        "/stats [YYYY-MM] — 월별 수입/지출\n"
        "/budget [금액] — 월 예산 확인/설정\n"
        "/notify [calendar|dday|today|budget] [on|off] — 알림 설정\n"
        "/todo — 체크리스트 (완료 표시)\n"
        "/trash — 휴지통 (복원)\n"
        "/emptytrash — 휴지통 비우기\n"
        "/export — 데이터 내보내기 (JSON 파일을 보내면 가져오기)\n"
        "/help — 도움말"
    )


@authorized_only
async def cmd_new(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /new — start a fresh chat session."""
    _chat_service(update, context).new_session()
    _save_state(update, context)
    await update.message.reply_text("새 대화를 시작합니다.")


@authorized_only
async def cmd_today(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /today — today's schedule items and holiday."""
    store = _get_state(update, context).store
    today = kst_today()
    items = [item for item in store.schedule if item.date == today.isoformat()]
    items.sort(key=lambda item: (item.time is None, item.time or ""))

    header = f"📅 {today.isoformat()}"
    holiday = korean_holiday(today)
    if holiday:
        header += f" 🎌 {holiday}"
    if not items:
        await update.message.reply_text(f"{header}\n오늘 일정이 없습니다.")
        return

    lines = [header]
    for item in items:
        category = store.get_category(item.category_id)
        line = f"• {item.time or '종일'} {item.title} [{category.name if category else UNCATEGORIZED_NAME}]"
        if item.location:
            line += f" @ {item.location}"
        lines.append(line)
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_dday(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /dday — countdown for every D-Day item."""
    store = _get_state(update, context).store
    today = kst_today()
    items = sorted((item for item in store.schedule if item.is_dday), key=lambda item: item.date)
    if not items:
        await update.message.reply_text("등록된 D-Day가 없습니다.")
        return

    upcoming, past = [], []
    for item in items:
        label, is_past = dday_label(item.date, today)
        (past if is_past else upcoming).append(f"• {label} {item.title} ({item.date})")
    lines = upcoming
    if past:
        lines += ["", "지난 D-Day:"] + past
    await update.message.reply_text("\n".join(lines))


def _parse_month(arg: str | None, today: date) -> tuple[int, int] | None:
    if not arg:
        return today.year, today.month
    try:
        year_s, month_s = arg.replace(".", "-").replace("/", "-").split("-")[:2]
        year, month = int(year_s), int(month_s)
    except ValueError:
        return None
    if not 1 <= month <= 12:
        return None
    return year, month


@authorized_only
async def cmd_stats(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stats [YYYY-MM] — income, expense and category breakdown."""
    parsed = _parse_month(context.args[0] if context.args else None, kst_today())
    if parsed is None:
        await update.message.reply_text("사용법: /stats 2025-03")
        return

    store = _get_state(update, context).store
    start, end = month_bounds(*parsed)
    summary = summarize_expenses(store.expenses, start, end)
    lines = [
        f"📊 {parsed[0]}년 {parsed[1]}월",
        f"수입: {summary.income:,.0f}원",
        f"지출: {summary.expense:,.0f}원",
        f"합계: {summary.net:+,.0f}원",
    ]
    if summary.by_category:
        lines.append("")
        for name, amount in summary.by_category:
            share = amount / summary.expense * 100 if summary.expense else 0
            lines.append(f"• {name}: {amount:,.0f}원 ({share:.0f}%)")
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_budget(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /budget [amount] — show or set the monthly spending goal."""
    state = _get_state(update, context)
    budget = state.notification_settings.budget

    if context.args:
        try:
            limit = int(context.args[0].replace(",", "").replace("원", ""))
        except ValueError:
            await update.message.reply_text("사용법: /budget 500000")
            return
        if limit < 0:
            await update.message.reply_text("예산은 0 이상이어야 합니다.")
            return
        budget.monthly_limit = limit
        budget.enabled = limit > 0
        _save_state(update, context)
        if budget.enabled:
            await update.message.reply_text(
                f"월 예산을 {limit:,}원으로 설정했습니다. 30%, 50%, 90%, 100% 도달 시 알려 드립니다."
            )
        else:
            await update.message.reply_text("예산 알림을 껐습니다.")
        return

    today = kst_today()
    spent = monthly_expense_total(state.store.expenses, today.year, today.month)
    if not budget.enabled or budget.monthly_limit <= 0:
        await update.message.reply_text(f"이번 달 지출: {spent:,.0f}원 (예산 미설정)")
        return
    percent = spent / budget.monthly_limit * 100
    await update.message.reply_text(
        f"이번 달 지출: {spent:,.0f}원 / {budget.monthly_limit:,}원 ({percent:.0f}%)"
    )


_NOTIFY_TOGGLES = {
    "calendar": ("calendar", "enabled", "캘린더 알림"),
    "dday": ("calendar", "d_day_alerts", "D-Day 알림"),
    "today": ("calendar", "today_event_alerts", "오늘 일정 알림"),
    "budget": ("budget", "enabled", "예산 알림"),
}


def _on_off(value: bool) -> str:
    return "켜짐" if value else "꺼짐"


@authorized_only
async def cmd_notify(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /notify [name on|off] — show or toggle notification settings."""
    state = _get_state(update, context)
    notification_settings = state.notification_settings

    if len(context.args or []) == 2:
        name, value = context.args[0].lower(), context.args[1].lower()
        if name not in _NOTIFY_TOGGLES or value not in ("on", "off"):
            await update.message.reply_text("사용법: /notify dday off")
            return
        group, attr, label = _NOTIFY_TOGGLES[name]
        if name == "budget" and value == "on" and notification_settings.budget.monthly_limit <= 0:
            await update.message.reply_text("먼저 /budget 으로 월 예산을 설정해 주세요.")
            return
        setattr(getattr(notification_settings, group), attr, value == "on")
        _save_state(update, context)
        await update.message.reply_text(f"{label}: {_on_off(value == 'on')}")
        return

    lines = [f"🔔 알림 설정 (매일 {settings.NOTIFICATION_HOUR:02d}:00)"]
    for name, (group, attr, label) in _NOTIFY_TOGGLES.items():
        current = getattr(getattr(notification_settings, group), attr)
        lines.append(f"• {label} ({name}): {_on_off(current)}")
    await update.message.reply_text("\n".join(lines))


@authorized_only
async def cmd_trash(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /trash — recent trashed records with restore buttons."""
    store = _get_state(update, context).store
    if not store.trash:
        await update.message.reply_text("휴지통이 비어 있습니다.")
        return

    keyboard = [
        [InlineKeyboardButton(
            f"↩️ [{_TRASH_TYPE_LABELS.get(item.type, item.type)}] {item.title}",
            callback_data=f"trash:{item.id}",
        )]
        for item in store.trash[:TRASH_PAGE_SIZE]
    ]
    more = len(store.trash) - TRASH_PAGE_SIZE
    text = f"휴지통 ({len(store.trash)}개, {settings.TRASH_RETENTION_DAYS}일 후 자동 삭제)"
    if more > 0:
        text += f"\n최근 {TRASH_PAGE_SIZE}개만 표시합니다."
    await update.message.reply_text(text, reply_markup=InlineKeyboardMarkup(keyboard))


def render_todo(store: EntityStore) -> tuple[str, InlineKeyboardMarkup | None]:
    """Checklists as text plus one toggle button per item."""
    checklists = [entry for entry in store.diary if entry.is_checklist and entry.checklist_items]
    if not checklists:
        return "체크리스트가 없습니다.", None

    lines, keyboard = [], []
    for entry in checklists:
        done = sum(1 for item in entry.checklist_items if item.completed)
        lines.append(f"📝 {record_label(entry)} ({done}/{len(entry.checklist_items)})")
        for item in entry.checklist_items:
            if len(keyboard) >= TODO_BUTTON_LIMIT:
                break
            mark = "✅" if item.completed else "⬜"
            label = f"{mark} {item.text}"
            if item.due_date:
                label += f" ({item.due_date})"
            keyboard.append([InlineKeyboardButton(label, callback_data=f"todo:{item.id}")])
    return "\n".join(lines), InlineKeyboardMarkup(keyboard)


@authorized_only
async def cmd_todo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /todo — checklists with a tap-to-complete button per item."""
    text, markup = render_todo(_get_state(update, context).store)
    await update.message.reply_text(text, reply_markup=markup)


@authorized_only
async def cmd_emptytrash(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /emptytrash — permanently delete everything in trash."""
    count = _get_state(update, context).store.empty_trash()
    _save_state(update, context)
    await update.message.reply_text(f"휴지통을 비웠습니다 ({count}개 영구 삭제).")


@authorized_only
async def cmd_export(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /export — send the user's whole state as a JSON document."""
    payload = _state_db(context).export_json(update.effective_user.id)
    await update.message.reply_document(
        document=io.BytesIO(payload.encode("utf-8")),
        filename=f"lifeone-{kst_today().isoformat()}.json",
        caption="LifeONE 데이터 백업입니다. 이 파일을 다시 보내면 가져올 수 있습니다.",
    )


# ---------------------------------------------------------------------------
# App builder
# ---------------------------------------------------------------------------


def build_app(
    assistant: AssistantPort | None = None,
    notifier: NotificationPort | None = None,
    state_db: StateDB | None = None,
) -> Application:
    """Build and configure the Telegram Application with all handlers.

    Args:
        assistant: Assistant port implementation. Defaults to LLMAssistant.
        notifier: Notification port implementation. Defaults to TelegramNotifier
                  (created from the bot instance after app is built).
        state_db: Persistence. Defaults to StateDB at DATABASE_PATH.
    """
    app = ApplicationBuilder().token(settings.TELEGRAM_BOT_TOKEN).build()

    # Wire default adapters if not provided
    if assistant is None:
        from lifeone.adapters.llm_assistant import LLMAssistant
        assistant = LLMAssistant()

    if notifier is None:
        from lifeone.adapters.telegram_notifier import TelegramNotifier
        notifier = TelegramNotifier(app.bot)

    if state_db is None:
        from lifeone.data.db import StateDB
        state_db = StateDB()

    # Store ports in bot_data for handler access
    app.bot_data["assistant"] = assistant
    app.bot_data["notifier"] = notifier
    app.bot_data["state_db"] = state_db

    # Commands
    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help", cmd_help))
    app.add_handler(CommandHandler("new", cmd_new))
    app.add_handler(CommandHandler("today", cmd_today))
    app.add_handler(CommandHandler("dday", cmd_dday))
    app.add_handler(CommandHandler("stats", cmd_stats))
    app.add_handler(CommandHandler("budget", cmd_budget))
    app.add_handler(CommandHandler("notify", cmd_notify))
    app.add_handler(CommandHandler("todo", cmd_todo))
    app.add_handler(CommandHandler("trash", cmd_trash))
    app.add_handler(CommandHandler("emptytrash", cmd_emptytrash))
    app.add_handler(CommandHandler("export", cmd_export))
    app.add_handler(CallbackQueryHandler(_handle_clarify_callback, pattern=r"^clarify:\d+$"))
    app.add_handler(CallbackQueryHandler(_handle_conflict_callback, pattern=r"^conflict:"))
    app.add_handler(CallbackQueryHandler(_handle_trash_callback, pattern=r"^trash:"))
    app.add_handler(CallbackQueryHandler(_handle_todo_callback, pattern=r"^todo:"))

    # Text, photos and backup documents
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_text))
    app.add_handler(MessageHandler(filters.PHOTO, handle_photo))
    app.add_handler(MessageHandler(filters.Document.FileExtension("json"), handle_import))

    _setup_daily_notifications(app, notifier, state_db)

    logger.info("Telegram bot application built with %d handlers", len(app.handlers[0]))
    return app


def _setup_daily_notifications(
    app: Application,
    notifier: NotificationPort,
    state_db: StateDB,
) -> None:
    """Register the daily notification job at NOTIFICATION_HOUR in TIMEZONE."""
    from lifeone.core.scheduler import send_daily_notifications

    tz = ZoneInfo(settings.TIMEZONE)
    notify_time = dt_time(hour=settings.NOTIFICATION_HOUR, minute=0, tzinfo=tz)

    async def _daily_job_callback(context: ContextTypes.DEFAULT_TYPE) -> None:
        await send_daily_notifications(notifier, state_db)

    app.job_queue.run_daily(
        _daily_job_callback,
        time=notify_time,
        name="daily_notifications",
    )

    logger.info(
        "Daily notifications scheduled at %02d:00 %s",
        settings.NOTIFICATION_HOUR,
        settings.TIMEZONE,
    )


def main() -> None:
    """Entry point: build the app and start polling."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    logger.info("Starting LifeONE bot...")
    app = build_app()
    app.run_polling()


if __name__ == "__main__":
    main()
