"""Notification rules — pure business logic.

Derives the day's alerts from one user's AppState:

- D-Day milestones: schedule items flagged isDday at 100, 50, 10 and 1
  days left, on the day itself and every 100 days after it.
- Today's events: one alert per schedule item dated today, timed first.
- Monthly budget: the highest of the 30/50/90/100 % thresholds crossed by
  this month's expenses.

Notification ids are deterministic so an alert is sent at most once; ids in
``state.sent_notifications`` are skipped. Every id embeds the date or month
it fires in, so ids from past months can be pruned.

No I/O: the scheduler delivers what this module returns.
"""

from __future__ import annotations

import logging
import re
from datetime import date
from typing import TYPE_CHECKING

from lifeone.core.calendar_utils import days_until, dday_label, kst_today, korean_holiday
from lifeone.core.stats import monthly_expense_total
from lifeone.data.models import AppNotification, NotificationSettings

if TYPE_CHECKING:
    from lifeone.data.state import AppState

logger = logging.getLogger(__name__)

DDAY_ALERT_DAYS = (100, 50, 10, 1, 0)   # days left
DDAY_ANNIVERSARY_STEP = 100              # D+100, D+200, ... after the day
BUDGET_THRESHOLDS = (100, 90, 50, 30)   # checked highest first

_ID_MONTH_RE = re.compile(r"(\d{4})-(\d{2})")


def _is_milestone(left: int) -> bool:
    if left >= 0:
        return left in DDAY_ALERT_DAYS
    return -left % DDAY_ANNIVERSARY_STEP == 0


def _dday_alerts(state: AppState, today: date) -> list[AppNotification]:
    alerts = []
    for item in state.store.schedule:
        if not item.is_dday:
            continue
        left = days_until(item.date, today)
        if left is None or not _is_milestone(left):
            continue
        label, _ = dday_label(item.date, today)
        if left > 0:
            message = f"{item.title}까지 {left}일 남았습니다."
        elif left == 0:
            message = f"오늘은 {item.title} 당일입니다!"
        else:
            message = f"{item.title}로부터 {-left}일이 지났습니다."
        alerts.append(AppNotification(
            id=f"dday-{item.id}-{label}-{today.isoformat()}",
            type="calendar",
            title=f"{label} {item.title}",
            message=message,
            date=today.isoformat(),
        ))
    return alerts


def _today_alerts(state: AppState, today: date) -> list[AppNotification]:
    todays = [item for item in state.store.schedule if item.date == today.isoformat()]
    # timed events first, in time order
    todays.sort(key=lambda item: (item.time is None, item.time or ""))
    alerts = []
    for item in todays:
        when = item.time or "종일"
        message = f"{when} {item.title}"
        if item.location:
            message += f" @ {item.location}"
        alerts.append(AppNotification(
            id=f"today-{item.id}-{today.isoformat()}",
            type="calendar",
            title="오늘의 일정",
            message=message,
            date=today.isoformat(),
        ))
    return alerts


def _budget_alert(state: AppState, settings: NotificationSettings, today: date) -> AppNotification | None:
    limit = settings.budget.monthly_limit
    spent = monthly_expense_total(state.store.expenses, today.year, today.month)
    percent = spent / limit * 100
    for threshold in BUDGET_THRESHOLDS:
        if percent >= threshold:
            return AppNotification(
                id=f"budget-{today:%Y-%m}-{threshold}",
                type="budget",
                title=f"예산 {threshold}% 도달",
                message=f"이번 달 지출 {spent:,.0f}원 / 목표 {limit:,.0f}원 ({percent:.0f}%)",
                date=today.isoformat(),
            )
    return None


def build_notifications(
    state: AppState,
    settings: NotificationSettings | None = None,
    today: date | None = None,
) -> list[AppNotification]:
    """Alerts due on ``today`` that have not been sent yet."""
    settings = settings or state.notification_settings
    today = today or kst_today()

    candidates: list[AppNotification] = []
    if settings.calendar.enabled:
        if settings.calendar.d_day_alerts:
            candidates.extend(_dday_alerts(state, today))
        if settings.calendar.today_event_alerts:
            candidates.extend(_today_alerts(state, today))
    if settings.budget.enabled and settings.budget.monthly_limit > 0:
        budget = _budget_alert(state, settings, today)
        if budget is not None:
            candidates.append(budget)

    sent = set(state.sent_notifications)
    fresh = [n for n in candidates if n.id not in sent]
    logger.debug("Notifications for %s: %d due, %d new", today, len(candidates), len(fresh))
    return fresh


def prune_sent_notifications(sent_ids: list[str], today: date | None = None) -> list[str]:
    """Drop ids that fired before the current month. Ids without a date are kept."""
    today = today or kst_today()
    current = (today.year, today.month)
    kept = []
    for notification_id in sent_ids:
        # the firing date comes last; record ids may hold digit runs too
        months = _ID_MONTH_RE.findall(notification_id)
        if months and (int(months[-1][0]), int(months[-1][1])) < current:
            continue
        kept.append(notification_id)
    if len(kept) != len(sent_ids):
        logger.debug("Pruned %d old notification ids", len(sent_ids) - len(kept))
    return kept


def render_digest(notifications: list[AppNotification], today: date | None = None) -> str:
    """One plain-text message summarizing the day's alerts."""
    today = today or kst_today()
    header = f"🔔 {today.isoformat()} 알림"
    holiday = korean_holiday(today)
    if holiday:
        header += f" ({holiday})"
    lines = [header]
    for notification in notifications:
        if notification.title == "오늘의 일정":
            lines.append(f"• {notification.message}")
        else:
            lines.append(f"• {notification.title}: {notification.message}")
    return "\n".join(lines)
