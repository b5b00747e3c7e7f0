"""
LifeONE — Daily notification job.

Once a day (NOTIFICATION_HOUR, KST) every known user gets a digest of their
due alerts: D-Day countdowns, today's events and budget thresholds. The same
job purges trash entries past the retention period and forgets the ids of
alerts sent before the current month.

This module is provider-agnostic: it depends on the NotificationPort
protocol, not on Telegram.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import TYPE_CHECKING

from lifeone.core.calendar_utils import kst_today
from lifeone.core.notifications import build_notifications, prune_sent_notifications, render_digest

if TYPE_CHECKING:
    from lifeone.data.db import StateDB
    from lifeone.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)


async def send_daily_notifications(
    notifier: NotificationPort,
    state_db: StateDB,
    owners: list[int] | None = None,
    today: date | None = None,
    retention_days: int | None = None,
) -> int:
    """Push today's alerts to each owner. Returns the number of users notified.

    A failure for one user is logged and does not stop the others. Sent
    notification ids are recorded so a re-run on the same day sends nothing.
    """
    if retention_days is None:
        from lifeone.config import settings
        retention_days = settings.TRASH_RETENTION_DAYS
    today = today or kst_today()
    owners = state_db.list_owners() if owners is None else owners
    now = datetime.now(timezone.utc)

    notified = 0
    for owner_id in owners:
        try:
            state = state_db.load(owner_id)
            state.store.purge_expired_trash(now, retention_days)
            state.sent_notifications = prune_sent_notifications(state.sent_notifications, today)
            notifications = build_notifications(state, today=today)
            if notifications:
                await notifier.send_message(owner_id, render_digest(notifications, today))
                state.sent_notifications.extend(n.id for n in notifications)
                notified += 1
                logger.info("Daily notifications sent to %d (%d alerts)", owner_id, len(notifications))
            state_db.save(owner_id, state)
        except Exception as exc:
            logger.error("Failed to send daily notifications to %d: %s", owner_id, exc)
    return notified
