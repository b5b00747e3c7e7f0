"""Telegram notification adapter — implements NotificationPort.

Delivers daily alerts through a telegram.Bot, splitting texts longer than
Telegram's per-message limit at line boundaries.
"""

from __future__ import annotations

import logging

from telegram import Bot

logger = logging.getLogger(__name__)

TELEGRAM_MESSAGE_LIMIT = 4096


def split_message(text: str, limit: int = TELEGRAM_MESSAGE_LIMIT) -> list[str]:
    """Split ``text`` into chunks of at most ``limit`` characters, preferring newlines."""
    chunks: list[str] = []
    current = ""
    for line in text.splitlines(keepends=True):
        while len(line) > limit:
            if current:
                chunks.append(current)
                current = ""
            chunks.append(line[:limit])
            line = line[limit:]
        if len(current) + len(line) > limit:
            chunks.append(current)
            current = ""
        current += line
    if current:
        chunks.append(current)
    return [c.rstrip("\n") for c in chunks if c.strip()]


class TelegramNotifier:
    """Telegram implementation of NotificationPort."""

    def __init__(self, bot: Bot) -> None:
        self._bot = bot

    async def send_message(self, user_id: int, text: str) -> None:
        for chunk in split_message(text):
            await self._bot.send_message(chat_id=user_id, text=chunk)
        logger.debug("Notification sent to %d (%d chars)", user_id, len(text))
