"""Tests for lifeone.adapters.telegram_notifier."""

from unittest.mock import AsyncMock

import pytest

from lifeone.adapters.telegram_notifier import TelegramNotifier, split_message


class TestSplitMessage:
    def test_short_text_unchanged(self):
        assert split_message("hello\nworld") == ["hello\nworld"]

    def test_splits_at_newlines(self):
        text = "aaaa\nbbbb\ncccc"
        assert split_message(text, limit=10) == ["aaaa\nbbbb", "cccc"]

    def test_overlong_line_hard_split(self):
        assert split_message("x" * 25, limit=10) == ["x" * 10, "x" * 10, "x" * 5]

    def test_every_chunk_within_limit(self):
        text = "\n".join(f"line {i}" for i in range(500))
        assert all(len(chunk) <= 100 for chunk in split_message(text, limit=100))

    def test_blank_text(self):
        assert split_message("\n\n") == []


class TestTelegramNotifier:
    @pytest.mark.asyncio
    async def test_sends_each_chunk(self):
        bot = AsyncMock()
        notifier = TelegramNotifier(bot)
        await notifier.send_message(42, "a" * 5000)
        assert bot.send_message.await_count == 2
        first = bot.send_message.await_args_list[0]
        assert first.kwargs == {"chat_id": 42, "text": "a" * 4096}
