"""Shared test fixtures and configuration.

Sets up fake environment variables so lifeone.config doesn't sys.exit(),
and provides common fixtures: an empty store/state, a temp StateDB and a
scripted assistant.
"""

import os

# Patch env vars BEFORE any lifeone imports
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "fake-token-for-tests")
os.environ.setdefault("LLM_API_KEY", "fake-llm-key-for-tests")
os.environ.setdefault("LLM_PROVIDER", "gemini")
os.environ.setdefault("ALLOWED_USER_IDS", "12345")
os.environ.setdefault("DATABASE_PATH", ":memory:")

import json

import pytest

from lifeone.ports.assistant_port import AssistantError, AssistantReply


class FakeAssistant:
    """AssistantPort double: returns queued replies and records every request."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests = []

    def queue(self, reply):
        self.replies.append(reply)

    async def generate(self, request):
        self.requests.append(request)
        if not self.replies:
            raise AssistantError("no reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, dict):
            reply = json.dumps(reply, ensure_ascii=False)
        if isinstance(reply, str):
            reply = AssistantReply(text=reply)
        return reply


@pytest.fixture
def store():
    """An empty EntityStore (only the 미분류 category)."""
    from lifeone.data.store import EntityStore
    return EntityStore()


@pytest.fixture
def state():
    from lifeone.data.state import AppState
    return AppState()


@pytest.fixture
def state_db(tmp_path):
    """A StateDB backed by a temp file."""
    from lifeone.data.db import StateDB
    return StateDB(db_path=str(tmp_path / "test_lifeone.db"))


@pytest.fixture
def fake_assistant():
    return FakeAssistant()
