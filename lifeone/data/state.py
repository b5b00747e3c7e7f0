"""
LifeONE — Application state container.

Everything one user owns: the entity store, chat sessions, notification
settings and the ids of notifications already delivered. Handlers receive
an ``AppState`` explicitly instead of reaching for module globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from lifeone.data.models import (
    ChatSession,
    NotificationSettings,
    from_dict,
    new_id,
    to_dict,
)
from lifeone.data.store import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_SESSION_TITLE = "새 대화"


@dataclass
class AppState:
    store: EntityStore = field(default_factory=EntityStore)
    sessions: list[ChatSession] = field(default_factory=list)
    active_session_id: str | None = None
    notification_settings: NotificationSettings = field(default_factory=NotificationSettings)
    sent_notifications: list[str] = field(default_factory=list)

    def get_session(self, session_id: str | None) -> ChatSession | None:
        for session in self.sessions:
            if session.id == session_id:
                return session
        return None

    def active_session(self) -> ChatSession:
        """Return the active chat session, creating one on first use."""
        session = self.get_session(self.active_session_id)
        if session is None:
            session = self.new_session()
        return session

    def new_session(self, title: str = DEFAULT_SESSION_TITLE) -> ChatSession:
        session = ChatSession(
            id=new_id(),
            title=title,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        self.sessions.insert(0, session)
        self.active_session_id = session.id
        logger.info("Chat session started: #%s", session.id)
        return session

    def close_session(self, session_id: str) -> bool:
        session = self.get_session(session_id)
        if session is None:
            return False
        self.sessions.remove(session)
        if self.active_session_id == session_id:
            self.active_session_id = self.sessions[0].id if self.sessions else None
        logger.info("Chat session closed: #%s", session_id)
        return True

    # ------------------------------------------------------------------
    # Persistence form: one opaque JSON value per key
    # ------------------------------------------------------------------

    def to_kv(self) -> dict[str, object]:
        kv: dict[str, object] = dict(self.store.to_dict())
        kv["chat_sessions"] = to_dict(self.sessions)
        kv["active_session_id"] = self.active_session_id
        kv["notification_settings"] = to_dict(self.notification_settings)
        kv["sent_notifications"] = list(self.sent_notifications)
        return kv

    @classmethod
    def from_kv(cls, kv: dict[str, object]) -> AppState:
        sessions_raw = kv.get("chat_sessions") or []
        settings_raw = kv.get("notification_settings") or {}
        return cls(
            store=EntityStore.from_dict(kv),
            sessions=[from_dict(ChatSession, s) for s in sessions_raw if isinstance(s, dict)],
            active_session_id=kv.get("active_session_id"),
            notification_settings=from_dict(NotificationSettings, settings_raw),
            sent_notifications=list(kv.get("sent_notifications") or []),
        )
