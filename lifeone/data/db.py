"""
LifeONE — State Database.

The persistence boundary: each user's AppState is stored as an opaque
key-value set (one JSON value per key) in SQLite, surviving bot restarts.
Loaded states are cached so the bot handlers and the daily notification
job share the same in-memory objects.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from pathlib import Path

from lifeone.data.state import AppState

logger = logging.getLogger(__name__)

STATE_KEYS = (
    "contacts",
    "schedule",
    "categories",
    "expenses",
    "diary",
    "trash",
    "chat_sessions",
    "active_session_id",
    "notification_settings",
    "sent_notifications",
)


class StateDB:
    """SQLite-backed key-value storage for per-user application state."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from lifeone.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        self._cache: dict[int, AppState] = {}
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._memory_conn: sqlite3.Connection | None = None
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        if self._db_path == ":memory:":
            # A fresh :memory: connection would be an empty database every time
            if self._memory_conn is None:
                self._memory_conn = sqlite3.connect(":memory:")
            return self._memory_conn
        return sqlite3.connect(self._db_path)

    def _init_db(self) -> None:
        """Create the kv table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv (
                    owner_id  INTEGER NOT NULL,
                    key       TEXT    NOT NULL,
                    value     TEXT    NOT NULL,
                    PRIMARY KEY (owner_id, key)
                )
            """)
        logger.debug("State table initialized at %s", self._db_path)

    # ------------------------------------------------------------------
    # Raw key-value access
    # ------------------------------------------------------------------

    def _read_kv(self, owner_id: int) -> dict[str, object]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT key, value FROM kv WHERE owner_id = ?", (owner_id,)
            ).fetchall()
        kv: dict[str, object] = {}
        for key, value in rows:
            try:
                kv[key] = json.loads(value)
            except json.JSONDecodeError as exc:
                logger.error("Corrupt value for owner %d key '%s': %s", owner_id, key, exc)
        return kv

    def _write_kv(self, owner_id: int, kv: dict[str, object]) -> None:
        with self._connect() as conn:
            conn.executemany(
                """
                INSERT INTO kv (owner_id, key, value) VALUES (?, ?, ?)
                ON CONFLICT (owner_id, key) DO UPDATE SET value = excluded.value
                """,
                [
                    (owner_id, key, json.dumps(kv.get(key), ensure_ascii=False))
                    for key in STATE_KEYS
                ],
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self, owner_id: int) -> AppState:
        """Return the owner's state, creating an empty one on first use."""
        if owner_id in self._cache:
            return self._cache[owner_id]
        kv = self._read_kv(owner_id)
        state = AppState.from_kv(kv) if kv else AppState()
        self._cache[owner_id] = state
        logger.info("State loaded for owner %d (%d keys)", owner_id, len(kv))
        return state

    def save(self, owner_id: int, state: AppState | None = None) -> None:
        if state is None:
            state = self._cache.get(owner_id)
            if state is None:
                return
        self._cache[owner_id] = state
        self._write_kv(owner_id, state.to_kv())
        logger.debug("State saved for owner %d", owner_id)

    def list_owners(self) -> list[int]:
        with self._connect() as conn:
            rows = conn.execute("SELECT DISTINCT owner_id FROM kv ORDER BY owner_id").fetchall()
        return [row[0] for row in rows]

    def export_json(self, owner_id: int) -> str:
        """Serialize the owner's whole state as one JSON document."""
        state = self.load(owner_id)
        return json.dumps(state.to_kv(), ensure_ascii=False, indent=2)

    def import_json(self, owner_id: int, payload: str) -> AppState:
        """Replace the owner's state with an exported JSON document.

        Raises ValueError if the payload is not a JSON object or a record in
        it is missing required fields. The stored state is left untouched.
        """
        data = json.loads(payload)
        if not isinstance(data, dict):
            raise ValueError("Import payload must be a JSON object")
        try:
            state = AppState.from_kv(data)
        except (TypeError, AttributeError) as exc:
            raise ValueError(f"Import payload has malformed records: {exc}") from exc
        self.save(owner_id, state)
        logger.info("State imported for owner %d", owner_id)
        return state
