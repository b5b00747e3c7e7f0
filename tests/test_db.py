"""Tests for lifeone.data.db — StateDB (SQLite key-value storage)."""

import json

import pytest

from lifeone.data.db import STATE_KEYS, StateDB
from lifeone.data.models import Contact, ScheduleItem


class TestStateDBLoadAndSave:
    def test_first_load_is_empty_state(self, state_db):
        state = state_db.load(1)
        assert state.store.contacts == []
        assert [c.name for c in state.store.categories] == ["미분류"]
        assert state.sessions == []

    def test_load_is_cached(self, state_db):
        assert state_db.load(1) is state_db.load(1)

    def test_survives_restart(self, tmp_path):
        path = str(tmp_path / "restart.db")
        db = StateDB(db_path=path)
        state = db.load(7)
        state.store.add("contacts", Contact(id="", name="김민준", phone="010-1234-5678"))
        state.new_session()
        state.sent_notifications.append("today-x-2025-03-10")
        db.save(7)

        reloaded = StateDB(db_path=path).load(7)
        assert [c.name for c in reloaded.store.contacts] == ["김민준"]
        assert reloaded.active_session_id == state.active_session_id
        assert reloaded.sent_notifications == ["today-x-2025-03-10"]

    def test_owners_isolated(self, state_db):
        state_db.load(1).store.add("contacts", Contact(id="", name="A"))
        state_db.save(1)
        assert state_db.load(2).store.contacts == []

    def test_save_unknown_owner_without_state_is_noop(self, state_db):
        state_db.save(99)
        assert state_db.list_owners() == []

    def test_transient_session_fields_not_persisted(self, tmp_path):
        path = str(tmp_path / "transient.db")
        db = StateDB(db_path=path)
        session = db.load(1).new_session()
        session.in_flight = True
        session.pending_conflict = object()
        db.save(1)
        reloaded = StateDB(db_path=path).load(1).sessions[0]
        assert reloaded.in_flight is False
        assert reloaded.pending_conflict is None

    def test_memory_database(self):
        db = StateDB(db_path=":memory:")
        db.save(3, db.load(3))
        assert db.list_owners() == [3]


class TestListOwners:
    def test_sorted_distinct(self, state_db):
        for owner in (30, 10, 20):
            state_db.save(owner, state_db.load(owner))
        assert state_db.list_owners() == [10, 20, 30]


class TestExportImport:
    def test_export_has_every_key(self, state_db):
        data = json.loads(state_db.export_json(1))
        assert set(data) == set(STATE_KEYS)

    def test_export_keeps_korean_readable(self, state_db):
        state_db.load(1).store.add("schedule", ScheduleItem(id="s1", title="회의", date="2025-03-10"))
        assert "회의" in state_db.export_json(1)

    def test_import_replaces_state(self, state_db):
        state_db.load(1).store.add("contacts", Contact(id="", name="원래"))
        source = StateDB(db_path=":memory:")
        source.load(2).store.add("contacts", Contact(id="c9", name="가져온"))
        imported = state_db.import_json(1, source.export_json(2))
        assert [c.name for c in imported.store.contacts] == ["가져온"]
        assert state_db.load(1) is imported

    def test_import_rejects_non_object(self, state_db):
        with pytest.raises(ValueError):
            state_db.import_json(1, "[1, 2, 3]")

    def test_import_rejects_invalid_json(self, state_db):
        with pytest.raises(ValueError):
            state_db.import_json(1, "not json")

    def test_import_rejects_record_missing_fields(self, state_db):
        state_db.load(1).store.add("contacts", Contact(id="c1", name="원래"))
        state_db.save(1)
        with pytest.raises(ValueError):
            state_db.import_json(1, '{"contacts": [{"name": "김민준"}]}')
        assert [c.name for c in state_db.load(1).store.contacts] == ["원래"]

    def test_import_rejects_wrong_collection_type(self, state_db):
        with pytest.raises(ValueError):
            state_db.import_json(1, '{"contacts": 5}')
