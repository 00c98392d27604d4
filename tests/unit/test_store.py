"""Unit tests for the SQLite mirror store."""

from __future__ import annotations

import pytest

from sportlink_sync.sync.hashing import compute_source_hash
from sportlink_sync.sync.store import MirrorDatabase, PreparedEntity


def entity(key, secondary=None, **payload):
    return PreparedEntity(identity_key=key, secondary_key=secondary, payload=payload)


@pytest.fixture
def table(database):
    return database.table("stadion_members", key_field="knvb_id")


# ---------------------------------------------------------------------------
# upsert_batch
# ---------------------------------------------------------------------------

class TestUpsertBatch:
    def test_inserts_new_rows(self, table):
        assert table.upsert_batch([entity("A1", "a@x.com", name="Alice")]) == 1

        record = table.get("A1")
        assert record.payload == {"name": "Alice"}
        assert record.secondary_key == "a@x.com"
        assert record.source_hash == compute_source_hash("A1", {"name": "Alice"}, "knvb_id")
        assert record.last_synced_hash is None
        assert record.remote_id is None
        assert record.needs_sync

    def test_refresh_keeps_sync_bookkeeping(self, table):
        table.upsert_batch([entity("A1", name="Alice")])
        original = table.get("A1")
        table.mark_synced("A1", original.source_hash, 101)

        table.upsert_batch([entity("A1", name="Alicia")])

        record = table.get("A1")
        assert record.payload == {"name": "Alicia"}
        assert record.remote_id == 101
        assert record.last_synced_hash == original.source_hash
        assert record.first_seen_at == original.first_seen_at
        assert record.needs_sync

    def test_identical_reingest_is_not_dirty(self, table):
        table.upsert_batch([entity("A1", name="Alice")])
        table.mark_synced("A1", table.get("A1").source_hash, 101)

        table.upsert_batch([entity("A1", name="Alice")])

        assert table.entities_needing_sync() == []

    def test_empty_batch(self, table):
        assert table.upsert_batch([]) == 0
        assert table.count() == 0


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQueries:
    def test_needing_sync_ordered_by_key(self, table):
        table.upsert_batch([entity("C3"), entity("A1"), entity("B2")])
        keys = [r.identity_key for r in table.entities_needing_sync()]
        assert keys == ["A1", "B2", "C3"]

    def test_needing_sync_excludes_synced(self, table):
        table.upsert_batch([entity("A1"), entity("B2")])
        table.mark_synced("A1", table.get("A1").source_hash, 1)
        assert [r.identity_key for r in table.entities_needing_sync()] == ["B2"]

    def test_force_returns_all(self, table):
        table.upsert_batch([entity("A1"), entity("B2")])
        table.mark_synced("A1", table.get("A1").source_hash, 1)
        assert [r.identity_key for r in table.entities_needing_sync(force=True)] == ["A1", "B2"]

    def test_not_in(self, table):
        table.upsert_batch([entity("A1"), entity("B2"), entity("C3")])
        assert [r.identity_key for r in table.entities_not_in(["B2"])] == ["A1", "C3"]

    def test_not_in_empty_matches_everything(self, table):
        table.upsert_batch([entity("A1"), entity("B2")])
        assert [r.identity_key for r in table.entities_not_in([])] == ["A1", "B2"]

    def test_remote_id_map_covers_only_synced_rows(self, table):
        table.upsert_batch([entity("A1"), entity("B2")])
        table.mark_synced("A1", table.get("A1").source_hash, 55)
        assert table.remote_id_map() == {"A1": 55}

    def test_get_missing(self, table):
        assert table.get("nope") is None

    def test_delete_row(self, table):
        table.upsert_batch([entity("A1")])
        table.delete_row("A1")
        assert table.get("A1") is None
        assert table.count() == 0

    def test_string_remote_id_round_trips(self, database):
        laposta = database.table("laposta_list1_members", key_field="email")
        laposta.upsert_batch([entity("a@x.com")])
        laposta.mark_synced("a@x.com", laposta.get("a@x.com").source_hash, "9zq3xyq")
        assert laposta.get("a@x.com").remote_id == "9zq3xyq"

    @pytest.mark.parametrize("remote_id", ["1e5", "00123", "123", "-4", " 7"])
    def test_numeric_looking_string_ids_stay_strings(self, database, remote_id):
        laposta = database.table("laposta_list1_members", key_field="email")
        laposta.upsert_batch([entity("a@x.com")])
        laposta.mark_synced("a@x.com", laposta.get("a@x.com").source_hash, remote_id)

        assert laposta.get("a@x.com").remote_id == remote_id
        assert laposta.remote_id_map() == {"a@x.com": remote_id}

    def test_integer_ids_stay_integers(self, table):
        table.upsert_batch([entity("A1")])
        table.mark_synced("A1", table.get("A1").source_hash, 101)

        assert table.get("A1").remote_id == 101
        assert table.remote_id_map() == {"A1": 101}


# ---------------------------------------------------------------------------
# MirrorDatabase
# ---------------------------------------------------------------------------

class TestMirrorDatabase:
    def test_tables_are_cached(self, database):
        assert database.table("stadion_members") is database.table("stadion_members")

    def test_rejects_unsafe_table_names(self, database):
        with pytest.raises(ValueError):
            database.table("members; DROP TABLE x")

    def test_table_requires_open_database(self):
        with pytest.raises(RuntimeError):
            MirrorDatabase().table("stadion_members")

    def test_persists_across_connections(self, tmp_path):
        path = tmp_path / "nested" / "mirror.sqlite"
        with MirrorDatabase(path) as db:
            db.table("stadion_members", "knvb_id").upsert_batch([entity("A1", name="Alice")])
        with MirrorDatabase(path) as db:
            assert db.table("stadion_members", "knvb_id").get("A1").payload == {"name": "Alice"}
