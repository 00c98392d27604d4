"""Unit tests for reconciliation planning and status reporting."""

from __future__ import annotations

import pytest

from sportlink_sync.domains import MEMBERS
from sportlink_sync.sync.reconcile import EntityState, Reconciler, StatusLabel


def member(knvb_id, first_name="Test", **extra):
    return {"PublicPersonId": knvb_id, "FirstName": first_name, **extra}


@pytest.fixture
def table(database):
    return database.table(MEMBERS.table, MEMBERS.key_field)


@pytest.fixture
def reconciler(table):
    return Reconciler(MEMBERS, table)


def sync_all(table):
    for index, record in enumerate(table.entities_needing_sync(), start=100):
        table.mark_synced(record.identity_key, record.source_hash, index)


def keys(records):
    return [r.identity_key for r in records]


# ---------------------------------------------------------------------------
# ingest
# ---------------------------------------------------------------------------

class TestIngest:
    def test_accepts_valid_records(self, reconciler, table):
        result = reconciler.ingest([member("A1"), member("B2")])
        assert result.keys == ["A1", "B2"]
        assert result.accepted == 2
        assert result.skipped == 0
        assert table.count() == 2

    def test_skips_data_errors_without_storing(self, reconciler, table):
        result = reconciler.ingest([member("A1"), {"FirstName": "No id"}])
        assert result.keys == ["A1"]
        assert result.skipped == 1
        assert "index 1" in result.skip_reasons[0]
        assert table.count() == 1


# ---------------------------------------------------------------------------
# plan
# ---------------------------------------------------------------------------

class TestPlan:
    def test_new_entities_are_created(self, reconciler):
        ingested = reconciler.ingest([member("B2"), member("A1")])
        plan = reconciler.plan(ingested.keys)
        assert keys(plan.to_create) == ["A1", "B2"]
        assert plan.to_update == []
        assert plan.unchanged == []

    def test_changed_synced_entity_is_updated(self, reconciler, table):
        reconciler.ingest([member("A1", "Alice")])
        sync_all(table)
        ingested = reconciler.ingest([member("A1", "Alicia")])

        plan = reconciler.plan(ingested.keys)

        assert keys(plan.to_update) == ["A1"]
        assert plan.to_create == []

    def test_identical_reingest_is_unchanged(self, reconciler, table):
        reconciler.ingest([member("A1")])
        sync_all(table)
        ingested = reconciler.ingest([member("A1")])

        plan = reconciler.plan(ingested.keys)

        assert plan.needs_sync == []
        assert keys(plan.unchanged) == ["A1"]

    def test_force_includes_unchanged(self, reconciler, table):
        reconciler.ingest([member("A1"), member("B2")])
        sync_all(table)
        ingested = reconciler.ingest([member("A1"), member("B2")])

        plan = reconciler.plan(ingested.keys, force=True)

        assert keys(plan.needs_sync) == ["A1", "B2"]
        assert plan.unchanged == []

    def test_absent_synced_entity_is_deleted(self, reconciler, table):
        reconciler.ingest([member("A1"), member("B2")])
        sync_all(table)
        ingested = reconciler.ingest([member("B2")])

        plan = reconciler.plan(ingested.keys)

        assert keys(plan.to_delete) == ["A1"]
        assert plan.to_forget == []

    def test_absent_unsynced_entity_is_forgotten(self, reconciler):
        reconciler.ingest([member("A1"), member("B2")])
        ingested = reconciler.ingest([member("B2")])

        plan = reconciler.plan(ingested.keys)

        assert keys(plan.to_forget) == ["A1"]
        assert plan.to_delete == []

    def test_absent_entity_is_never_synced(self, reconciler):
        reconciler.ingest([member("A1")])
        plan = reconciler.plan([])
        assert plan.needs_sync == []

    def test_empty_batch_suppresses_removals(self, reconciler, table):
        reconciler.ingest([member("A1")])
        sync_all(table)

        plan = reconciler.plan([])

        assert plan.deletions_suppressed
        assert plan.to_delete == []
        assert plan.to_forget == []

    def test_empty_batch_with_confirmation_removes_everything(self, reconciler, table):
        reconciler.ingest([member("A1"), member("B2")])
        sync_all(table)

        plan = reconciler.plan([], confirm_empty=True)

        assert keys(plan.to_delete) == ["A1", "B2"]
        assert not plan.deletions_suppressed

    def test_empty_batch_on_empty_table_is_not_suppressed(self, reconciler):
        assert not reconciler.plan([]).deletions_suppressed

    def test_removals_can_be_skipped(self, reconciler, table):
        reconciler.ingest([member("A1")])
        sync_all(table)
        plan = reconciler.plan(["B2"], include_removals=False)
        assert plan.to_delete == []
        assert plan.to_forget == []


# ---------------------------------------------------------------------------
# classify / status
# ---------------------------------------------------------------------------

class TestClassify:
    def test_unseen(self):
        assert Reconciler.classify(None, set()) is EntityState.UNSEEN

    def test_lifecycle(self, reconciler, table):
        reconciler.ingest([member("A1")])
        assert Reconciler.classify(table.get("A1"), {"A1"}) is EntityState.TRACKED

        sync_all(table)
        assert Reconciler.classify(table.get("A1"), {"A1"}) is EntityState.SYNCED
        assert Reconciler.classify(table.get("A1"), set()) is EntityState.PENDING_DELETE

    def test_absent_never_synced_is_removed(self, reconciler, table):
        reconciler.ingest([member("A1")])
        assert Reconciler.classify(table.get("A1"), set()) is EntityState.REMOVED


class TestStatus:
    def test_labels(self, reconciler, table):
        reconciler.ingest([member("A1"), member("B2")])
        sync_all(table)
        reconciler.ingest([member("A1", "Changed"), member("B2"), member("C3")])

        labels = {e.identity_key: e.status for e in reconciler.status()}

        assert labels == {
            "A1": StatusLabel.CHANGED,
            "B2": StatusLabel.IN_SYNC,
            "C3": StatusLabel.UNSYNCED,
        }
