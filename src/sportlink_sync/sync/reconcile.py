"""Reconciliation: classify tracked entities against the latest batch.

Classification is computed from the hashes persisted in the mirror store,
never from in-memory state, so a run that was interrupted halfway is
simply picked up again by the next one.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from datetime import datetime
from enum import StrEnum
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from sportlink_sync.sync.store import MirrorRecord, MirrorTable

if TYPE_CHECKING:
    from sportlink_sync.domains import EntityDomain, RawRecord

logger = logging.getLogger(__name__)


class EntityState(StrEnum):
    """Lifecycle state of one entity within a sync cycle."""

    UNSEEN = "unseen"
    TRACKED = "tracked"
    SYNCED = "synced"
    PENDING_DELETE = "pending_delete"
    REMOVED = "removed"


class StatusLabel(StrEnum):
    """Human-readable label for a tracked entity's sync status."""

    IN_SYNC = "in_sync"
    CHANGED = "changed"
    UNSYNCED = "unsynced"


class StatusEntry(BaseModel):
    """Status snapshot for one tracked entity."""

    identity_key: str
    remote_id: int | str | None = None
    status: StatusLabel
    last_synced: datetime | None = None


class IngestResult(BaseModel):
    """Outcome of ingesting one raw batch."""

    keys: list[str] = Field(default_factory=list)
    skip_reasons: list[str] = Field(default_factory=list)

    @property
    def accepted(self) -> int:
        return len(self.keys)

    @property
    def skipped(self) -> int:
        return len(self.skip_reasons)


class ReconciliationPlan(BaseModel):
    """Tracked rows partitioned by the action they need.

    Every list is ordered by identity key.
    """

    to_create: list[MirrorRecord] = Field(default_factory=list)
    to_update: list[MirrorRecord] = Field(default_factory=list)
    unchanged: list[MirrorRecord] = Field(default_factory=list)
    to_delete: list[MirrorRecord] = Field(default_factory=list)
    to_forget: list[MirrorRecord] = Field(default_factory=list)
    deletions_suppressed: bool = False

    @property
    def needs_sync(self) -> list[MirrorRecord]:
        return sorted(self.to_create + self.to_update, key=lambda r: r.identity_key)


class Reconciler:
    """Feeds raw batches into a mirror table and plans remote actions.

    Args:
        domain: Entity domain that prepares raw records.
        table: Mirror table for that domain.
    """

    def __init__(self, domain: EntityDomain, table: MirrorTable) -> None:
        self._domain = domain
        self._table = table

    def ingest(self, raw_entities: Sequence[RawRecord]) -> IngestResult:
        """Prepare *raw_entities* and upsert the accepted ones.

        Records that fail preparation are counted and never stored.
        """
        prepared = self._domain.prepare_batch(raw_entities)
        self._table.upsert_batch(prepared.entities)
        if prepared.skipped:
            logger.warning(
                "Skipped %d %s record(s) with data errors",
                len(prepared.skipped), self._domain.name,
            )
        logger.info(
            "Ingested %d %s record(s) into %s",
            len(prepared.entities), self._domain.name, self._table.name,
        )
        return IngestResult(keys=prepared.keys, skip_reasons=prepared.skipped)

    def plan(
        self,
        current_keys: Iterable[str],
        force: bool = False,
        confirm_empty: bool = False,
        include_removals: bool = True,
    ) -> ReconciliationPlan:
        """Partition tracked rows against the keys of the latest batch.

        Args:
            current_keys: Identity keys present in the latest full batch.
            force: Treat every present row as needing sync.
            confirm_empty: Allow an empty batch to remove every tracked
                row.  Without it an empty batch plans no removals.
            include_removals: Plan removals at all.

        Returns:
            The ``ReconciliationPlan``.
        """
        current = set(current_keys)
        plan = ReconciliationPlan()

        pending = [
            r for r in self._table.entities_needing_sync(force) if r.identity_key in current
        ]
        pending_keys = {r.identity_key for r in pending}
        for record in pending:
            if record.remote_id is None:
                plan.to_create.append(record)
            else:
                plan.to_update.append(record)

        absent = self._table.entities_not_in(current)
        plan.unchanged = [
            r
            for r in self._table.all_records()
            if r.identity_key in current and r.identity_key not in pending_keys
        ]

        if not include_removals or not absent:
            return plan
        if not current and not confirm_empty:
            logger.warning(
                "Batch for %s is empty; not removing %d tracked record(s)",
                self._domain.name, len(absent),
            )
            plan.deletions_suppressed = True
            return plan

        for record in absent:
            if self.classify(record, current) is EntityState.PENDING_DELETE:
                plan.to_delete.append(record)
            else:
                plan.to_forget.append(record)
        return plan

    @staticmethod
    def classify(record: MirrorRecord | None, current_keys: set[str]) -> EntityState:
        """Lifecycle state of *record* given the keys of the latest batch.

        An absent row that was never written remotely classifies as
        ``REMOVED``: it only needs to be dropped locally.
        """
        if record is None:
            return EntityState.UNSEEN
        if record.identity_key not in current_keys:
            if record.remote_id is not None:
                return EntityState.PENDING_DELETE
            return EntityState.REMOVED
        if record.needs_sync:
            return EntityState.TRACKED
        return EntityState.SYNCED

    def status(self) -> list[StatusEntry]:
        """Return a status snapshot for every tracked row."""
        entries = []
        for record in self._table.all_records():
            if record.last_synced_hash is None:
                label = StatusLabel.UNSYNCED
            elif record.last_synced_hash != record.source_hash:
                label = StatusLabel.CHANGED
            else:
                label = StatusLabel.IN_SYNC
            entries.append(
                StatusEntry(
                    identity_key=record.identity_key,
                    remote_id=record.remote_id,
                    status=label,
                    last_synced=record.last_synced_at,
                )
            )
        return entries
