"""Remote sync driver: pushes tracked entities to a remote target.

Entities are processed one at a time in ascending key order.  Every
successful write is recorded in the mirror store before the next entity
is attempted, so an interrupted run resumes exactly where it stopped.
A failure is recorded against its entity and never aborts the batch.
"""

from __future__ import annotations

import logging
import time
from enum import StrEnum

from pydantic import BaseModel, Field

from sportlink_sync.errors import RemoteAPIError
from sportlink_sync.sync.linker import RelationshipLinker
from sportlink_sync.sync.retry import SINGLE_ATTEMPT, Pacer, RetryPolicy, Sleeper, call_with_retry
from sportlink_sync.sync.store import MirrorRecord, MirrorTable
from sportlink_sync.sync.targets import RemoteId, RemoteTarget

logger = logging.getLogger(__name__)


class SyncAction(StrEnum):
    """What happened to one entity on the remote side."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"
    FORGOTTEN = "forgotten"


class SyncIssue(BaseModel):
    """A per-entity failure."""

    key: str
    message: str
    operation: str = "sync"


class DriverResult(BaseModel):
    """Keys touched by one driver pass, grouped by action."""

    created: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    forgotten: list[str] = Field(default_factory=list)
    errors: list[SyncIssue] = Field(default_factory=list)


class RemoteSyncDriver:
    """Creates, updates and deletes remote records for one mirror table.

    Args:
        table: Mirror table the records come from.
        target: Remote target to write to.
        pacer: Delay enforcer shared by everything writing to the target.
        retry_policy: Retry policy for create/update/delete calls.
            Lookups are never retried.
        linker: Optional relationship linker for parent records.
        sleep: Sleep function used for retry backoff.
    """

    def __init__(
        self,
        table: MirrorTable,
        target: RemoteTarget,
        *,
        pacer: Pacer | None = None,
        retry_policy: RetryPolicy = SINGLE_ATTEMPT,
        linker: RelationshipLinker | None = None,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._table = table
        self._target = target
        self._pacer = pacer or Pacer()
        self._retry_policy = retry_policy
        self._linker = linker
        self._sleep = sleep

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    def sync(self, records: list[MirrorRecord]) -> DriverResult:
        """Push *records* to the remote in ascending key order."""
        result = DriverResult()
        ordered = sorted(records, key=lambda r: r.identity_key)
        for index, record in enumerate(ordered, start=1):
            logger.debug("Syncing %d/%d: %s", index, len(ordered), record.identity_key)
            self._pacer.before_call()
            try:
                action, remote_id = self.sync_one(record)
            except RemoteAPIError as exc:
                logger.error("Failed to sync %s: %s", record.identity_key, exc)
                result.errors.append(SyncIssue(key=record.identity_key, message=str(exc)))
                continue

            if action is SyncAction.CREATED:
                result.created.append(record.identity_key)
            else:
                result.updated.append(record.identity_key)
            logger.info("%s %s (remote id %s)", action.value.capitalize(), record.identity_key, remote_id)

            if self._linker is not None:
                self._linker.link_children(record, remote_id)
        return result

    def sync_one(self, record: MirrorRecord) -> tuple[SyncAction, RemoteId]:
        """Resolve, write and record one entity.

        Raises:
            RemoteAPIError: If the create or update call fails after all
                retry attempts.
        """
        match = self._target.find(record)
        body = self._target.build_body(record, match)
        if self._linker is not None:
            body = self._linker.merge_links(record, body, match)

        if match is not None:
            remote_id = self._with_retry(
                lambda: self._target.update(match, record, body),
                f"update {record.identity_key}",
            )
            action = SyncAction.UPDATED
        else:
            remote_id = self._with_retry(
                lambda: self._target.create(record, body),
                f"create {record.identity_key}",
            )
            action = SyncAction.CREATED

        self._table.mark_synced(record.identity_key, record.source_hash, remote_id)
        return action, remote_id

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    def delete(
        self, to_delete: list[MirrorRecord], to_forget: list[MirrorRecord]
    ) -> DriverResult:
        """Remove entities that disappeared from the source.

        Rows that were never written remotely are dropped locally without
        a remote call.  A remote delete drops the row only on success; on
        failure the row stays and is retried on the next run.
        """
        result = DriverResult()
        for record in sorted(to_forget, key=lambda r: r.identity_key):
            self._table.delete_row(record.identity_key)
            result.forgotten.append(record.identity_key)
            logger.debug("Stopped tracking %s (never synced)", record.identity_key)

        for record in sorted(to_delete, key=lambda r: r.identity_key):
            self._pacer.before_call()
            logger.debug("Deleting %s (remote id %s)", record.identity_key, record.remote_id)
            try:
                self._with_retry(
                    lambda: self._target.delete(record),
                    f"delete {record.identity_key}",
                )
            except RemoteAPIError as exc:
                logger.error("Failed to delete %s: %s", record.identity_key, exc)
                result.errors.append(
                    SyncIssue(key=record.identity_key, message=str(exc), operation="delete")
                )
                continue
            self._table.delete_row(record.identity_key)
            result.deleted.append(record.identity_key)
            logger.info("Deleted %s (remote id %s)", record.identity_key, record.remote_id)
        return result

    def _with_retry(self, func, description: str):
        return call_with_retry(
            func, self._retry_policy, sleep=self._sleep, description=description
        )
