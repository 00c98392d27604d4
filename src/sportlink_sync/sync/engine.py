"""Sync engine orchestrator for one entity domain.

Coordinates the whole cycle: ingesting a raw batch into the mirror store,
reconciling it against what was synced before, pushing creates and
updates to the remote, and finally removing entities that disappeared
from the source.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING

from pydantic import BaseModel, Field

from sportlink_sync.sync.driver import RemoteSyncDriver, SyncIssue
from sportlink_sync.sync.linker import RelationshipLinker
from sportlink_sync.sync.reconcile import Reconciler
from sportlink_sync.sync.retry import SINGLE_ATTEMPT, Pacer, RetryPolicy, Sleeper
from sportlink_sync.sync.store import MirrorTable
from sportlink_sync.sync.targets import RemoteTarget

if TYPE_CHECKING:
    from sportlink_sync.domains import EntityDomain, RawRecord

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Report model
# ------------------------------------------------------------------


class SyncReport(BaseModel):
    """Outcome of one sync cycle for one domain."""

    domain: str
    total: int = 0
    skipped: int = 0
    unchanged: int = 0
    created: int = 0
    updated: int = 0
    deleted: int = 0
    forgotten: int = 0
    linked: int = 0
    unresolved_links: int = 0
    deletions_suppressed: bool = False
    errors: list[SyncIssue] = Field(default_factory=list)

    @property
    def synced(self) -> int:
        return self.created + self.updated

    @property
    def success(self) -> bool:
        return not self.errors


# ------------------------------------------------------------------
# Engine
# ------------------------------------------------------------------


class SyncEngine:
    """Runs ingestion, reconciliation, remote sync and deletions.

    Args:
        domain: Entity domain being synced.
        table: Mirror table for the domain.
        target: Remote target the domain is written to.
        pacer: Delay enforcer for remote mutations.
        retry_policy: Retry policy for remote mutations.
        linker: Optional relationship linker, used for parents.
        sleep: Sleep function used for retry backoff.
    """

    def __init__(
        self,
        domain: EntityDomain,
        table: MirrorTable,
        target: RemoteTarget,
        *,
        pacer: Pacer | None = None,
        retry_policy: RetryPolicy = SINGLE_ATTEMPT,
        linker: RelationshipLinker | None = None,
        sleep: Sleeper = time.sleep,
    ) -> None:
        self._domain = domain
        self._table = table
        self._linker = linker
        self._reconciler = Reconciler(domain, table)
        self._driver = RemoteSyncDriver(
            table,
            target,
            pacer=pacer,
            retry_policy=retry_policy,
            linker=linker,
            sleep=sleep,
        )

    @property
    def reconciler(self) -> Reconciler:
        return self._reconciler

    def run(
        self,
        raw_entities: Sequence[RawRecord],
        force: bool = False,
        confirm_empty: bool = False,
        skip_deletes: bool = False,
    ) -> SyncReport:
        """Sync *raw_entities*, the complete current batch for the domain.

        Args:
            raw_entities: Raw source records.
            force: Push every present entity regardless of its hash.
            confirm_empty: Let an empty batch remove every tracked entity.
            skip_deletes: Plan and perform no removals.

        Returns:
            A ``SyncReport``.  Per-entity failures are listed in
            ``errors``; they never abort the run.
        """
        report = SyncReport(domain=self._domain.name)

        ingested = self._reconciler.ingest(raw_entities)
        report.total = ingested.accepted
        report.skipped = ingested.skipped

        plan = self._reconciler.plan(
            ingested.keys,
            force=force,
            confirm_empty=confirm_empty,
            include_removals=not skip_deletes,
        )
        report.unchanged = len(plan.unchanged)
        report.deletions_suppressed = plan.deletions_suppressed
        logger.info(
            "%s: %d to create, %d to update, %d unchanged, %d to delete, %d to forget",
            self._domain.name,
            len(plan.to_create),
            len(plan.to_update),
            len(plan.unchanged),
            len(plan.to_delete),
            len(plan.to_forget),
        )

        synced = self._driver.sync(plan.needs_sync)
        report.created = len(synced.created)
        report.updated = len(synced.updated)
        report.errors.extend(synced.errors)

        if plan.to_delete or plan.to_forget:
            removed = self._driver.delete(plan.to_delete, plan.to_forget)
            report.deleted = len(removed.deleted)
            report.forgotten = len(removed.forgotten)
            report.errors.extend(removed.errors)

        if self._linker is not None:
            report.linked = self._linker.linked
            report.unresolved_links = self._linker.unresolved
            report.errors.extend(
                SyncIssue(key=key, message=message, operation="link")
                for key, message in self._linker.errors
            )

        if report.success:
            logger.info("%s sync complete: %d synced", self._domain.name, report.synced)
        else:
            logger.warning(
                "%s sync finished with %d error(s)", self._domain.name, len(report.errors)
            )
        return report
