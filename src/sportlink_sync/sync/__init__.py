"""Sync engine package: mirror store, reconciliation and remote writes."""

from sportlink_sync.sync.driver import DriverResult, RemoteSyncDriver, SyncAction, SyncIssue
from sportlink_sync.sync.engine import SyncEngine, SyncReport
from sportlink_sync.sync.hashing import compute_source_hash, stable_stringify
from sportlink_sync.sync.linker import RelationshipLinker
from sportlink_sync.sync.reconcile import (
    EntityState,
    IngestResult,
    ReconciliationPlan,
    Reconciler,
    StatusEntry,
    StatusLabel,
)
from sportlink_sync.sync.retry import Pacer, RetryPolicy, call_with_retry
from sportlink_sync.sync.store import MirrorDatabase, MirrorRecord, MirrorTable, PreparedEntity
from sportlink_sync.sync.targets import LapostaTarget, RemoteMatch, RemoteTarget, StadionTarget

__all__ = [
    "DriverResult",
    "EntityState",
    "IngestResult",
    "LapostaTarget",
    "MirrorDatabase",
    "MirrorRecord",
    "MirrorTable",
    "Pacer",
    "PreparedEntity",
    "ReconciliationPlan",
    "Reconciler",
    "RelationshipLinker",
    "RemoteMatch",
    "RemoteSyncDriver",
    "RemoteTarget",
    "RetryPolicy",
    "StadionTarget",
    "StatusEntry",
    "StatusLabel",
    "SyncAction",
    "SyncEngine",
    "SyncIssue",
    "SyncReport",
    "call_with_retry",
    "compute_source_hash",
    "stable_stringify",
]
