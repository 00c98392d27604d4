"""Parent/child link maintenance between synced Stadion records.

Parents declare their children by KNVB ID in ``child_keys``.  Once the
children have remote IDs, the linker writes the links in both directions:
``acf.children`` on the parent and ``acf.parents`` on every child.  Links
are only ever added, so links curated by hand in Stadion survive.
"""

from __future__ import annotations

import logging
from typing import Any

from sportlink_sync.errors import RemoteAPIError
from sportlink_sync.sync.retry import Pacer
from sportlink_sync.sync.store import MirrorRecord, MirrorTable
from sportlink_sync.sync.targets import RemoteId, RemoteMatch, StadionTarget, acf_of

logger = logging.getLogger(__name__)

CHILDREN_FIELD = "children"
PARENTS_FIELD = "parents"


def id_list(value: Any) -> list[Any]:
    # ACF stores an empty relationship field as "" or false.
    return list(value) if isinstance(value, list) else []


def merge_ids(existing: list[Any], additions: list[RemoteId]) -> list[Any]:
    """Set union keeping *existing* order, new IDs appended in sorted order."""
    seen = {str(i) for i in existing}
    merged = list(existing)
    for remote_id in sorted(additions, key=str):
        if str(remote_id) not in seen:
            merged.append(remote_id)
            seen.add(str(remote_id))
    return merged


class RelationshipLinker:
    """Resolves parent child keys to remote IDs and maintains link fields.

    The key-to-remote-ID map covers every tracked child, not only the
    ones written in this run, and is built when the linker is created, so
    create it after the children have been synced.

    Args:
        child_table: Mirror table of the child domain.
        child_target: Stadion target the children live in.
        pacer: Pacer shared with the driver writing the parents.
        child_keys_field: Parent payload field listing child keys.
    """

    def __init__(
        self,
        child_table: MirrorTable,
        child_target: StadionTarget,
        pacer: Pacer,
        child_keys_field: str = "child_keys",
    ) -> None:
        self._child_target = child_target
        self._pacer = pacer
        self._child_keys_field = child_keys_field
        self._remote_ids = child_table.remote_id_map()
        self.linked = 0
        self.unresolved = 0
        self.errors: list[tuple[str, str]] = []

    def resolve_children(self, record: MirrorRecord) -> list[RemoteId]:
        """Remote IDs of the parent's declared children, unresolvable ones dropped."""
        resolved = []
        for key in record.payload.get(self._child_keys_field) or []:
            remote_id = self._remote_ids.get(key)
            if remote_id is None:
                logger.debug("Child %s of %s has no remote ID yet", key, record.identity_key)
                self.unresolved += 1
                continue
            resolved.append(remote_id)
        return resolved

    def merge_links(
        self, record: MirrorRecord, body: dict[str, Any], match: RemoteMatch | None
    ) -> dict[str, Any]:
        """Set ``acf.children`` on an outgoing parent body.

        On create the list is exactly the resolved children; on update it
        is the union with whatever the remote record already links.
        """
        resolved = self.resolve_children(record)
        existing = []
        if match is not None:
            existing = id_list(acf_of(match.record).get(CHILDREN_FIELD))
        acf = body.setdefault("acf", {})
        acf[CHILDREN_FIELD] = merge_ids(existing, resolved)
        return body

    def link_children(self, parent: MirrorRecord, parent_id: RemoteId) -> None:
        """Add *parent_id* to ``acf.parents`` on every resolved child.

        A failure on one child is logged and recorded; the others are
        still linked.
        """
        for child_id in self.resolve_children_quietly(parent):
            self._pacer.before_call()
            try:
                if self._link_child(child_id, parent_id):
                    self.linked += 1
            except RemoteAPIError as exc:
                logger.error(
                    "Failed to link parent %s to child %s: %s",
                    parent.identity_key, child_id, exc,
                )
                self.errors.append((parent.identity_key, f"link child {child_id}: {exc}"))

    def resolve_children_quietly(self, record: MirrorRecord) -> list[RemoteId]:
        keys = record.payload.get(self._child_keys_field) or []
        return [self._remote_ids[k] for k in keys if k in self._remote_ids]

    def _link_child(self, child_id: RemoteId, parent_id: RemoteId) -> bool:
        transport = self._child_target.transport
        response = transport.request(self._child_target.path(child_id), "GET")
        child = response.body
        if not isinstance(child, dict):
            raise RemoteAPIError(
                f"Malformed record for child {child_id}: expected an object",
                status=response.status,
                body=child,
            )
        current = id_list(acf_of(child).get(PARENTS_FIELD))
        if str(parent_id) in {str(p) for p in current}:
            return False
        transport.request(
            self._child_target.path(child_id),
            "POST",
            body={"acf": {PARENTS_FIELD: merge_ids(current, [parent_id])}},
        )
        logger.debug("Linked parent %s to child %s", parent_id, child_id)
        return True
