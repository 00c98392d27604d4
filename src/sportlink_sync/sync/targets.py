"""Remote targets: where tracked entities are written.

A target knows how to find an entity's remote counterpart and how to
create, update and delete it.  ``StadionTarget`` writes WordPress posts,
``LapostaTarget`` writes mailing-list members.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Collection
from dataclasses import dataclass
from typing import Any, Protocol

from sportlink_sync.client.base import RemoteTransport
from sportlink_sync.client.laposta import LapostaClient
from sportlink_sync.errors import RemoteAPIError
from sportlink_sync.sync.store import MirrorRecord

logger = logging.getLogger(__name__)

RemoteId = int | str

# Payload fields used for bookkeeping only, never sent to the remote.
INTERNAL_FIELDS = ("child_keys",)


@dataclass(frozen=True)
class RemoteMatch:
    """An existing remote record that corresponds to a local entity."""

    remote_id: RemoteId
    record: dict[str, Any]
    matched_by: str


class RemoteTarget(Protocol):
    """Operations the sync driver needs from a remote system."""

    def find(self, record: MirrorRecord) -> RemoteMatch | None: ...

    def build_body(self, record: MirrorRecord, match: RemoteMatch | None) -> dict[str, Any]: ...

    def create(self, record: MirrorRecord, body: dict[str, Any]) -> RemoteId: ...

    def update(self, match: RemoteMatch, record: MirrorRecord, body: dict[str, Any]) -> RemoteId: ...

    def delete(self, record: MirrorRecord) -> None: ...


def outgoing_payload(record: MirrorRecord) -> dict[str, Any]:
    """Deep copy of the payload without bookkeeping fields."""
    body = copy.deepcopy(record.payload)
    for name in INTERNAL_FIELDS:
        body.pop(name, None)
    return body


def acf_of(remote: dict[str, Any]) -> dict[str, Any]:
    # WordPress serializes an empty ACF group as [] rather than {}.
    acf = remote.get("acf")
    return acf if isinstance(acf, dict) else {}


def remote_id_of(remote: Any, context: str) -> RemoteId:
    """The ``id`` of a remote record, or ``RemoteAPIError`` if it has none."""
    remote_id = remote.get("id") if isinstance(remote, dict) else None
    if isinstance(remote_id, bool) or not isinstance(remote_id, (int, str)):
        raise RemoteAPIError(f"Malformed record in {context}: no usable id", body=remote)
    return remote_id


def has_contact_email(remote: dict[str, Any], email: str) -> bool:
    """Whether *remote* lists *email* in its ACF contact info."""
    wanted = email.lower()
    items = acf_of(remote).get("contact_info")
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict) or item.get("type") != "email":
            continue
        if str(item.get("value") or "").lower() == wanted:
            return True
    return False


# ---------------------------------------------------------------------------
# Stadion
# ---------------------------------------------------------------------------


class StadionTarget:
    """Writes entities as posts of one WordPress post type.

    Remote identity is resolved in three tiers: an exact meta query on
    ``meta_key``, then a text search for the entity's email filtered
    client-side on ACF contact info, then a scan of the most recently
    modified posts with the same filter.  The email tiers can miss a
    record that exists (the search does not index ACF fields and the
    recent window is bounded), in which case a duplicate is created.

    Posts of one type can hold several domains (members and parents are
    both ``person`` posts).  An email match that carries
    ``foreign_meta_key`` or whose ID is in ``foreign_ids`` belongs to
    another domain and is passed over, so it is never overwritten or
    deleted on this target's behalf.

    Args:
        transport: Stadion client or any ``RemoteTransport``.
        resource: Post type path segment, e.g. ``person``.
        meta_key: Meta field holding the identity key, or ``None``.
        email_fallback: Enable the two email lookup tiers.
        search_window: Page size of the email search.
        recent_window: Number of recently modified posts scanned.
        foreign_meta_key: Meta field marking posts owned by another domain.
        foreign_ids: Remote IDs owned by another domain.
    """

    def __init__(
        self,
        transport: RemoteTransport,
        resource: str,
        *,
        meta_key: str | None = None,
        email_fallback: bool = False,
        search_window: int = 20,
        recent_window: int = 100,
        foreign_meta_key: str | None = None,
        foreign_ids: Collection[RemoteId] = (),
    ) -> None:
        self.transport = transport
        self.resource = resource
        self.meta_key = meta_key
        self.email_fallback = email_fallback
        self.search_window = search_window
        self.recent_window = recent_window
        self.foreign_meta_key = foreign_meta_key
        self.foreign_ids = {str(i) for i in foreign_ids}

    def path(self, remote_id: RemoteId | None = None) -> str:
        base = f"wp/v2/{self.resource}"
        return base if remote_id is None else f"{base}/{remote_id}"

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find(self, record: MirrorRecord) -> RemoteMatch | None:
        if self.meta_key:
            match = self._find_by_meta(record.identity_key)
            if match is not None:
                return match
        if self.email_fallback:
            email = self._email_of(record)
            if email:
                return self._find_by_email(email)
        return None

    def _find_by_meta(self, value: str) -> RemoteMatch | None:
        try:
            response = self.transport.request(
                self.path(), "GET", params={"meta_key": self.meta_key, "meta_value": value}
            )
        except RemoteAPIError as exc:
            logger.debug("%s lookup failed for %s: %s", self.meta_key, value, exc)
            return None
        if isinstance(response.body, list) and response.body:
            remote = response.body[0]
            remote_id = remote_id_of(remote, f"{self.meta_key} lookup for {value}")
            logger.debug("Matched by %s: %s", self.meta_key, value)
            return RemoteMatch(remote_id, remote, self.meta_key)
        return None

    def _find_by_email(self, email: str) -> RemoteMatch | None:
        windows = (
            ("email search", {"search": email, "per_page": self.search_window}),
            (
                "recent scan",
                {"per_page": self.recent_window, "orderby": "modified", "order": "desc"},
            ),
        )
        for matched_by, params in windows:
            try:
                response = self.transport.request(self.path(), "GET", params=params)
            except RemoteAPIError as exc:
                logger.debug("%s failed for %s: %s", matched_by, email, exc)
                return None
            for remote in response.body if isinstance(response.body, list) else []:
                if not isinstance(remote, dict) or not has_contact_email(remote, email):
                    continue
                remote_id = remote_id_of(remote, f"{matched_by} for {email}")
                if self._is_foreign(remote, remote_id):
                    logger.debug(
                        "Skipping %s match %s for %s: owned by another domain",
                        matched_by, remote_id, email,
                    )
                    continue
                logger.debug("Matched by %s: %s", matched_by, email)
                return RemoteMatch(remote_id, remote, matched_by)
        return None

    def _is_foreign(self, remote: dict[str, Any], remote_id: RemoteId) -> bool:
        if str(remote_id) in self.foreign_ids:
            return True
        if not self.foreign_meta_key:
            return False
        meta = remote.get("meta")
        return isinstance(meta, dict) and bool(meta.get(self.foreign_meta_key))

    @staticmethod
    def _email_of(record: MirrorRecord) -> str | None:
        for candidate in (record.secondary_key, record.identity_key):
            if candidate and "@" in candidate:
                return candidate
        return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def build_body(self, record: MirrorRecord, match: RemoteMatch | None) -> dict[str, Any]:
        body = outgoing_payload(record)
        if match is not None and self.meta_key:
            remote_meta = match.record.get("meta")
            if not isinstance(remote_meta, dict) or not remote_meta.get(self.meta_key):
                # Matched by email: backfill the key so the next lookup is exact.
                body.setdefault("meta", {})[self.meta_key] = record.identity_key
        return body

    def create(self, record: MirrorRecord, body: dict[str, Any]) -> RemoteId:
        response = self.transport.request(self.path(), "POST", body=body)
        remote_id = response.body.get("id") if isinstance(response.body, dict) else None
        if remote_id is None:
            raise RemoteAPIError(
                f"Create for {record.identity_key} returned no id",
                status=response.status,
                body=response.body,
            )
        return remote_id

    def update(self, match: RemoteMatch, record: MirrorRecord, body: dict[str, Any]) -> RemoteId:
        self.transport.request(self.path(match.remote_id), "POST", body=body)
        return match.remote_id

    def delete(self, record: MirrorRecord) -> None:
        if str(record.remote_id) in self.foreign_ids:
            logger.warning(
                "Not deleting %s: remote id %s belongs to another domain",
                record.identity_key, record.remote_id,
            )
            return
        self.transport.request(self.path(record.remote_id), "DELETE")


# ---------------------------------------------------------------------------
# Laposta
# ---------------------------------------------------------------------------


class LapostaTarget:
    """Writes entities as members of one Laposta list.

    Laposta upserts by email, so create and update are the same call and
    no remote lookup is needed beyond the member ID we already stored.
    """

    def __init__(self, client: LapostaClient, list_id: str) -> None:
        self.client = client
        self.list_id = list_id

    def find(self, record: MirrorRecord) -> RemoteMatch | None:
        if record.remote_id is None:
            return None
        return RemoteMatch(record.remote_id, {"member_id": record.remote_id}, "member_id")

    def build_body(self, record: MirrorRecord, match: RemoteMatch | None) -> dict[str, Any]:
        return outgoing_payload(record)

    def create(self, record: MirrorRecord, body: dict[str, Any]) -> RemoteId:
        return self._upsert(record, body)

    def update(self, match: RemoteMatch, record: MirrorRecord, body: dict[str, Any]) -> RemoteId:
        return self._upsert(record, body)

    def delete(self, record: MirrorRecord) -> None:
        self.client.delete_member(self.list_id, str(record.remote_id or record.identity_key))

    def _upsert(self, record: MirrorRecord, body: dict[str, Any]) -> RemoteId:
        response = self.client.upsert_member(self.list_id, body)
        member = response.body.get("member") if isinstance(response.body, dict) else None
        member_id = member.get("member_id") if isinstance(member, dict) else None
        if not member_id:
            raise RemoteAPIError(
                f"Laposta upsert for {record.identity_key} returned no member_id",
                status=response.status,
                body=response.body,
            )
        return member_id
