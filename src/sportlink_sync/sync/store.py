"""Local mirror store backed by SQLite.

Each entity domain gets one table that records the latest payload seen
from the source, its content hash, the hash that was current at the last
successful remote write, and the identifier the remote system assigned.
The store is the single source of truth for what has been synced: every
outcome is committed before the caller moves on to the next entity.
"""

from __future__ import annotations

import json
import re
import sqlite3
from collections.abc import Iterable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from sportlink_sync.sync.hashing import compute_source_hash, stable_stringify

_TABLE_NAME_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


class PreparedEntity(BaseModel):
    """An entity ready to be written to the mirror store."""

    identity_key: str
    secondary_key: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class MirrorRecord(BaseModel):
    """A tracked row in a mirror table."""

    identity_key: str
    secondary_key: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    source_hash: str
    last_synced_hash: str | None = None
    last_synced_at: datetime | None = None
    remote_id: int | str | None = None
    first_seen_at: datetime
    last_seen_at: datetime

    @property
    def needs_sync(self) -> bool:
        return self.last_synced_hash is None or self.last_synced_hash != self.source_hash


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def encode_remote_id(remote_id: int | str | None) -> str | None:
    """Serialize a remote ID so its type survives the round trip.

    Remote IDs are opaque: Laposta member IDs such as ``"00123"`` must not
    come back as ``123``, so the column holds JSON rather than a bare value.
    """
    return None if remote_id is None else json.dumps(remote_id)


def decode_remote_id(value: Any) -> int | str | None:
    # Rows written before the column held JSON may still carry a bare integer.
    if value is None or isinstance(value, int):
        return value
    try:
        decoded = json.loads(value)
    except ValueError:
        return value
    return decoded if isinstance(decoded, (int, str)) else value


class MirrorTable:
    """Keyed table of tracked entities for one domain.

    Args:
        conn: Open SQLite connection owned by a ``MirrorDatabase``.
        name: Table name, e.g. ``stadion_members``.
        key_field: Field name the identity key is hashed under.
    """

    _COLUMNS = (
        "identity_key, secondary_key, data_json, source_hash, last_synced_hash, "
        "last_synced_at, remote_id, first_seen_at, last_seen_at"
    )

    def __init__(self, conn: sqlite3.Connection, name: str, key_field: str = "key") -> None:
        if not _TABLE_NAME_RE.match(name):
            raise ValueError(f"Invalid mirror table name: {name!r}")
        self._conn = conn
        self.name = name
        self.key_field = key_field
        self._init_schema()

    def _init_schema(self) -> None:
        with self._conn:
            self._conn.executescript(
                f"""
                CREATE TABLE IF NOT EXISTS {self.name} (
                  id INTEGER PRIMARY KEY,
                  identity_key TEXT NOT NULL UNIQUE,
                  secondary_key TEXT,
                  data_json TEXT NOT NULL,
                  source_hash TEXT NOT NULL,
                  last_synced_hash TEXT,
                  last_synced_at TEXT,
                  remote_id TEXT,
                  first_seen_at TEXT NOT NULL,
                  last_seen_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_{self.name}_hash
                  ON {self.name} (source_hash, last_synced_hash);

                CREATE INDEX IF NOT EXISTS idx_{self.name}_secondary
                  ON {self.name} (secondary_key);
                """
            )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def upsert_batch(self, entities: Iterable[PreparedEntity]) -> int:
        """Insert or refresh a batch of entities in one transaction.

        Existing rows keep their ``remote_id`` and ``last_synced_hash``;
        only the payload, hash, secondary key and ``last_seen_at`` change.

        Returns:
            The number of rows written.
        """
        now = _utcnow()
        rows = [
            {
                "identity_key": entity.identity_key,
                "secondary_key": entity.secondary_key,
                "data_json": stable_stringify(entity.payload),
                "source_hash": compute_source_hash(
                    entity.identity_key, entity.payload, self.key_field
                ),
                "now": now,
            }
            for entity in entities
        ]
        with self._conn:
            self._conn.executemany(
                f"""
                INSERT INTO {self.name} (
                  identity_key, secondary_key, data_json, source_hash,
                  first_seen_at, last_seen_at
                )
                VALUES (
                  :identity_key, :secondary_key, :data_json, :source_hash, :now, :now
                )
                ON CONFLICT(identity_key) DO UPDATE SET
                  secondary_key = excluded.secondary_key,
                  data_json = excluded.data_json,
                  source_hash = excluded.source_hash,
                  last_seen_at = excluded.last_seen_at
                """,
                rows,
            )
        return len(rows)

    def mark_synced(
        self, identity_key: str, source_hash: str, remote_id: int | str | None
    ) -> None:
        """Record a successful remote write for *identity_key*."""
        with self._conn:
            self._conn.execute(
                f"""
                UPDATE {self.name}
                SET last_synced_at = ?, last_synced_hash = ?, remote_id = ?
                WHERE identity_key = ?
                """,
                (_utcnow(), source_hash, encode_remote_id(remote_id), identity_key),
            )

    def delete_row(self, identity_key: str) -> None:
        """Stop tracking *identity_key*."""
        with self._conn:
            self._conn.execute(
                f"DELETE FROM {self.name} WHERE identity_key = ?", (identity_key,)
            )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def entities_needing_sync(self, force: bool = False) -> list[MirrorRecord]:
        """Rows whose current hash was never pushed, ordered by key.

        With ``force`` every tracked row is returned.
        """
        where = "" if force else (
            "WHERE last_synced_hash IS NULL OR last_synced_hash != source_hash"
        )
        return self._select(f"{where} ORDER BY identity_key ASC")

    def entities_not_in(self, current_keys: Iterable[str]) -> list[MirrorRecord]:
        """Rows whose key is absent from *current_keys*, ordered by key.

        An empty *current_keys* matches every tracked row; callers decide
        whether an empty batch may authorize deletions.
        """
        keys = set(current_keys)
        return [r for r in self.all_records() if r.identity_key not in keys]

    def all_records(self) -> list[MirrorRecord]:
        return self._select("ORDER BY identity_key ASC")

    def get(self, identity_key: str) -> MirrorRecord | None:
        records = self._select("WHERE identity_key = ?", (identity_key,))
        return records[0] if records else None

    def remote_id_map(self) -> dict[str, int | str]:
        """Map every tracked key that has a remote ID to that ID.

        Covers all rows, not only the ones touched in the current run, so
        previously synced entities stay linkable.
        """
        cursor = self._conn.execute(
            f"""
            SELECT identity_key, remote_id FROM {self.name}
            WHERE remote_id IS NOT NULL
            ORDER BY identity_key ASC
            """
        )
        return {
            row["identity_key"]: decode_remote_id(row["remote_id"])
            for row in cursor.fetchall()
        }

    def count(self) -> int:
        cursor = self._conn.execute(f"SELECT COUNT(*) AS count FROM {self.name}")
        return cursor.fetchone()["count"]

    def _select(self, clause: str, params: tuple[Any, ...] = ()) -> list[MirrorRecord]:
        cursor = self._conn.execute(
            f"SELECT {self._COLUMNS} FROM {self.name} {clause}", params
        )
        return [self._to_record(row) for row in cursor.fetchall()]

    @staticmethod
    def _to_record(row: sqlite3.Row) -> MirrorRecord:
        return MirrorRecord(
            identity_key=row["identity_key"],
            secondary_key=row["secondary_key"],
            payload=json.loads(row["data_json"]),
            source_hash=row["source_hash"],
            last_synced_hash=row["last_synced_hash"],
            last_synced_at=row["last_synced_at"],
            remote_id=decode_remote_id(row["remote_id"]),
            first_seen_at=row["first_seen_at"],
            last_seen_at=row["last_seen_at"],
        )


class MirrorDatabase:
    """Owns the SQLite connection that backs the mirror tables.

    Use as a context manager so the connection is released on every exit
    path::

        with MirrorDatabase("sportlink-sync.sqlite") as db:
            members = db.table("stadion_members", key_field="knvb_id")

    Args:
        path: Database file path, or ``":memory:"`` for a throwaway store.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self._path = str(path)
        self._conn: sqlite3.Connection | None = None
        self._tables: dict[str, MirrorTable] = {}

    @property
    def path(self) -> str:
        return self._path

    def open(self) -> MirrorDatabase:
        if self._conn is None:
            if self._path != ":memory:":
                Path(self._path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self._path)
            self._conn.row_factory = sqlite3.Row
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            self._tables.clear()

    def __enter__(self) -> MirrorDatabase:
        return self.open()

    def __exit__(self, *exc: object) -> None:
        self.close()

    def table(self, name: str, key_field: str = "key") -> MirrorTable:
        """Return the mirror table *name*, creating it on first use."""
        if self._conn is None:
            raise RuntimeError("MirrorDatabase is not open")
        if name not in self._tables:
            self._tables[name] = MirrorTable(self._conn, name, key_field)
        return self._tables[name]
