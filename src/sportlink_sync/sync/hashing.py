"""Deterministic content hashing for change detection.

Entities are fingerprinted by hashing a canonical serialization of their
identity key and payload, so the same logical record always produces the
same hash no matter how its mappings were ordered when it was built.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from typing import Any


def stable_stringify(value: Any) -> str:
    """Serialize *value* into a canonical JSON string.

    Mapping keys are emitted in ascending order, lists and tuples keep
    their element order, and scalars are encoded with the JSON encoder
    (strings escaped, integers exact, floats as their shortest
    round-tripping representation).

    Args:
        value: ``None``, a bool, number, string, list/tuple, or a mapping
            with string keys, nested arbitrarily.

    Returns:
        The canonical string form.

    Raises:
        TypeError: If a mapping key is not a string or a value has no
            JSON representation.
    """
    if value is None:
        return "null"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(stable_stringify(item) for item in value) + "]"
    if isinstance(value, Mapping):
        for key in value:
            if not isinstance(key, str):
                raise TypeError(f"Mapping keys must be strings, got {type(key).__name__}")
        entries = (
            f"{json.dumps(key, ensure_ascii=False)}:{stable_stringify(value[key])}"
            for key in sorted(value)
        )
        return "{" + ",".join(entries) + "}"
    return json.dumps(value, ensure_ascii=False)


def compute_source_hash(
    identity_key: str, payload: Mapping[str, Any] | None, key_field: str = "key"
) -> str:
    """Compute the SHA-256 fingerprint of an entity.

    Args:
        identity_key: The entity's stable natural key.
        payload: The entity's current data; ``None`` hashes like ``{}``.
        key_field: Name under which the key is embedded in the hashed
            document. Domains keep their historical field name here
            (``knvb_id``, ``email``) so stored hashes stay comparable.

    Returns:
        Hex-encoded SHA-256 digest string.
    """
    document = {key_field: identity_key, "data": payload or {}}
    return hashlib.sha256(stable_stringify(document).encode("utf-8")).hexdigest()
