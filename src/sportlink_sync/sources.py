"""Loading raw batches exported from Sportlink and Nikki."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from sportlink_sync.errors import DataError

logger = logging.getLogger(__name__)

# Envelope key each export wraps its records in.
ENVELOPE_KEYS = {
    "members": "Members",
    "parents": "Members",
    "laposta": "Members",
    "contributions": "Contributions",
    "cases": "DisciplineCases",
}


def load_records(path: str | Path, domain: str) -> list[dict[str, Any]]:
    """Read the raw records for *domain* from a JSON export.

    The file holds either a bare list of records or an object with the
    records under the domain's envelope key, e.g. ``{"Members": [...]}``.

    Raises:
        DataError: If the file is not valid JSON or holds no record list.
    """
    path = Path(path)
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise DataError(f"{path} is not valid JSON: {exc}") from exc

    if isinstance(payload, dict):
        key = ENVELOPE_KEYS.get(domain, "")
        if key not in payload:
            raise DataError(f"{path} has no {key!r} list")
        payload = payload[key]
    if not isinstance(payload, list):
        raise DataError(f"{path} does not contain a list of records")

    records = [r for r in payload if isinstance(r, dict)]
    if len(records) != len(payload):
        logger.warning("Ignored %d non-object entries in %s", len(payload) - len(records), path)
    logger.info("Loaded %d record(s) from %s", len(records), path)
    return records
