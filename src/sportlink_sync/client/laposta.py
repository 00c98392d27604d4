"""HTTP client for the Laposta mailing-list API.

Laposta authenticates with the API key as the basic-auth username and
expects form-encoded bodies, with custom fields flattened into
``custom_fields[name]`` (or ``custom_fields[name][]`` for lists).
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from urllib.parse import quote

import requests

from sportlink_sync.client.base import RemoteResponse, send
from sportlink_sync.config import settings
from sportlink_sync.errors import ConfigError, RemoteAPIError


def append_custom_fields(
    params: list[tuple[str, str]], custom_fields: Mapping[str, Any] | None
) -> None:
    """Append *custom_fields* to *params* in Laposta's form encoding."""
    if not custom_fields:
        return
    for key, value in custom_fields.items():
        if isinstance(value, (list, tuple)):
            for entry in value:
                params.append((f"custom_fields[{key}][]", "" if entry is None else str(entry)))
        else:
            params.append((f"custom_fields[{key}]", "" if value is None else str(value)))


def extract_members(payload: Any) -> list[dict[str, Any]]:
    """Pull the member list out of Laposta's varying response envelopes."""
    if not payload:
        return []
    if isinstance(payload, list):
        return payload
    if isinstance(payload, dict):
        if isinstance(payload.get("members"), list):
            return payload["members"]
        if isinstance(payload.get("data"), list):
            return [item.get("member", item) for item in payload["data"]]
        if payload.get("member"):
            return [payload["member"]]
    return []


class LapostaClient:
    """Client for Laposta list members.

    Args:
        api_key: Laposta API key.  Falls back to ``settings.laposta_api_key``.
        base_url: API root.  Falls back to ``settings.laposta_base_url``.
        timeout: Per-request timeout in seconds.
        session: Optional preconfigured ``requests.Session``.

    Raises:
        ConfigError: If no API key is available.
    """

    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        resolved_key = api_key or settings.laposta_api_key
        if not resolved_key:
            raise ConfigError(
                "Laposta API key is required. Set LAPOSTA_API_KEY env var or pass api_key explicitly."
            )
        self._base_url = (base_url or settings.laposta_base_url).rstrip("/")
        self._timeout = timeout if timeout is not None else settings.request_timeout
        self._session = session or requests.Session()
        self._session.auth = (resolved_key, "")

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> RemoteResponse:
        """Call ``<base>/<path>`` with a form-encoded *body*.

        Raises:
            RemoteAPIError: On transport failure or a non-2xx status.
        """
        kwargs: dict[str, Any] = {"params": params}
        if body is not None:
            kwargs["data"] = body
        return send(
            self._session,
            "Laposta",
            method,
            f"{self._base_url}/{path.lstrip('/')}",
            timeout=self._timeout,
            debug=settings.debug_log,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # Members
    # ------------------------------------------------------------------

    def fetch_members(self, list_id: str, state: str | None = None) -> list[dict[str, Any]]:
        params = {"list_id": list_id}
        if state:
            params["state"] = state
        return extract_members(self.request("/v2/member", params=params).body)

    def upsert_member(self, list_id: str, member: Mapping[str, Any]) -> RemoteResponse:
        """Create or update *member* (``email`` plus ``custom_fields``) on a list."""
        params: list[tuple[str, str]] = [
            ("list_id", list_id),
            ("ip", "3.3.3.3"),
            ("email", str(member["email"])),
            ("options[upsert]", "true"),
        ]
        append_custom_fields(params, member.get("custom_fields"))
        return self.request("/v2/member", "POST", body=params)

    def delete_member(self, list_id: str, identifier: str) -> RemoteResponse:
        """Remove a member, identified by member ID or email, from a list."""
        if not identifier:
            raise RemoteAPIError("Cannot delete member without member_id or email")
        return self.request(
            f"/v2/member/{quote(identifier, safe='')}",
            "DELETE",
            params={"list_id": list_id},
        )

    def close(self) -> None:
        self._session.close()
