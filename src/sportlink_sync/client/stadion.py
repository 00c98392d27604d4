"""HTTP client for the Stadion WordPress REST API.

Requests are authenticated with a WordPress application password and sent
to ``<STADION_URL>/wp-json/<path>``.  Bodies are JSON in both directions.
"""

from __future__ import annotations

from typing import Any

import requests

from sportlink_sync.client.base import RemoteResponse, send
from sportlink_sync.config import settings
from sportlink_sync.errors import ConfigError


class StadionClient:
    """Client for Stadion resource paths such as ``wp/v2/person``.

    Parameters default to the values in ``settings``; explicit overrides
    are accepted for testing.

    Args:
        base_url: Site root, e.g. ``https://club.example.nl``.
        username: WordPress user owning the application password.
        app_password: WordPress application password.
        timeout: Per-request timeout in seconds.
        session: Optional preconfigured ``requests.Session``.

    Raises:
        ConfigError: If the URL or credentials are empty after resolving
            defaults.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        username: str | None = None,
        app_password: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ) -> None:
        resolved_url = (base_url or settings.stadion_url).rstrip("/")
        resolved_username = username or settings.stadion_username
        resolved_password = app_password or settings.stadion_app_password

        if not resolved_url:
            raise ConfigError(
                "Stadion URL is required. Set STADION_URL env var or pass base_url explicitly."
            )
        if not resolved_username or not resolved_password:
            raise ConfigError(
                "Stadion credentials are required. Set STADION_USERNAME and "
                "STADION_APP_PASSWORD env vars or pass them explicitly."
            )

        self._base_url = f"{resolved_url}/wp-json"
        self._timeout = timeout if timeout is not None else settings.request_timeout
        self._session = session or requests.Session()
        self._session.auth = (resolved_username, resolved_password)
        self._session.headers.setdefault("Accept", "application/json")

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> RemoteResponse:
        """Call ``<base>/wp-json/<path>``.

        Args:
            path: Resource path relative to ``wp-json``.
            method: ``GET``, ``POST`` or ``DELETE``.  WordPress uses
                ``POST`` for updates as well as creates.
            body: JSON-serializable request body.
            params: Query parameters.

        Raises:
            RemoteAPIError: On transport failure or a non-2xx status.
        """
        kwargs: dict[str, Any] = {"params": params}
        if body is not None:
            kwargs["json"] = body
        return send(
            self._session,
            "Stadion",
            method,
            f"{self._base_url}/{path.lstrip('/')}",
            timeout=self._timeout,
            debug=settings.debug_log,
            **kwargs,
        )

    def close(self) -> None:
        self._session.close()
