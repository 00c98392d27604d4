"""Transport contract shared by the remote API clients."""

from __future__ import annotations

import logging
from typing import Any, Protocol

import requests
from pydantic import BaseModel

from sportlink_sync.errors import RemoteAPIError

logger = logging.getLogger(__name__)


class RemoteResponse(BaseModel):
    """Status and parsed body of a successful remote call."""

    status: int
    body: Any = None


class RemoteTransport(Protocol):
    """Anything that can issue a request against a resource path."""

    def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        params: dict[str, Any] | None = None,
    ) -> RemoteResponse: ...


def parse_body(response: requests.Response) -> Any:
    """Decode a JSON body, falling back to the raw text."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def send(
    session: requests.Session,
    service: str,
    method: str,
    url: str,
    *,
    timeout: float,
    debug: bool = False,
    **kwargs: Any,
) -> RemoteResponse:
    """Issue one HTTP call and normalize the outcome.

    Raises:
        RemoteAPIError: On connection failure (status ``0``) or any
            non-2xx response.
    """
    if debug:
        logger.debug(">> %s %s %s", method, url, kwargs.get("params") or "")
    try:
        response = session.request(method, url, timeout=timeout, **kwargs)
    except requests.RequestException as exc:
        raise RemoteAPIError(f"{service} request failed: {method} {url}: {exc}") from exc

    body = parse_body(response)
    if debug:
        logger.debug("<< %s %s", response.status_code, url)
    if not 200 <= response.status_code < 300:
        raise RemoteAPIError(
            f"{service} API error ({response.status_code}) during {method} {url}",
            status=response.status_code,
            body=body,
        )
    return RemoteResponse(status=response.status_code, body=body)
