"""Exception types shared across the sync pipeline."""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base class for all sportlink-sync errors."""


class ConfigError(SyncError):
    """Required configuration is missing or invalid.

    Raised before any remote mutation is attempted so a run never
    partially writes with a broken setup.
    """


class DataError(SyncError):
    """A raw source record cannot be turned into a trackable entity."""


class RemoteAPIError(SyncError):
    """A remote API call failed or returned a non-2xx status.

    Args:
        message: Human-readable description of the failed call.
        status: HTTP status code, ``0`` when no response was received.
        body: Parsed response body, if any.
    """

    def __init__(self, message: str, status: int = 0, body: Any = None) -> None:
        super().__init__(message)
        self.status = status
        self.body = body
