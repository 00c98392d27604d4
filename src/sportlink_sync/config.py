from __future__ import annotations

import os
from typing import Any

from sportlink_sync.errors import ConfigError

LAPOSTA_LIST_ENV_KEYS = ("LAPOSTA_LIST", "LAPOSTA_LIST2", "LAPOSTA_LIST3", "LAPOSTA_LIST4")


def _parse_bool(value: str | None, fallback: bool = False) -> bool:
    if value is None:
        return fallback
    return value.strip().lower() in {"1", "true", "yes", "y"}


def _parse_number(name: str, default: str, cast: type, problems: list[str]) -> Any:
    raw = os.environ.get(name, default)
    try:
        value = cast(raw)
    except ValueError:
        problems.append(f"{name} must be a number, got {raw!r}")
        return cast(default)
    if value < 0:
        problems.append(f"{name} must not be negative, got {raw!r}")
        return cast(default)
    return value


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self) -> None:
        self.problems: list[str] = []
        self.stadion_url: str = os.environ.get("STADION_URL", "").rstrip("/")
        self.stadion_username: str = os.environ.get("STADION_USERNAME", "")
        self.stadion_app_password: str = os.environ.get("STADION_APP_PASSWORD", "")
        self.person_type: str = os.environ.get("STADION_PERSON_TYPE", "person")
        self.contribution_type: str = os.environ.get(
            "STADION_CONTRIBUTION_TYPE", "contribution"
        )
        self.case_type: str = os.environ.get("STADION_CASE_TYPE", "discipline-case")
        self.laposta_api_key: str = os.environ.get("LAPOSTA_API_KEY", "")
        self.laposta_base_url: str = os.environ.get(
            "LAPOSTA_BASE_URL", "https://api.laposta.nl"
        )
        self.db_path: str = os.environ.get("SYNC_DB_PATH", "sportlink-sync.sqlite")
        self.log_dir: str = os.environ.get("SYNC_LOG_DIR", "")
        self.rate_limit_delay: float = _parse_number(
            "SYNC_RATE_LIMIT_DELAY", "2.0", float, self.problems
        )
        self.max_attempts: int = _parse_number("SYNC_MAX_ATTEMPTS", "1", int, self.problems)
        self.request_timeout: float = _parse_number(
            "REQUEST_TIMEOUT", "30", float, self.problems
        )
        self.debug_log: bool = _parse_bool(os.environ.get("DEBUG_LOG"))

    def validate(self) -> None:
        """Raise ``ConfigError`` listing every invalid numeric setting."""
        if self.problems:
            raise ConfigError("; ".join(self.problems))

    def laposta_list_id(self, index: int) -> str | None:
        """Return the Laposta list ID configured for list *index* (1-4)."""
        if index < 1 or index > len(LAPOSTA_LIST_ENV_KEYS):
            raise ConfigError(f"Invalid list index {index}. Use 1-4.")
        return os.environ.get(LAPOSTA_LIST_ENV_KEYS[index - 1]) or None


settings = Settings()
