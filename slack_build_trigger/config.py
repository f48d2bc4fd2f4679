"""Pydantic-based configuration helpers for Slack Build Trigger."""

from __future__ import annotations

import json
import os
import threading
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List

import structlog
from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError, field_validator


class AppSettings(BaseModel):
    """Settings read from the process environment at start-up."""

    database_url: str = Field(..., alias="DATABASE_URL")
    root_url: str = Field(..., alias="ROOT_URL")
    signing_secret: SecretStr | None = Field(None, alias="SLACK_SIGNING_SECRET")
    client_id: str | None = Field(None, alias="SLACK_CLIENT_ID")
    client_secret: SecretStr | None = Field(None, alias="SLACK_CLIENT_SECRET")
    config_path: Path = Field(Path("slack-trigger.json"), alias="SLACK_TRIGGER_CONFIG")
    request_tolerance: int | None = Field(None, alias="SLACK_REQUEST_TOLERANCE")

    @field_validator("root_url")
    @classmethod
    def _ensure_trailing_slash(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("ROOT_URL must not be empty")
        return value if value.endswith("/") else value + "/"

    @field_validator("signing_secret", "client_id", "client_secret", "request_tolerance", mode="before")
    @classmethod
    def _blank_as_missing(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("request_tolerance")
    @classmethod
    def _ensure_positive(cls, value: int | None) -> int | None:
        if value is not None and value <= 0:
            raise ValueError("SLACK_REQUEST_TOLERANCE must be greater than zero")
        return value

    @property
    def configure_url(self) -> str:
        return self.root_url + "configure"

    @property
    def connect_url(self) -> str:
        return self.root_url + "slack-trigger-connect/"


def _format_missing(fields: Iterable[str]) -> str:
    """Return a human-friendly comma-separated list of missing env vars."""

    unique: List[str] = []
    for field in fields:
        if field not in unique:
            unique.append(field)
    return ", ".join(unique)


@lru_cache()
def get_settings() -> AppSettings:
    """Fetch and cache settings from environment variables."""

    try:
        return AppSettings.model_validate(os.environ)
    except ValidationError as exc:
        missing = [str(error["loc"][0]) for error in exc.errors() if error["type"] == "missing"]
        if not missing:
            raise RuntimeError(f"Invalid environment configuration: {exc}") from exc
        message = (
            "Missing required environment variables: "
            f"{_format_missing(missing)}"
        )
        raise RuntimeError(message) from exc


class TriggerConfig(BaseModel):
    """Immutable snapshot of the Slack integration settings."""

    model_config = ConfigDict(frozen=True)

    signing_secret: SecretStr | None = None
    client_id: str | None = None
    client_secret: SecretStr | None = None

    @property
    def has_oauth_configured(self) -> bool:
        """``True`` if both the OAuth 2.0 client ID and secret have been configured."""

        return bool(self.client_id) and self.client_secret is not None


def _reveal(secret: SecretStr | None) -> str | None:
    return secret.get_secret_value() if secret is not None else None


class GlobalConfiguration:
    """Process-wide Slack configuration persisted as a JSON file.

    The host calls :meth:`load` at start-up and :meth:`update` (or :meth:`save`)
    whenever an administrator changes a value. Request handling only ever
    reads the frozen :class:`TriggerConfig` returned by :meth:`snapshot`.
    """

    def __init__(self, path: Path, *, defaults: TriggerConfig | None = None) -> None:
        self._path = Path(path)
        self._defaults = defaults or TriggerConfig()
        self._current = self._defaults
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: AppSettings) -> "GlobalConfiguration":
        defaults = TriggerConfig(
            signing_secret=settings.signing_secret,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
        )
        return cls(settings.config_path, defaults=defaults)

    def snapshot(self) -> TriggerConfig:
        return self._current

    def load(self) -> TriggerConfig:
        """Read saved values, falling back to the environment defaults for absent keys.

        A key present in the file wins even when it is ``null``, so a value an
        administrator cleared stays cleared across restarts.
        """

        log = structlog.get_logger().bind(path=str(self._path))
        stored: dict = {}
        if self._path.exists():
            with self._path.open("r", encoding="utf-8") as fp:
                stored = json.load(fp)
            log.info("configuration_loaded", keys=sorted(stored))
        else:
            log.info("configuration_file_missing")

        merged = {
            "signing_secret": _reveal(self._defaults.signing_secret),
            "client_id": self._defaults.client_id,
            "client_secret": _reveal(self._defaults.client_secret),
        }
        merged.update({key: value for key, value in stored.items() if key in merged})
        with self._lock:
            self._current = TriggerConfig.model_validate(merged)
        return self._current

    def save(self) -> None:
        snapshot = self._current
        payload = {
            "signing_secret": _reveal(snapshot.signing_secret),
            "client_id": snapshot.client_id,
            "client_secret": _reveal(snapshot.client_secret),
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("w", encoding="utf-8") as fp:
            json.dump(payload, fp, indent=2, sort_keys=True)
        structlog.get_logger().info("configuration_saved", path=str(self._path))

    def update(self, **changes) -> TriggerConfig:
        """Apply *changes* to the current snapshot and persist the result."""

        unknown = set(changes) - set(TriggerConfig.model_fields)
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")
        with self._lock:
            values = self._current.model_dump()
            values.update(changes)
            self._current = TriggerConfig.model_validate(values)
        self.save()
        return self._current
