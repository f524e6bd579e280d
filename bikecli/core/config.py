from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"

CREDENTIALS_MISSING = (
    "Strava credentials not configured. Set STRAVA_CLIENT_ID and STRAVA_CLIENT_SECRET "
    "in config.json or export BIKE_STRAVA_CLIENT_ID and BIKE_STRAVA_CLIENT_SECRET."
)

# Keys of the nested layout written by older versions of config.json.
_LEGACY_STRAVA_KEYS = {
    "clientId": "STRAVA_CLIENT_ID",
    "clientSecret": "STRAVA_CLIENT_SECRET",
    "redirectUri": "STRAVA_REDIRECT_URI",
}


def config_dir() -> Path:
    override = os.getenv("BIKE_CONFIG_DIR")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "bike-cli"


def default_config_path() -> Path:
    return config_dir() / "config.json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="BIKE_", env_file=".env", extra="ignore")

    # Strava OAuth (application credentials)
    STRAVA_CLIENT_ID: str | None = None
    STRAVA_CLIENT_SECRET: str | None = None
    STRAVA_REDIRECT_URI: str = DEFAULT_REDIRECT_URI
    STRAVA_SCOPES: str = "read,activity:read_all"

    # Local document store
    DB_PATH: str | None = None

    # Observability
    LOG_LEVEL: str = "WARNING"
    LOG_FORMAT: str = "text"
    SENTRY_DSN: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.0

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats values read from config.json (passed as init kwargs).
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def database_path(self) -> Path:
        if self.DB_PATH:
            return Path(self.DB_PATH).expanduser()
        return config_dir() / "bike.sqlite"

    @property
    def database_url(self) -> str:
        return f"sqlite:///{self.database_path}"

    @property
    def scopes(self) -> list[str]:
        return [s.strip() for s in self.STRAVA_SCOPES.split(",") if s.strip()]


def _flatten_config(raw: dict[str, Any]) -> dict[str, Any]:
    values = {k: v for k, v in raw.items() if k not in ("strava", "dbPath")}

    strava = raw.get("strava")
    if isinstance(strava, dict):
        for legacy_key, field in _LEGACY_STRAVA_KEYS.items():
            if strava.get(legacy_key) and field not in values:
                values[field] = strava[legacy_key]

    if raw.get("dbPath") and "DB_PATH" not in values:
        values["DB_PATH"] = raw["dbPath"]

    return {k: v for k, v in values.items() if k in Settings.model_fields and v is not None}


def read_config_file(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return _flatten_config(raw)


def load_settings(config_path: Path | None = None) -> Settings:
    path = config_path or default_config_path()
    return Settings(**read_config_file(path))


@dataclass(frozen=True)
class StravaCredentials:
    client_id: str
    client_secret: str
    redirect_uri: str = DEFAULT_REDIRECT_URI


def get_strava_credentials(settings: Settings) -> StravaCredentials | None:
    if not settings.STRAVA_CLIENT_ID or not settings.STRAVA_CLIENT_SECRET:
        return None
    return StravaCredentials(
        client_id=settings.STRAVA_CLIENT_ID,
        client_secret=settings.STRAVA_CLIENT_SECRET,
        redirect_uri=settings.STRAVA_REDIRECT_URI or DEFAULT_REDIRECT_URI,
    )
