from __future__ import annotations

import json

import pytest

from bikecli.core.config import DEFAULT_REDIRECT_URI, get_strava_credentials, load_settings


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in ("STRAVA_CLIENT_ID", "STRAVA_CLIENT_SECRET", "STRAVA_REDIRECT_URI", "DB_PATH", "LOG_LEVEL"):
        monkeypatch.delenv(f"BIKE_{name}", raising=False)
    monkeypatch.setenv("BIKE_CONFIG_DIR", str(tmp_path))
    monkeypatch.chdir(tmp_path)


def _write(path, payload: dict):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_missing_config_file_yields_defaults(tmp_path):
    settings = load_settings()

    assert settings.STRAVA_CLIENT_ID is None
    assert settings.STRAVA_REDIRECT_URI == DEFAULT_REDIRECT_URI
    assert settings.database_path == tmp_path / "bike.sqlite"
    assert get_strava_credentials(settings) is None


def test_environment_overrides_config_file(tmp_path, monkeypatch):
    config = _write(
        tmp_path / "config.json",
        {"STRAVA_CLIENT_ID": "file-id", "STRAVA_CLIENT_SECRET": "file-secret"},
    )
    monkeypatch.setenv("BIKE_STRAVA_CLIENT_ID", "env-id")

    credentials = get_strava_credentials(load_settings(config))

    assert credentials.client_id == "env-id"
    assert credentials.client_secret == "file-secret"


def test_nested_legacy_layout_is_understood(tmp_path):
    _write(
        tmp_path / "config.json",
        {
            "location": "Brooklyn",
            "dbPath": str(tmp_path / "custom.sqlite"),
            "strava": {"clientId": "123", "clientSecret": "shh", "redirectUri": "http://localhost:9999/callback"},
        },
    )

    settings = load_settings()
    credentials = get_strava_credentials(settings)

    assert credentials.client_id == "123"
    assert credentials.client_secret == "shh"
    assert credentials.redirect_uri == "http://localhost:9999/callback"
    assert settings.database_path == tmp_path / "custom.sqlite"


def test_non_object_config_is_rejected(tmp_path):
    config = tmp_path / "config.json"
    config.write_text("[1, 2, 3]", encoding="utf-8")

    with pytest.raises(ValueError, match="JSON object"):
        load_settings(config)


def test_scopes_are_split():
    assert load_settings().scopes == ["read", "activity:read_all"]
