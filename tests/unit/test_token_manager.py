from __future__ import annotations

import json

import httpx
import pytest

from bikecli.core.errors import AuthError
from bikecli.services.document_store import TOKENS
from bikecli.services.token_manager import REFRESH_MARGIN_S, TokenManager

NOW = 1_700_000_000


def _manager(token_store, credentials, now=NOW):
    return TokenManager(token_store, credentials, clock=lambda: now)


def test_missing_token_raises_auth_error(token_store, credentials, fake_strava):
    manager = _manager(token_store, credentials)

    with pytest.raises(AuthError, match="bike auth login"):
        manager.ensure_valid()

    assert fake_strava.token_posts == []


def test_refreshes_when_inside_safety_margin(token_store, credentials, fake_strava):
    token_store.save(7, "old-access", "old-refresh", NOW + REFRESH_MARGIN_S, ["read"])
    manager = _manager(token_store, credentials)

    assert manager.ensure_valid() == "access-1"

    assert fake_strava.token_posts == [
        {
            "client_id": "test-client-id",
            "client_secret": "test-client-secret",
            "grant_type": "refresh_token",
            "refresh_token": "old-refresh",
        }
    ]


def test_reuses_token_outside_safety_margin(token_store, credentials, fake_strava):
    token_store.save(7, "old-access", "old-refresh", NOW + REFRESH_MARGIN_S + 1, ["read"])
    manager = _manager(token_store, credentials)

    assert manager.ensure_valid() == "old-access"
    assert fake_strava.token_posts == []


def test_refresh_persists_rotated_refresh_token(token_store, credentials, fake_strava, store):
    token_store.save(7, "old-access", "old-refresh", NOW - 10, ["read", "activity:read_all"])
    fake_strava.token_responses.append(
        httpx.Response(
            200,
            json={"access_token": "new-access", "refresh_token": "rotated-refresh", "expires_at": NOW + 21600},
        )
    )

    _manager(token_store, credentials).ensure_valid(7)

    token = token_store.get(7)
    assert token.access_token == "new-access"
    assert token.refresh_token == "rotated-refresh"
    assert token.expires_at == NOW + 21600
    assert token.scopes == ["read", "activity:read_all"]
    assert store.count(TOKENS) == 1
    assert "old-refresh" not in json.dumps(store.find(TOKENS))


def test_expiry_computed_from_expires_in_when_absent(token_store, credentials, fake_strava):
    token_store.save(7, "old-access", "old-refresh", NOW - 10, [])
    fake_strava.token_responses.append(
        httpx.Response(200, json={"access_token": "a", "refresh_token": "r", "expires_in": 21600})
    )

    _manager(token_store, credentials).ensure_valid()

    assert token_store.get(7).expires_at == NOW + 21600


def test_failed_refresh_keeps_stored_token(token_store, credentials, fake_strava):
    token_store.save(7, "old-access", "old-refresh", NOW - 10, [])
    fake_strava.token_responses.append(httpx.Response(400, text='{"message":"Bad Request"}'))

    with pytest.raises(AuthError, match="Bad Request"):
        _manager(token_store, credentials).ensure_valid()

    assert token_store.get(7).refresh_token == "old-refresh"


def test_refresh_without_refresh_token_is_rejected(token_store, credentials, fake_strava):
    token_store.save(7, "old-access", "old-refresh", NOW - 10, [])
    fake_strava.token_responses.append(
        httpx.Response(200, json={"access_token": "new-access", "expires_at": NOW + 21600})
    )

    with pytest.raises(AuthError, match="refresh token"):
        _manager(token_store, credentials).ensure_valid()

    assert token_store.get(7).access_token == "old-access"


def test_invalidate_forgets_in_memory_token(token_store, credentials, fake_strava):
    token_store.save(7, "first-access", "refresh", NOW + 3600, [])
    manager = _manager(token_store, credentials)
    assert manager.ensure_valid() == "first-access"

    token_store.save(7, "second-access", "refresh", NOW + 3600, [])
    assert manager.ensure_valid() == "first-access"

    manager.invalidate()
    assert manager.token is None
    assert manager.ensure_valid() == "second-access"


def test_expiry_check_works_without_credentials(token_store, fake_strava):
    token = token_store.save(7, "old-access", "old-refresh", NOW + REFRESH_MARGIN_S, ["read"])
    manager = _manager(token_store, None)

    assert manager.needs_refresh(token) is True
    with pytest.raises(AuthError, match="credentials not configured"):
        manager.ensure_valid()

    assert fake_strava.token_posts == []
    assert token_store.get(7).access_token == "old-access"
