from __future__ import annotations

import threading

import httpx
import pytest

from bikecli.core.errors import AuthError
from bikecli.services.authorization import authorize
from bikecli.services.callback_listener import CallbackListener

pytestmark = pytest.mark.integration


def _get(url: str, **params) -> httpx.Response:
    with httpx.Client(trust_env=False, timeout=5.0) as client:
        return client.get(url, params=params)


def test_listener_receives_code_over_loopback():
    with CallbackListener(timeout_s=5) as listener:
        assert listener.port > 0
        assert listener.redirect_uri == f"http://127.0.0.1:{listener.port}/callback"

        response = _get(listener.redirect_uri, code="abc", scope="read")
        result = listener.wait()

        assert response.status_code == 200
        assert result.code == "abc"
        assert result.scopes == ["read"]

        again = _get(listener.redirect_uri, code="other")
        assert again.status_code == 404
        assert listener.wait().code == "abc"

    assert not any(t.name == "strava-oauth-callback" for t in threading.enumerate())


def test_listener_times_out_and_releases_port():
    listener = CallbackListener(timeout_s=0.2)
    with listener:
        port = listener.port
        with pytest.raises(AuthError, match="timed out"):
            listener.wait()

    with pytest.raises(httpx.ConnectError):
        _get(f"http://127.0.0.1:{port}/callback", code="late")


def test_error_callback_fails_the_wait():
    with CallbackListener(timeout_s=5) as listener:
        response = _get(listener.redirect_uri, error="access_denied")

        assert response.status_code == 400
        with pytest.raises(AuthError, match="access_denied"):
            listener.wait()


def test_login_timeout_stores_no_token(fake_strava, credentials, token_store):
    with pytest.raises(AuthError, match="timed out"):
        authorize(credentials, token_store, timeout_s=0.2, notify=lambda _: None)

    assert fake_strava.token_posts == []
    assert token_store.all() == []
