from __future__ import annotations

import logging
from typing import Callable
from urllib.parse import urlparse

from bikecli.core.config import StravaCredentials
from bikecli.core.errors import ApiError, AuthError
from bikecli.integrations.strava import (
    DEFAULT_SCOPES,
    build_authorize_url,
    exchange_code_for_token,
    fetch_authenticated_athlete,
)
from bikecli.schemas.sync import AthleteProfile
from bikecli.services.callback_listener import DEFAULT_TIMEOUT_S, CallbackListener
from bikecli.services.token_store import TokenStore

logger = logging.getLogger(__name__)

ListenerFactory = Callable[..., CallbackListener]


def callback_host(redirect_uri: str | None) -> str:
    host = urlparse(redirect_uri or "").hostname
    return host or "127.0.0.1"


def authorize(
    credentials: StravaCredentials,
    tokens: TokenStore,
    *,
    scopes: list[str] | None = None,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    listener_factory: ListenerFactory = CallbackListener,
    notify: Callable[[str], None] = print,
) -> AthleteProfile:
    """
    Run the OAuth2 authorization-code flow against a loopback listener.

    The user opens the printed URL; Strava redirects to the listener with a
    one-time code which is exchanged for tokens. The athlete id is not part of
    the token response, so the profile is fetched before the token is stored.
    Nothing is persisted unless every step succeeds.
    """
    scopes = list(scopes or DEFAULT_SCOPES)

    with listener_factory(host=callback_host(credentials.redirect_uri), timeout_s=timeout_s) as listener:
        url = build_authorize_url(credentials.client_id, listener.redirect_uri, scopes)
        notify(f"Open this URL in your browser:\n{url}\n\nWaiting for callback...")
        callback = listener.wait()

    grant = exchange_code_for_token(credentials.client_id, credentials.client_secret, callback.code)

    try:
        athlete = fetch_authenticated_athlete(grant.access_token)
    except ApiError as exc:
        raise AuthError(f"Authorization failed: {exc}") from exc
    if not athlete.get("id"):
        raise AuthError("No athlete returned by Strava")

    granted = callback.scopes or scopes
    tokens.save(athlete["id"], grant.access_token, grant.refresh_token, grant.expires_at, granted)
    logger.info("Strava authorization complete", extra={"athlete_id": athlete["id"]})

    return AthleteProfile.from_strava(athlete, granted)
