from __future__ import annotations

import logging
import time
from typing import Callable

from bikecli.core.config import CREDENTIALS_MISSING, StravaCredentials
from bikecli.core.errors import AuthError
from bikecli.integrations.strava import DEFAULT_TIMEOUT_S, refresh_access_token
from bikecli.schemas.token import StravaToken
from bikecli.services.token_store import TokenStore

logger = logging.getLogger(__name__)

# Never hand out a token that could expire in the middle of a request.
REFRESH_MARGIN_S = 300

NO_TOKEN_MESSAGE = "No Strava token found. Run 'bike auth login' first."


class TokenManager:
    def __init__(
        self,
        tokens: TokenStore,
        credentials: StravaCredentials | None,
        *,
        athlete_id: int | None = None,
        clock: Callable[[], float] = time.time,
        timeout_s: float = DEFAULT_TIMEOUT_S,
    ):
        self.tokens = tokens
        self.credentials = credentials
        self.athlete_id = athlete_id
        self.clock = clock
        self.timeout_s = timeout_s
        self._token: StravaToken | None = None

    @property
    def token(self) -> StravaToken | None:
        return self._token

    def needs_refresh(self, token: StravaToken) -> bool:
        return self.clock() >= token.expires_at - REFRESH_MARGIN_S

    def adopt(self, token: StravaToken) -> None:
        self._token = token
        self.athlete_id = token.athlete_id

    def invalidate(self) -> None:
        """Forget the in-memory token; the next call reloads it from the store."""
        self._token = None

    def ensure_valid(self, athlete_id: int | None = None) -> str:
        if athlete_id is not None and athlete_id != self.athlete_id:
            self._token = None
            self.athlete_id = athlete_id

        token = self._token
        if token is None:
            token = self.tokens.get(self.athlete_id)
            if token is None:
                raise AuthError(NO_TOKEN_MESSAGE)

        if self.needs_refresh(token):
            token = self.refresh(token)

        self.adopt(token)
        return token.access_token

    def refresh(self, token: StravaToken) -> StravaToken:
        logger.info(
            "Strava token near expiry; refreshing",
            extra={"athlete_id": token.athlete_id, "expires_at": token.expires_at},
        )
        if self.credentials is None:
            raise AuthError(CREDENTIALS_MISSING)
        grant = refresh_access_token(
            self.credentials.client_id,
            self.credentials.client_secret,
            token.refresh_token,
            timeout_s=self.timeout_s,
            now=self.clock(),
        )
        # Strava may rotate the refresh token; the returned one is the only valid one.
        refreshed = self.tokens.save(
            token.athlete_id,
            grant.access_token,
            grant.refresh_token,
            grant.expires_at,
            token.scopes,
        )
        self.adopt(refreshed)
        return refreshed
