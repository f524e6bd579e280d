from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any
from urllib.parse import urlencode

import httpx

from bikecli.core.errors import ApiError, AuthError

if TYPE_CHECKING:
    from bikecli.services.token_manager import TokenManager

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://www.strava.com/oauth/authorize"
TOKEN_URL = "https://www.strava.com/oauth/token"
BASE_URL = "https://www.strava.com/api/v3"

DEFAULT_SCOPES = ("read", "activity:read_all")
DEFAULT_TIMEOUT_S = 20.0
DEFAULT_PAGE_SIZE = 200
RATE_LIMIT_WARNING_RATIO = 0.9

REAUTH_HINT = "Run 'bike auth login' again."


def build_authorize_url(client_id: str, redirect_uri: str, scopes=DEFAULT_SCOPES) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "approval_prompt": "auto",
        "scope": ",".join(scopes),
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


@dataclass(frozen=True)
class TokenGrant:
    access_token: str
    refresh_token: str
    expires_at: int

    @classmethod
    def from_response(cls, data: dict, now: float | None = None) -> "TokenGrant":
        access_token = data.get("access_token")
        refresh_token = data.get("refresh_token")
        if not access_token or not refresh_token:
            raise AuthError("Strava token response is missing the access or refresh token")

        expires_at = data.get("expires_at")
        if expires_at is None:
            expires_in = data.get("expires_in")
            if expires_in is None:
                raise AuthError("Strava token response carries no expiry")
            expires_at = int(now if now is not None else time.time()) + int(expires_in)

        return cls(access_token=access_token, refresh_token=refresh_token, expires_at=int(expires_at))


def _post_token(payload: dict, *, action: str, timeout_s: float) -> dict:
    try:
        r = httpx.post(TOKEN_URL, data=payload, timeout=timeout_s)
    except httpx.HTTPError as exc:
        raise AuthError(f"{action} failed: {exc}") from exc

    if not r.is_success:
        raise AuthError(f"{action} failed ({r.status_code}): {r.text}")
    return r.json()


def exchange_code_for_token(
    client_id: str,
    client_secret: str,
    code: str,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    now: float | None = None,
) -> TokenGrant:
    payload = {
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "grant_type": "authorization_code",
    }
    data = _post_token(payload, action="Token exchange", timeout_s=timeout_s)
    return TokenGrant.from_response(data, now=now)


def refresh_access_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    now: float | None = None,
) -> TokenGrant:
    payload = {
        "client_id": client_id,
        "client_secret": client_secret,
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
    }
    data = _post_token(payload, action="Token refresh", timeout_s=timeout_s)
    return TokenGrant.from_response(data, now=now)


def _first_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        return int(value.split(",")[0].strip())
    except ValueError:
        return None


def rate_limit_warning(response: httpx.Response) -> str | None:
    """Return a warning when short-window usage reached 90% of the limit."""
    limit = _first_int(response.headers.get("X-RateLimit-Limit"))
    usage = _first_int(response.headers.get("X-RateLimit-Usage"))
    if not limit or usage is None:
        return None
    if usage < limit * RATE_LIMIT_WARNING_RATIO:
        return None
    return f"Approaching Strava rate limit ({usage}/{limit})"


def _get(path: str, access_token: str, params: dict | None, timeout_s: float) -> httpx.Response:
    url = f"{BASE_URL}/{path.lstrip('/')}"
    query = {k: v for k, v in (params or {}).items() if v is not None}
    try:
        return httpx.request(
            method="GET",
            url=url,
            headers={"Authorization": f"Bearer {access_token}"},
            params=query,
            timeout=timeout_s,
        )
    except httpx.HTTPError as exc:
        raise ApiError(None, f"{exc.__class__.__name__}: {exc}") from exc


def fetch_authenticated_athlete(access_token: str, *, timeout_s: float = DEFAULT_TIMEOUT_S) -> dict:
    r = _get("/athlete", access_token, None, timeout_s)
    if not r.is_success:
        raise AuthError(f"Could not load the Strava athlete profile ({r.status_code}): {r.text}")
    return r.json()


class StravaClient:
    """Authenticated GET access to the Strava API; one call per request, no retries."""

    def __init__(self, tokens: TokenManager, *, timeout_s: float = DEFAULT_TIMEOUT_S):
        self.tokens = tokens
        self.timeout_s = timeout_s
        self.warnings: list[str] = []

    def get(self, path: str, params: dict | None = None) -> Any:
        access_token = self.tokens.ensure_valid()
        r = _get(path, access_token, params, self.timeout_s)

        warning = rate_limit_warning(r)
        if warning:
            logger.warning(warning, extra={"path": path})
            self.warnings.append(warning)

        if r.status_code == 401:
            self.tokens.invalidate()
            raise AuthError(f"Strava rejected the access token. {REAUTH_HINT}")

        if not r.is_success:
            raise ApiError(r.status_code, r.text)
        return r.json()

    def get_athlete(self) -> dict:
        return self.get("/athlete")

    def get_gear(self, athlete: dict | None = None) -> list[dict]:
        """Bikes and shoes bundled in the athlete profile, tagged with ``gear_kind``."""
        if athlete is None:
            athlete = self.get_athlete()
        bikes = [{**g, "gear_kind": "bike"} for g in athlete.get("bikes") or []]
        shoes = [{**g, "gear_kind": "shoe"} for g in athlete.get("shoes") or []]
        return bikes + shoes

    def get_activities(
        self,
        after: int | None = None,
        before: int | None = None,
        per_page: int = DEFAULT_PAGE_SIZE,
        page: int = 1,
    ) -> list[dict]:
        params = {"per_page": per_page, "page": page}
        if after is not None:
            params["after"] = after
        if before is not None:
            params["before"] = before
        items = self.get("/athlete/activities", params=params)
        if not isinstance(items, list):
            raise ApiError(None, "Unexpected response from Strava activities API")
        return items
