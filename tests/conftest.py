from __future__ import annotations

import sys
from pathlib import Path
from typing import Generator

import httpx
import pytest
from sqlalchemy.orm import Session

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

import bikecli.integrations.strava as strava_integration
from bikecli.core.config import StravaCredentials
from bikecli.core.db import open_session
from bikecli.services.document_store import DocumentStore
from bikecli.services.token_store import TokenStore

FAR_FUTURE = 2_147_483_000
ATHLETE_ID = 106491649


def make_activities(count: int, start_id: int = 1000, gear_id: str | None = None) -> list[dict]:
    return [
        {
            "id": start_id + i,
            "name": f"Ride {i}",
            "type": "Ride",
            "sport_type": "Ride",
            "start_date": "2025-03-01T08:00:00Z",
            "distance": 25000.0,
            "moving_time": 3600,
            "elapsed_time": 4000,
            "total_elevation_gain": 150.0,
            "average_speed": 6.9,
            "gear_id": gear_id,
            "athlete": {"id": ATHLETE_ID, "resource_state": 1},
        }
        for i in range(count)
    ]


class FakeStrava:
    """Stands in for the Strava HTTP API behind ``httpx.request`` / ``httpx.post``."""

    def __init__(self):
        self.athlete: dict = {
            "id": ATHLETE_ID,
            "firstname": "Michal",
            "lastname": "Tester",
            "city": "Krakow",
            "state": None,
            "country": "Poland",
            "bikes": [],
            "shoes": [],
        }
        # Each entry is a list of activities or an int status code to fail with.
        self.activity_pages: list[list[dict] | int] = []
        self.token_responses: list[httpx.Response] = []
        self.rate_limit_headers: dict[str, str] = {}
        self.athlete_status = 200
        self.requests: list[dict] = []
        self.token_posts: list[dict] = []

    @property
    def activity_requests(self) -> list[dict]:
        return [r for r in self.requests if r["path"] == "/athlete/activities"]

    def _response(self, status: int, request: httpx.Request, **kwargs) -> httpx.Response:
        return httpx.Response(status, headers=self.rate_limit_headers, request=request, **kwargs)

    def request(self, method: str, url: str, headers=None, params=None, timeout=None):
        request = httpx.Request(method, url, params=params)
        path = url.removeprefix(strava_integration.BASE_URL)
        self.requests.append(
            {"method": method, "path": path, "params": dict(params or {}), "headers": dict(headers or {})}
        )

        if path == "/athlete":
            if self.athlete_status != 200:
                return self._response(self.athlete_status, request, text="athlete unavailable")
            return self._response(200, request, json=self.athlete)

        if path == "/athlete/activities":
            page = int(params["page"])
            if page > len(self.activity_pages):
                return self._response(200, request, json=[])
            items = self.activity_pages[page - 1]
            if isinstance(items, int):
                return self._response(items, request, text=f"page {page} failed")
            return self._response(200, request, json=items)

        return self._response(404, request, text="Record Not Found")

    def post(self, url: str, data: dict, timeout: float):
        assert url == strava_integration.TOKEN_URL
        self.token_posts.append(dict(data))
        request = httpx.Request("POST", url)
        if self.token_responses:
            response = self.token_responses.pop(0)
            response.request = request
            return response
        return httpx.Response(
            200,
            json={
                "token_type": "Bearer",
                "access_token": f"access-{len(self.token_posts)}",
                "refresh_token": f"refresh-{len(self.token_posts)}",
                "expires_at": FAR_FUTURE,
                "expires_in": 21600,
            },
            request=request,
        )


@pytest.fixture()
def fake_strava(monkeypatch) -> FakeStrava:
    fake = FakeStrava()
    monkeypatch.setattr(strava_integration.httpx, "request", fake.request)
    monkeypatch.setattr(strava_integration.httpx, "post", fake.post)
    return fake


@pytest.fixture()
def database_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'bike.sqlite'}"


@pytest.fixture()
def db_session(database_url) -> Generator[Session, None, None]:
    with open_session(database_url) as db:
        yield db


@pytest.fixture()
def store(db_session) -> DocumentStore:
    return DocumentStore(db_session)


@pytest.fixture()
def token_store(store) -> TokenStore:
    return TokenStore(store)


@pytest.fixture()
def credentials() -> StravaCredentials:
    return StravaCredentials(
        client_id="test-client-id",
        client_secret="test-client-secret",
        redirect_uri="http://127.0.0.1:8888/callback",
    )


@pytest.fixture()
def stored_token(token_store):
    return token_store.save(
        ATHLETE_ID,
        "access-token",
        "refresh-token",
        FAR_FUTURE,
        ["read", "activity:read_all"],
    )
