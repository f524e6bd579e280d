from __future__ import annotations

from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass, field

from fastapi import APIRouter
from fastapi.responses import HTMLResponse, PlainTextResponse

from bikecli.core.errors import AuthError

CALLBACK_PATH = "/callback"

SUCCESS_PAGE = """<!doctype html>
<html>
  <head><title>Strava Auth Complete</title></head>
  <body>
    <h1>Authorization successful!</h1>
    <p>You can close this window and return to the terminal.</p>
  </body>
</html>
"""

_OTHER_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]


def _already_handled() -> PlainTextResponse:
    return PlainTextResponse("Authorization already handled", status_code=404)


@dataclass(frozen=True)
class CallbackResult:
    code: str
    scopes: list[str] = field(default_factory=list)


def build_callback_router(outcome: Future) -> APIRouter:
    """
    Router resolving ``outcome`` with the first terminal callback.

    Handlers are async so they run one at a time on the server loop; once the
    future is done every further request gets a 404 and changes nothing.
    """
    router = APIRouter(tags=["auth"])

    @router.get(CALLBACK_PATH)
    async def strava_callback(
        code: str | None = None,
        error: str | None = None,
        scope: str | None = None,
    ):
        if outcome.done():
            return _already_handled()

        # The listener may cancel the outcome between the check above and here.
        try:
            if error:
                outcome.set_exception(AuthError(f"Strava authorization failed: {error}"))
                return PlainTextResponse(f"OAuth error: {error}", status_code=400)

            if code:
                scopes = [s.strip() for s in (scope or "").split(",") if s.strip()]
                outcome.set_result(CallbackResult(code=code, scopes=scopes))
                return HTMLResponse(SUCCESS_PAGE)

            outcome.set_exception(AuthError("Strava callback is missing the authorization code"))
            return PlainTextResponse("Missing authorization code", status_code=400)
        except InvalidStateError:
            return _already_handled()

    @router.api_route("/{path:path}", methods=_OTHER_METHODS, include_in_schema=False)
    async def not_found(path: str):
        return PlainTextResponse("Not found", status_code=404)

    return router
