from __future__ import annotations

import logging
from time import perf_counter
from typing import Any
from urllib.parse import parse_qsl, urlencode
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bikecli.core.config import Settings

request_logger = logging.getLogger("bikecli.request")
error_logger = logging.getLogger("bikecli.error")

# Query parameters and event fields that carry OAuth secrets.
SECRET_KEYS = frozenset({"code", "access_token", "refresh_token", "client_secret"})
REDACTED = "[redacted]"


def redact_query(query: str) -> str:
    pairs = parse_qsl(query, keep_blank_values=True)
    return urlencode([(k, REDACTED if k in SECRET_KEYS else v) for k, v in pairs])


def _scrub(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: REDACTED if k in SECRET_KEYS else _scrub(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_scrub(v) for v in value]
    return value


def scrub_event(event: dict, hint: dict | None = None) -> dict:
    """Sentry ``before_send`` hook dropping token material from event payloads."""
    return _scrub(event)


def init_sentry(settings: Settings) -> bool:
    if not settings.SENTRY_DSN:
        return False

    try:
        import sentry_sdk
    except ImportError:
        error_logger.warning(
            "SENTRY_DSN configured but sentry_sdk is not installed; skipping Sentry init"
        )
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        before_send=scrub_event,
        send_default_pii=False,
    )
    error_logger.debug("Sentry initialized", extra={"traces_sample_rate": settings.SENTRY_TRACES_SAMPLE_RATE})
    return True


def setup_request_logging(app: FastAPI) -> None:
    """Log each request with a request id; a crashing handler becomes a JSON 500."""

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid4())
        start = perf_counter()
        fields = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query": redact_query(request.url.query),
        }

        try:
            response = await call_next(request)
        except Exception:
            fields["duration_ms"] = round((perf_counter() - start) * 1000, 2)
            error_logger.exception("Callback handler crashed", extra=fields)
            response = JSONResponse(
                status_code=500,
                content={"detail": "Internal server error", "request_id": request_id},
            )
        else:
            fields["duration_ms"] = round((perf_counter() - start) * 1000, 2)
            request_logger.info("Request completed", extra={**fields, "status_code": response.status_code})

        response.headers["X-Request-ID"] = request_id
        return response
