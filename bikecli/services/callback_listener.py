from __future__ import annotations

import logging
import socket
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError

import uvicorn
from fastapi import FastAPI

from bikecli.core.errors import AuthError
from bikecli.core.observability import setup_request_logging
from bikecli.routes.callback import CALLBACK_PATH, CallbackResult, build_callback_router

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 120.0
STARTUP_TIMEOUT_S = 5.0
SHUTDOWN_TIMEOUT_S = 5.0


def build_callback_app(outcome: Future) -> FastAPI:
    app = FastAPI(title="bike-cli OAuth callback", docs_url=None, redoc_url=None, openapi_url=None)
    setup_request_logging(app)
    app.include_router(build_callback_router(outcome))
    return app


class CallbackListener:
    """
    Single-shot loopback HTTP server waiting for the Strava redirect.

    Binds an OS-assigned port on ``host``; use as a context manager so the
    server thread and its socket are released on every exit path.
    """

    def __init__(self, host: str = "127.0.0.1", timeout_s: float = DEFAULT_TIMEOUT_S):
        self.host = host
        self.timeout_s = timeout_s
        self.outcome: Future = Future()
        self._socket: socket.socket | None = None
        self._server: uvicorn.Server | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        if self._socket is None:
            raise RuntimeError("Callback listener is not running")
        return self._socket.getsockname()[1]

    @property
    def redirect_uri(self) -> str:
        return f"http://{self.host}:{self.port}{CALLBACK_PATH}"

    def start(self) -> None:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((self.host, 0))
            sock.listen()
        except OSError as exc:
            sock.close()
            raise AuthError(f"Could not open a callback listener on {self.host}: {exc}") from exc
        self._socket = sock

        config = uvicorn.Config(
            build_callback_app(self.outcome),
            log_config=None,
            log_level="warning",
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._thread = threading.Thread(
            target=self._server.run,
            kwargs={"sockets": [sock]},
            name="strava-oauth-callback",
            daemon=True,
        )
        self._thread.start()

        deadline = time.monotonic() + STARTUP_TIMEOUT_S
        while not self._server.started:
            if not self._thread.is_alive() or time.monotonic() > deadline:
                self.close()
                raise AuthError("The local callback listener failed to start")
            time.sleep(0.01)
        logger.info("Callback listener started", extra={"redirect_uri": self.redirect_uri})

    def wait(self) -> CallbackResult:
        try:
            return self.outcome.result(timeout=self.timeout_s)
        except FutureTimeoutError as exc:
            raise AuthError(
                f"Authorization timed out after {self.timeout_s:g} seconds waiting for the Strava callback"
            ) from exc

    def close(self) -> None:
        # Late requests must not resolve an outcome nobody is waiting for.
        self.outcome.cancel()

        if self._server is not None:
            self._server.should_exit = True
        if self._thread is not None:
            self._thread.join(timeout=SHUTDOWN_TIMEOUT_S)
            if self._thread.is_alive():
                logger.warning("Callback listener thread did not stop in time")
        if self._socket is not None:
            self._socket.close()

        self._server = None
        self._thread = None
        self._socket = None

    def __enter__(self) -> "CallbackListener":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
