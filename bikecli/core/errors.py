from __future__ import annotations


class BikeCliError(Exception):
    """Base error for everything the sync engine raises on purpose."""


class AuthError(BikeCliError):
    """Missing credentials, denied/timed-out authorization or an unusable token."""


class ApiError(BikeCliError):
    def __init__(self, status: int | None, body: str):
        self.status = status
        self.body = body
        if status is None:
            super().__init__(f"Strava request failed: {body}")
        else:
            super().__init__(f"Strava API error ({status}): {body}")


class SyncError(BikeCliError):
    def __init__(self, message: str, phase: str | None = None):
        super().__init__(message)
        self.phase = phase
