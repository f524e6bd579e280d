from __future__ import annotations

from datetime import datetime, timezone

from bikecli.schemas.token import StravaToken
from bikecli.services.document_store import TOKENS, DocumentStore


def _token_key(record: dict) -> int:
    return record["athlete_id"]


class TokenStore:
    """One token record per athlete, kept in the ``tokens`` collection."""

    def __init__(self, store: DocumentStore):
        self.store = store

    def all(self) -> list[StravaToken]:
        return [StravaToken.model_validate(r) for r in self.store.find(TOKENS)]

    def get(self, athlete_id: int | None = None) -> StravaToken | None:
        """
        Return the token of ``athlete_id``.

        Without an athlete id the most recently updated token is the current
        one; on equal timestamps the record stored last wins.
        """
        if athlete_id is not None:
            record = self.store.get(TOKENS, athlete_id)
            return StravaToken.model_validate(record) if record else None

        current: StravaToken | None = None
        for token in self.all():
            if current is None or token.updated_at >= current.updated_at:
                current = token
        return current

    def save(
        self,
        athlete_id: int,
        access_token: str,
        refresh_token: str,
        expires_at: int,
        scopes: list[str],
    ) -> StravaToken:
        now = datetime.now(timezone.utc)
        existing = self.get(athlete_id)
        token = StravaToken(
            athlete_id=athlete_id,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            scopes=list(scopes),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self.store.upsert(TOKENS, _token_key, token.model_dump(mode="json"))
        self.store.commit()
        return token

    def delete(self, athlete_id: int) -> bool:
        removed = self.store.delete(TOKENS, lambda r: r["athlete_id"] == athlete_id)
        self.store.commit()
        return removed > 0
