from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from bikecli.models.document import Document

TOKENS = "tokens"
BIKES = "bikes"
ACTIVITIES = "activities"
COMPONENTS = "components"
MAINTENANCE_EVENTS = "maintenanceEvents"

COLLECTIONS = frozenset({TOKENS, BIKES, ACTIVITIES, COMPONENTS, MAINTENANCE_EVENTS})

Record = dict[str, Any]
Predicate = Callable[[Record], bool]
KeyFn = Callable[[Record], Any]


def _check_collection(collection: str) -> None:
    if collection not in COLLECTIONS:
        raise ValueError(f"Unknown collection {collection!r}")


class DocumentStore:
    """
    Named JSON collections persisted in the documents table.

    Writes are staged on the session and become durable on ``commit()``. The
    store assumes a single writer: two CLI invocations against the same file
    must not run at the same time.
    """

    def __init__(self, db: Session):
        self.db = db

    def _rows(self, collection: str) -> list[Document]:
        _check_collection(collection)
        return (
            self.db.query(Document)
            .filter(Document.collection == collection)
            .order_by(Document.id.asc())
            .all()
        )

    def _row(self, collection: str, key: Any) -> Document | None:
        _check_collection(collection)
        return (
            self.db.query(Document)
            .filter(Document.collection == collection, Document.key == str(key))
            .one_or_none()
        )

    def find(self, collection: str, predicate: Predicate | None = None) -> list[Record]:
        records = [dict(row.data) for row in self._rows(collection)]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    def find_one(self, collection: str, predicate: Predicate) -> Record | None:
        for record in self.find(collection, predicate):
            return record
        return None

    def get(self, collection: str, key: Any) -> Record | None:
        row = self._row(collection, key)
        return dict(row.data) if row is not None else None

    def count(self, collection: str) -> int:
        _check_collection(collection)
        return self.db.query(Document).filter(Document.collection == collection).count()

    def upsert(self, collection: str, key_fn: KeyFn, record: Record) -> bool:
        """Insert or replace ``record`` under ``key_fn(record)``; True when inserted."""
        key = key_fn(record)
        if key is None:
            raise ValueError(f"Cannot store a {collection} record without a key")

        now = datetime.now(timezone.utc)
        row = self._row(collection, key)
        inserted = row is None
        if row is None:
            row = Document(collection=collection, key=str(key), created_at=now)
            self.db.add(row)

        row.data = dict(record)
        row.updated_at = now
        self.db.flush()
        return inserted

    def delete(self, collection: str, predicate: Predicate) -> int:
        removed = 0
        for row in self._rows(collection):
            if predicate(dict(row.data)):
                self.db.delete(row)
                removed += 1
        if removed:
            self.db.flush()
        return removed

    def commit(self) -> None:
        self.db.commit()

    def rollback(self) -> None:
        self.db.rollback()
