from __future__ import annotations

from datetime import datetime, timezone

from bikecli.schemas.activity import Activity
from bikecli.services.document_store import ACTIVITIES, DocumentStore


def _activity_key(record: dict) -> int:
    return record["id"]


def parse_start_date(s: str | None) -> datetime | None:
    if not s:
        return None
    # Strava returns ISO 8601 like "2024-01-01T12:34:56Z"
    return datetime.fromisoformat(s.replace("Z", "+00:00")).astimezone(timezone.utc)


def build_activity(
    payload: dict,
    *,
    athlete_id: int | None,
    bike_id: str | None,
    existing: Activity | None = None,
    now: datetime | None = None,
) -> Activity:
    now = now or datetime.now(timezone.utc)
    athlete = payload.get("athlete") or {}
    return Activity(
        id=payload["id"],
        athlete_id=athlete.get("id", athlete_id),
        bike_id=bike_id,
        strava_gear_id=payload.get("gear_id") or None,
        name=payload.get("name") or None,
        type=payload.get("sport_type") or payload.get("type") or None,
        start_date=parse_start_date(payload.get("start_date")),
        distance_m=payload.get("distance") or 0.0,
        moving_time_s=payload.get("moving_time") or 0,
        elapsed_time_s=payload.get("elapsed_time") or 0,
        elev_gain_m=payload.get("total_elevation_gain") or 0.0,
        average_speed_mps=payload.get("average_speed") or 0.0,
        raw=payload,
        created_at=existing.created_at if existing else now,
        updated_at=now,
    )


def get_activity(store: DocumentStore, activity_id: int) -> Activity | None:
    record = store.get(ACTIVITIES, activity_id)
    return Activity.model_validate(record) if record else None


def upsert_activity(store: DocumentStore, activity: Activity) -> bool:
    """Replace the stored activity with the same Strava id, or insert it."""
    return store.upsert(ACTIVITIES, _activity_key, activity.model_dump(mode="json"))
