from __future__ import annotations

import logging
from datetime import date, datetime, timedelta, timezone
from typing import Callable
from uuid import uuid4

from bikecli.core.config import CREDENTIALS_MISSING, StravaCredentials
from bikecli.core.errors import AuthError, BikeCliError, SyncError
from bikecli.integrations.strava import DEFAULT_PAGE_SIZE, StravaClient
from bikecli.schemas.bike import Bike
from bikecli.schemas.sync import ActivitySyncResult, AthleteProfile, BikeSyncResult, SyncResult
from bikecli.services.activities import build_activity, get_activity, upsert_activity
from bikecli.services.bikes import gear_index, get_bike_by_strava_gear_id, save_bike
from bikecli.services.document_store import DocumentStore
from bikecli.services.token_manager import TokenManager
from bikecli.services.token_store import TokenStore

logger = logging.getLogger(__name__)

RECENT_WINDOW_DAYS = 30
FULL_WINDOW_DAYS = 365
DETAILED_RESOURCE_STATE = 3


def to_unix_timestamp(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    else:
        value = value.astimezone(timezone.utc)
    return int(value.timestamp())


def resolve_since(
    since: str | date | datetime | None,
    full: bool = False,
    now: datetime | None = None,
) -> datetime:
    """Start of the sync window: explicit date, else one year with ``full``, else 30 days."""
    now = now or datetime.now(timezone.utc)

    if since:
        if isinstance(since, str):
            since = datetime.fromisoformat(since)
        if not isinstance(since, datetime):
            since = datetime(since.year, since.month, since.day)
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        return since

    days = FULL_WINDOW_DAYS if full else RECENT_WINDOW_DAYS
    return now - timedelta(days=days)


def gear_identifier(gear: dict) -> str | None:
    return gear.get("gear_id") or gear.get("id")


def is_syncable_bike(gear: dict) -> bool:
    return (
        gear.get("resource_state") == DETAILED_RESOURCE_STATE
        and bool(gear_identifier(gear))
        and gear.get("gear_kind", "bike") == "bike"
    )


def sync_bikes(store: DocumentStore, gear: list[dict], now: datetime | None = None) -> BikeSyncResult:
    now = now or datetime.now(timezone.utc)
    bikes = [g for g in gear if is_syncable_bike(g)]
    shoes = [
        g for g in gear
        if g.get("resource_state") == DETAILED_RESOURCE_STATE and g.get("gear_kind") == "shoe"
    ]

    for g in bikes:
        strava_gear_id = gear_identifier(g)
        name = g.get("name") or g.get("nickname") or "Unnamed Bike"
        bike = get_bike_by_strava_gear_id(store, strava_gear_id)

        if bike is None:
            bike = Bike(
                id=str(uuid4()),
                name=name,
                type=g.get("description") or None,
                strava_gear_id=strava_gear_id,
                is_default=False,
                notes=g.get("brand_model") or None,
                created_at=now,
                updated_at=now,
            )
            logger.info("New bike from Strava gear", extra={"strava_gear_id": strava_gear_id})
        else:
            bike.name = name
            bike.type = g.get("description") or bike.type
            bike.notes = g.get("brand_model") or bike.notes

        save_bike(store, bike)

    store.commit()
    return BikeSyncResult(count=len(bikes), shoes=len(shoes))


def sync_activities(
    client: StravaClient,
    store: DocumentStore,
    *,
    athlete_id: int | None,
    after: int | None,
    per_page: int = DEFAULT_PAGE_SIZE,
    now: datetime | None = None,
) -> ActivitySyncResult:
    """
    Fetch activity pages in order and merge each one into the store.

    Every page is committed once merged, so a failure on a later page keeps
    the earlier pages. Pagination ends on an empty or short page.
    """
    result = ActivitySyncResult()
    bikes_by_gear = gear_index(store)

    page = 1
    while True:
        items = client.get_activities(after=after, per_page=per_page, page=page)
        result.pages += 1
        if not items:
            break

        for payload in items:
            activity_id = payload.get("id")
            if activity_id is None:
                logger.warning("Skipping Strava activity without an id", extra={"page": page})
                continue

            existing = get_activity(store, activity_id)
            gear_id = payload.get("gear_id")
            activity = build_activity(
                payload,
                athlete_id=athlete_id,
                bike_id=bikes_by_gear.get(gear_id) if gear_id else None,
                existing=existing,
                now=now,
            )
            upsert_activity(store, activity)

            if existing is None:
                result.added += 1
            else:
                result.updated += 1

        store.commit()
        logger.info(
            "Merged activity page",
            extra={"page": page, "items": len(items), "added": result.added, "updated": result.updated},
        )

        if len(items) < per_page:
            break

        page += 1

    return result


def sync(
    store: DocumentStore,
    credentials: StravaCredentials | None,
    *,
    since: str | date | datetime | None = None,
    full: bool = False,
    authorizer: Callable[[], AthleteProfile] | None = None,
    now: datetime | None = None,
) -> SyncResult:
    """
    Sync Strava gear and then activities into ``store``.

    Without a stored token ``authorizer`` (when given) runs the interactive
    login first. Each phase commits on its own; nothing is rolled back across
    phases or pages.
    """
    now = now or datetime.now(timezone.utc)
    phase = "options"

    try:
        since_dt = resolve_since(since, full, now)

        phase = "credentials"
        if credentials is None:
            raise AuthError(CREDENTIALS_MISSING)

        tokens = TokenStore(store)
        if tokens.get() is None and authorizer is not None:
            authorizer()

        manager = TokenManager(tokens, credentials)
        client = StravaClient(manager)
        manager.ensure_valid()

        athlete = client.get_athlete()
        profile = AthleteProfile.from_strava(athlete, manager.token.scopes if manager.token else None)

        phase = "gear"
        bikes = sync_bikes(store, client.get_gear(athlete), now=now)

        phase = "activities"
        activities = sync_activities(
            client,
            store,
            athlete_id=profile.id,
            after=to_unix_timestamp(since_dt),
            now=now,
        )
    except (BikeCliError, ValueError, KeyError, TypeError) as exc:
        store.rollback()
        logger.info("Sync aborted", extra={"phase": phase, "error": str(exc)})
        raise SyncError(f"Sync failed: {exc}", phase=phase) from exc

    return SyncResult(
        athlete=profile,
        bikes=bikes,
        activities=activities,
        since=since_dt,
        warnings=list(client.warnings),
    )
