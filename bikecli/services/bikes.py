from __future__ import annotations

from datetime import datetime, timezone

from bikecli.core.errors import BikeCliError
from bikecli.schemas.bike import Bike
from bikecli.services.document_store import BIKES, DocumentStore


def _bike_key(record: dict) -> str:
    return record["id"]


def list_bikes(store: DocumentStore) -> list[Bike]:
    """All bikes, the default one first, then by name."""
    bikes = [Bike.model_validate(r) for r in store.find(BIKES)]
    return sorted(bikes, key=lambda b: (not b.is_default, b.name.casefold()))


def get_bike(store: DocumentStore, bike_id: str) -> Bike | None:
    record = store.get(BIKES, bike_id)
    return Bike.model_validate(record) if record else None


def get_bike_by_strava_gear_id(store: DocumentStore, strava_gear_id: str) -> Bike | None:
    record = store.find_one(BIKES, lambda r: r.get("strava_gear_id") == strava_gear_id)
    return Bike.model_validate(record) if record else None


def get_default_bike(store: DocumentStore) -> Bike | None:
    record = store.find_one(BIKES, lambda r: bool(r.get("is_default")))
    return Bike.model_validate(record) if record else None


def gear_index(store: DocumentStore) -> dict[str, str]:
    """Map Strava gear ids to local bike ids."""
    return {
        r["strava_gear_id"]: r["id"]
        for r in store.find(BIKES)
        if r.get("strava_gear_id")
    }


def save_bike(store: DocumentStore, bike: Bike) -> bool:
    bike.updated_at = datetime.now(timezone.utc)
    return store.upsert(BIKES, _bike_key, bike.model_dump(mode="json"))


def set_default_bike(store: DocumentStore, bike_id: str) -> Bike:
    target = get_bike(store, bike_id)
    if target is None:
        raise BikeCliError(f"No bike with id {bike_id}")

    for bike in list_bikes(store):
        is_default = bike.id == bike_id
        if bike.is_default != is_default:
            bike.is_default = is_default
            save_bike(store, bike)

    store.commit()
    return get_bike(store, bike_id)
