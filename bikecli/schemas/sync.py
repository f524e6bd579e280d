from datetime import datetime

from pydantic import BaseModel, Field

from bikecli.core.errors import ApiError


class AthleteProfile(BaseModel):
    id: int
    display_name: str
    location: str | None = None
    scopes: list[str] = Field(default_factory=list)

    @classmethod
    def from_strava(cls, athlete: dict, scopes: list[str] | None = None) -> "AthleteProfile":
        if not athlete.get("id"):
            raise ApiError(None, "Strava returned an athlete profile without an id")
        name = " ".join(p for p in (athlete.get("firstname"), athlete.get("lastname")) if p)
        parts = [athlete.get(k) for k in ("city", "state", "country")]
        location = ", ".join(p for p in parts if p) or None
        return cls(
            id=athlete["id"],
            display_name=name or str(athlete["id"]),
            location=location,
            scopes=list(scopes or []),
        )


class BikeSyncResult(BaseModel):
    count: int = 0
    shoes: int = 0


class ActivitySyncResult(BaseModel):
    added: int = 0
    updated: int = 0
    pages: int = 0


class SyncResult(BaseModel):
    athlete: AthleteProfile
    bikes: BikeSyncResult
    activities: ActivitySyncResult
    since: datetime
    warnings: list[str] = Field(default_factory=list)
