from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class Activity(BaseModel):
    id: int
    athlete_id: int | None = None
    bike_id: str | None = None
    strava_gear_id: str | None = None
    name: str | None = None
    type: str | None = None
    start_date: datetime | None = None
    distance_m: float = 0.0
    moving_time_s: int = 0
    elapsed_time_s: int = 0
    elev_gain_m: float = 0.0
    average_speed_mps: float = 0.0
    raw: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime
