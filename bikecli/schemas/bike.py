from datetime import datetime

from pydantic import BaseModel


class Bike(BaseModel):
    id: str
    name: str
    type: str | None = None
    strava_gear_id: str | None = None
    is_default: bool = False
    notes: str | None = None
    created_at: datetime
    updated_at: datetime
