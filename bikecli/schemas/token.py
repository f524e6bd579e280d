from datetime import datetime

from pydantic import BaseModel, Field


class StravaToken(BaseModel):
    athlete_id: int
    access_token: str
    refresh_token: str
    expires_at: int  # unix timestamp
    scopes: list[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime
