from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from runmetrics.core.time_utils import ensure_utc


class RemoteActivity(BaseModel):
    """Activity summary as returned by the athlete activity listing."""

    model_config = ConfigDict(extra="ignore")

    id: int
    name: str = "Strava Run"
    type: str = "Run"
    distance: float = 0.0             # meters
    moving_time: float = 0.0          # seconds
    elapsed_time: Optional[float] = None
    total_elevation_gain: float = 0.0  # meters
    start_date: datetime

    @field_validator("name", mode="before")
    @classmethod
    def _name(cls, v):
        return v or "Strava Run"

    @field_validator("distance", "moving_time", "total_elevation_gain", mode="before")
    @classmethod
    def _none_to_zero(cls, v):
        return 0.0 if v is None else v

    @field_validator("start_date")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class RemoteStreamSet(BaseModel):
    """Validated parallel streams of one activity; all present arrays share a length."""

    latlng: list[tuple[float, float]]
    time: list[float]  # seconds from activity start
    altitude: Optional[list[Optional[float]]] = None
    distance: Optional[list[Optional[float]]] = None
    heartrate: Optional[list[Optional[float]]] = None

    def __len__(self) -> int:
        return len(self.latlng)


class SyncStage(str, Enum):
    listing = "listing"
    fetching = "fetching"
    converted = "converted"
    fallback = "fallback"
    skipped = "skipped"
    rate_limited = "rate_limited"
    paused = "paused"
    cancelled = "cancelled"
    completed = "completed"


class SyncEvent(BaseModel):
    stage: SyncStage
    current: int = 0
    total: int = 0
    activity_id: Optional[int] = None
    message: str = ""
    inserted: int = 0


class SyncResult(BaseModel):
    total: int = 0
    inserted: int = 0
    skipped: int = 0
    fallbacks: int = 0
    paused: bool = False
    cancelled: bool = False
    unlocked_achievements: list[str] = Field(default_factory=list)
    completed_goals: list[str] = Field(default_factory=list)
    events: list[SyncEvent] = Field(default_factory=list)
