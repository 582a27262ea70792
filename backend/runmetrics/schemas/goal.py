from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, TypeAdapter, computed_field, field_validator

from runmetrics.core.time_utils import ensure_utc


class GoalMetric(str, Enum):
    distance = "distance"    # miles
    time = "time"            # hours
    runs = "runs"            # count
    streak = "streak"        # consecutive days
    elevation = "elevation"  # feet


class GoalPeriod(str, Enum):
    daily = "daily"
    weekly = "weekly"
    monthly = "monthly"
    yearly = "yearly"
    custom = "custom"


GOAL_UNITS = {
    GoalMetric.distance: "miles",
    GoalMetric.time: "hours",
    GoalMetric.runs: "runs",
    GoalMetric.streak: "days",
    GoalMetric.elevation: "feet",
}


class Goal(BaseModel):
    id: str
    metric_type: GoalMetric
    target: float = Field(gt=0)
    progress: float = 0.0
    period: GoalPeriod = GoalPeriod.custom
    period_start: datetime
    period_end: datetime  # exclusive
    title: Optional[str] = None
    completed: bool = False
    completed_at: Optional[datetime] = None

    @field_validator("period_start", "period_end", "completed_at")
    @classmethod
    def _utc(cls, v):
        return ensure_utc(v) if v is not None else v

    @computed_field
    @property
    def unit(self) -> str:
        return GOAL_UNITS[self.metric_type]


GoalList = TypeAdapter(list[Goal])


class GoalCreate(BaseModel):
    metric_type: GoalMetric
    target: float
    period: GoalPeriod = GoalPeriod.weekly
    # Required only for custom periods
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    title: Optional[str] = None


class GoalUpdate(BaseModel):
    """Schema for updating an existing goal (all fields optional)."""

    metric_type: Optional[GoalMetric] = None
    target: Optional[float] = None
    period: Optional[GoalPeriod] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    title: Optional[str] = None

