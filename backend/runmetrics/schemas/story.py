from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from runmetrics.core.time_utils import ensure_utc

# Predefined mood tags
MOOD_TAGS = (
    "energetic",
    "tired",
    "motivated",
    "struggle",
    "proud",
    "fast",
    "slow",
    "happy",
    "disappointed",
)


def _check_moods(tags: list[str]) -> list[str]:
    unknown = [t for t in tags if t not in MOOD_TAGS]
    if unknown:
        raise ValueError(f"Unknown mood tags: {', '.join(unknown)}")
    return tags


class Story(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    run_ids: list[str] = Field(default_factory=list)  # run identity keys
    mood_tags: list[str] = Field(default_factory=list)
    weather_notes: Optional[str] = None
    emotional_notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


StoryList = TypeAdapter(list[Story])


class StoryCreate(BaseModel):
    title: str
    description: Optional[str] = None
    run_ids: list[str] = Field(default_factory=list)
    mood_tags: list[str] = Field(default_factory=list)
    weather_notes: Optional[str] = None
    emotional_notes: Optional[str] = None

    @field_validator("mood_tags")
    @classmethod
    def _moods(cls, v: list[str]) -> list[str]:
        return _check_moods(v)


class StoryUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    run_ids: Optional[list[str]] = None
    mood_tags: Optional[list[str]] = None
    weather_notes: Optional[str] = None
    emotional_notes: Optional[str] = None

    @field_validator("mood_tags")
    @classmethod
    def _moods(cls, v):
        return _check_moods(v) if v is not None else v


class StoryFromTemplate(BaseModel):
    template_id: str
    run_ids: list[str] = Field(default_factory=list)


class StoryTemplate(BaseModel):
    id: str
    name: str
    emoji: str
    description: str
    suggested_title: str
    suggested_description: Optional[str] = None
    suggested_mood_tags: list[str] = Field(default_factory=list)
    suggested_weather_notes: Optional[str] = None
    suggested_emotional_notes: Optional[str] = None


class StoryStats(BaseModel):
    total_distance_m: float = 0.0
    total_duration_s: float = 0.0
    total_elevation_m: float = 0.0
    average_pace: float = 0.0  # minutes per mile
    run_count: int = 0
    mood_tag_count: int = 0
    date_span_days: int = 0
    pace_variance: float = 0.0
    start_date: datetime
    end_date: datetime


class StoryInsightType(str, Enum):
    longest_distance = "longest_distance"
    biggest_elevation = "biggest_elevation"
    most_consistent_pace = "most_consistent_pace"
    strongest_emotional = "strongest_emotional"
    fastest_pace = "fastest_pace"
    longest_duration = "longest_duration"
    most_runs = "most_runs"
    longest_span = "longest_span"


class StoryInsight(BaseModel):
    type: StoryInsightType
    emoji: str
    title: str
    description: str
    value: str


class StoryInsightsRead(BaseModel):
    story_id: str
    stats: StoryStats
    insights: list[StoryInsight]
    top_insight: Optional[StoryInsight] = None
