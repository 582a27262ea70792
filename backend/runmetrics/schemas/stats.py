from datetime import date, datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from runmetrics.schemas.run import RunRecord


class TimePeriod(str, Enum):
    last7days = "last7days"
    last30days = "last30days"
    last90days = "last90days"
    last4weeks = "last4weeks"
    this_month = "thisMonth"
    this_year = "thisYear"
    all_time = "allTime"


class HeatmapRange(str, Enum):
    recent = "recent"  # last 6 months, up to today
    year = "year"      # last 365 days
    all = "all"        # full data span


class PeriodStats(BaseModel):
    label: str  # "Week of Jan 06" or "January 2025"
    start_date: date
    end_date: date  # inclusive
    total_distance: float   # meters
    total_duration: float   # seconds
    total_elevation: float  # meters
    average_pace: float     # min/mile, distance-weighted
    run_count: int
    runs: list[RunRecord] = Field(default_factory=list)


class HeatmapCell(BaseModel):
    date: date
    value: float  # miles
    level: int = 0
    runs: list[RunRecord] = Field(default_factory=list)


class BestEffort(BaseModel):
    run_key: str
    source_file: str
    time_s: float
    pace: float  # min/mile
    distance_m: float
    date: datetime
    start_time: datetime


class PersonalRecords(BaseModel):
    fastest_mile: Optional[BestEffort] = None
    fastest_5k: Optional[BestEffort] = None
    fastest_10k: Optional[BestEffort] = None
    longest_run_distance: Optional[BestEffort] = None
    longest_run_time: Optional[BestEffort] = None


# API views (runs omitted)

class PeriodStatsRead(BaseModel):
    label: str
    start_date: date
    end_date: date
    total_distance_mi: float
    total_duration_s: float
    total_elevation_ft: float
    average_pace: str
    run_count: int


class HeatmapCellRead(BaseModel):
    date: date
    value: float
    level: int
    run_count: int
