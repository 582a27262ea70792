from typing import Optional

from fastapi import APIRouter, Depends, Query

from runmetrics.api.deps import get_engine
from runmetrics.core.constants import FEET_PER_METER, MILE_M
from runmetrics.core.time_utils import format_pace
from runmetrics.schemas.stats import (
    HeatmapCellRead,
    HeatmapRange,
    PeriodStats,
    PeriodStatsRead,
    PersonalRecords,
    TimePeriod,
)
from runmetrics.services import aggregation
from runmetrics.services.engine import RunMetricsEngine

router = APIRouter(prefix="/stats", tags=["stats"])


def to_read(stats: PeriodStats) -> PeriodStatsRead:
    return PeriodStatsRead(
        label=stats.label,
        start_date=stats.start_date,
        end_date=stats.end_date,
        total_distance_mi=round(stats.total_distance / MILE_M, 2),
        total_duration_s=stats.total_duration,
        total_elevation_ft=round(stats.total_elevation * FEET_PER_METER, 1),
        average_pace=format_pace(stats.average_pace),
        run_count=stats.run_count,
    )


@router.get("/weekly", response_model=list[PeriodStatsRead])
def weekly(
    period: TimePeriod = Query(TimePeriod.last4weeks),
    engine: RunMetricsEngine = Depends(get_engine),
):
    return [to_read(s) for s in aggregation.weekly_trends(engine.runs.list_all(), period)]


@router.get("/monthly", response_model=list[PeriodStatsRead])
def monthly(
    period: TimePeriod = Query(TimePeriod.this_year),
    engine: RunMetricsEngine = Depends(get_engine),
):
    return [to_read(s) for s in aggregation.monthly_trends(engine.runs.list_all(), period)]


@router.get("/summary", response_model=Optional[PeriodStatsRead])
def summary(
    period: TimePeriod = Query(TimePeriod.last30days),
    engine: RunMetricsEngine = Depends(get_engine),
):
    stats = aggregation.period_summary(engine.runs.list_all(), period)
    return to_read(stats) if stats else None


@router.get("/pace_trend")
def pace_trend(
    period: TimePeriod = Query(TimePeriod.last90days),
    window: int = Query(7, ge=1, le=60),
    engine: RunMetricsEngine = Depends(get_engine),
):
    """Per-run pace (min/mi) in date order with a centered moving average."""
    runs = sorted(
        (r for r in aggregation.filter_runs_by_period(engine.runs.list_all(), period) if r.total_distance_m > 0),
        key=lambda r: r.start_time,
    )
    paces = [r.average_pace for r in runs]
    smoothed = aggregation.moving_average(paces, window)
    return [
        {"run_key": r.key, "start_time": r.start_time, "pace": p, "moving_average": m}
        for r, p, m in zip(runs, paces, smoothed)
    ]


@router.get("/heatmap", response_model=list[HeatmapCellRead])
def heatmap(
    range: HeatmapRange = Query(HeatmapRange.recent),
    engine: RunMetricsEngine = Depends(get_engine),
):
    cells = aggregation.build_heatmap(engine.runs.list_all(), range)
    return [
        HeatmapCellRead(date=c.date, value=round(c.value, 2), level=c.level, run_count=len(c.runs))
        for c in cells
    ]


@router.get("/best_efforts", response_model=PersonalRecords)
def best_efforts(engine: RunMetricsEngine = Depends(get_engine)):
    return engine.personal_records()
