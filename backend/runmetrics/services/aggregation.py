"""Time-bucketed aggregates over the run set.

Weekly buckets follow ISO weeks (Monday start), monthly buckets calendar
months, and the heatmap is one cell per calendar day. Calendar dates are
taken in the configured timezone. Nothing here is persisted.
"""
from collections import defaultdict
from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Sequence

from runmetrics.core.config import settings
from runmetrics.core.constants import INTENSITY_THRESHOLDS, MILE_M
from runmetrics.core.time_utils import daterange, local_date, month_end, months_ago
from runmetrics.schemas.run import RunRecord
from runmetrics.schemas.stats import HeatmapCell, HeatmapRange, PeriodStats, TimePeriod
from runmetrics.services.geo import average_pace


def _tz(tz_name: Optional[str]) -> str:
    return tz_name or settings.timezone


def _today(today: Optional[date], tz_name: Optional[str]) -> date:
    if today is not None:
        return today
    return local_date(datetime.now(timezone.utc), _tz(tz_name))


def period_start_date(period: TimePeriod, today: date) -> Optional[date]:
    """First calendar day included in `period`; None for all time."""
    if period == TimePeriod.last7days:
        return today - timedelta(days=7)
    if period == TimePeriod.last30days:
        return today - timedelta(days=30)
    if period == TimePeriod.last90days:
        return today - timedelta(days=90)
    if period == TimePeriod.last4weeks:
        return today - timedelta(days=28)
    if period == TimePeriod.this_month:
        return today.replace(day=1)
    if period == TimePeriod.this_year:
        return date(today.year, 1, 1)
    return None


def filter_runs_by_period(
    runs: Iterable[RunRecord],
    period: TimePeriod,
    today: Optional[date] = None,
    tz_name: Optional[str] = None,
) -> list[RunRecord]:
    tz = _tz(tz_name)
    start = period_start_date(period, _today(today, tz))
    if start is None:
        return list(runs)
    return [r for r in runs if local_date(r.start_time, tz) >= start]


def bucket_stats(label: str, start: date, end: date, runs: Sequence[RunRecord]) -> PeriodStats:
    """Totals for a bucket; pace is weighted by distance (total time over total distance)."""
    total_distance = sum(r.total_distance_m for r in runs)
    total_duration = sum(r.total_duration_s for r in runs)
    return PeriodStats(
        label=label,
        start_date=start,
        end_date=end,
        total_distance=total_distance,
        total_duration=total_duration,
        total_elevation=sum(r.elevation_gain_m for r in runs),
        average_pace=average_pace(total_duration, total_distance),
        run_count=len(runs),
        runs=list(runs),
    )


def weekly_trends(
    runs: Iterable[RunRecord],
    period: TimePeriod = TimePeriod.last4weeks,
    today: Optional[date] = None,
    tz_name: Optional[str] = None,
) -> list[PeriodStats]:
    tz = _tz(tz_name)
    buckets: dict[tuple[int, int], list[RunRecord]] = defaultdict(list)
    for run in filter_runs_by_period(runs, period, today, tz):
        iso = local_date(run.start_time, tz).isocalendar()
        buckets[(iso[0], iso[1])].append(run)

    stats = []
    for (iso_year, iso_week), week_runs in sorted(buckets.items()):
        start = date.fromisocalendar(iso_year, iso_week, 1)
        label = f"Week of {start:%b} {start.day}"
        stats.append(bucket_stats(label, start, start + timedelta(days=6), week_runs))
    return stats


def monthly_trends(
    runs: Iterable[RunRecord],
    period: TimePeriod = TimePeriod.this_year,
    today: Optional[date] = None,
    tz_name: Optional[str] = None,
) -> list[PeriodStats]:
    tz = _tz(tz_name)
    buckets: dict[tuple[int, int], list[RunRecord]] = defaultdict(list)
    for run in filter_runs_by_period(runs, period, today, tz):
        d = local_date(run.start_time, tz)
        buckets[(d.year, d.month)].append(run)

    stats = []
    for (year, month), month_runs in sorted(buckets.items()):
        start = date(year, month, 1)
        stats.append(bucket_stats(f"{start:%B %Y}", start, month_end(year, month), month_runs))
    return stats


def period_summary(
    runs: Iterable[RunRecord],
    period: TimePeriod,
    today: Optional[date] = None,
    tz_name: Optional[str] = None,
) -> Optional[PeriodStats]:
    tz = _tz(tz_name)
    today = _today(today, tz)
    selected = filter_runs_by_period(runs, period, today, tz)
    if not selected:
        return None
    start = period_start_date(period, today)
    if start is None:
        start = min(local_date(r.start_time, tz) for r in selected)
    return bucket_stats(period.value, start, today, selected)


def moving_average(data: Sequence[float], window: int = 7) -> list[float]:
    """Centered moving average; the window shrinks at both ends."""
    result = []
    n = len(data)
    for i in range(n):
        lo = max(0, i - window // 2)
        hi = min(n, i + (window + 1) // 2)
        chunk = data[lo:hi]
        result.append(sum(chunk) / len(chunk))
    return result


# ---- heatmap ----

def intensity_level(value: float, max_value: float) -> int:
    """0 for no activity, otherwise 1-4 by share of the window maximum."""
    if max_value <= 0:
        return 0
    ratio = value / max_value
    if ratio <= 0:
        return 0
    for level, threshold in enumerate(INTENSITY_THRESHOLDS, start=1):
        if ratio < threshold:
            return level
    return len(INTENSITY_THRESHOLDS) + 1


def runs_by_day(runs: Iterable[RunRecord], tz_name: Optional[str] = None) -> dict[date, list[RunRecord]]:
    tz = _tz(tz_name)
    days: dict[date, list[RunRecord]] = defaultdict(list)
    for run in runs:
        days[local_date(run.start_time, tz)].append(run)
    return days


def heatmap_window(
    runs: Sequence[RunRecord],
    range_: HeatmapRange,
    today: Optional[date] = None,
    tz_name: Optional[str] = None,
) -> tuple[date, date]:
    tz = _tz(tz_name)
    today = _today(today, tz)
    if not runs:
        return months_ago(today, 6), today

    days = [local_date(r.start_time, tz) for r in runs]
    first, last = min(days), max(days)
    if range_ == HeatmapRange.recent:
        return max(months_ago(today, 6), first), today
    if range_ == HeatmapRange.year:
        return max(today - timedelta(days=365), first), last
    return first, last


def heatmap_cells(
    runs: Iterable[RunRecord],
    start: date,
    end: date,
    tz_name: Optional[str] = None,
) -> list[HeatmapCell]:
    """One cell per day from start to end inclusive, zero-filled, with intensity levels."""
    by_day = runs_by_day(runs, tz_name)
    cells = []
    for day in daterange(start, end):
        day_runs = by_day.get(day, [])
        miles = sum(r.total_distance_m for r in day_runs) / MILE_M
        cells.append(HeatmapCell(date=day, value=miles, runs=day_runs))

    max_value = max((c.value for c in cells), default=0.0)
    for cell in cells:
        cell.level = intensity_level(cell.value, max_value)
    return cells


def build_heatmap(
    runs: Sequence[RunRecord],
    range_: HeatmapRange = HeatmapRange.recent,
    today: Optional[date] = None,
    tz_name: Optional[str] = None,
) -> list[HeatmapCell]:
    start, end = heatmap_window(runs, range_, today, tz_name)
    return heatmap_cells(runs, start, end, tz_name)
