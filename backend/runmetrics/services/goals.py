"""Goal progress evaluation and the goal collection.

Progress is always recomputed from the run set; completion is sticky.
"""
from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Sequence

from pydantic import ValidationError

from runmetrics.core.config import settings
from runmetrics.core.constants import FEET_PER_METER, GOALS_KEY, MILE_M, SECONDS_PER_HOUR
from runmetrics.core.exceptions import GoalNotFound, QuotaExceededError, StorageExhausted
from runmetrics.core.time_utils import local_date, monday_of, start_of_day
from runmetrics.schemas.goal import Goal, GoalCreate, GoalList, GoalMetric, GoalPeriod, GoalUpdate
from runmetrics.schemas.run import RunRecord
from runmetrics.services.store import SqlKeyValueStore

logger = logging.getLogger(__name__)


def runs_in_window(runs: Iterable[RunRecord], start: datetime, end: datetime) -> list[RunRecord]:
    """Runs starting in [start, end)."""
    return [r for r in runs if start <= r.start_time < end]


def longest_streak(days: Iterable[date]) -> int:
    """Longest run of consecutive calendar days; 0 for no days."""
    unique = sorted(set(days))
    if not unique:
        return 0
    best = current = 1
    for prev, cur in zip(unique, unique[1:]):
        if cur - prev == timedelta(days=1):
            current += 1
            best = max(best, current)
        else:
            current = 1
    return best


def compute_progress(
    metric: GoalMetric,
    runs: Sequence[RunRecord],
    tz_name: Optional[str] = None,
) -> float:
    """Raw (unclamped) progress of `runs` in the goal's unit."""
    if metric == GoalMetric.distance:
        return sum(r.total_distance_m for r in runs) / MILE_M
    if metric == GoalMetric.time:
        return sum(r.total_duration_s for r in runs) / SECONDS_PER_HOUR
    if metric == GoalMetric.elevation:
        return sum(r.elevation_gain_m for r in runs) * FEET_PER_METER
    if metric == GoalMetric.runs:
        return float(len(runs))
    if metric == GoalMetric.streak:
        tz = tz_name or settings.timezone
        return float(longest_streak(local_date(r.start_time, tz) for r in runs))
    raise ValueError(f"Unknown goal metric: {metric}")


def goal_progress(goal: Goal, runs: Iterable[RunRecord], tz_name: Optional[str] = None) -> float:
    return compute_progress(goal.metric_type, runs_in_window(runs, goal.period_start, goal.period_end), tz_name)


def calculate_period_dates(
    period: GoalPeriod,
    today: date,
    custom_start: Optional[datetime] = None,
    custom_end: Optional[datetime] = None,
    tz_name: Optional[str] = None,
) -> tuple[datetime, datetime]:
    """[start, end) of the period containing `today`. Weeks start on Monday.

    A custom period without both bounds falls back to the current week.
    """
    tz = tz_name or settings.timezone
    if period == GoalPeriod.custom and custom_start and custom_end:
        return custom_start, custom_end

    if period == GoalPeriod.daily:
        start, end = today, today + timedelta(days=1)
    elif period == GoalPeriod.monthly:
        start = today.replace(day=1)
        end = date(today.year + (today.month == 12), today.month % 12 + 1, 1)
    elif period == GoalPeriod.yearly:
        start, end = date(today.year, 1, 1), date(today.year + 1, 1, 1)
    else:
        start = monday_of(today)
        end = start + timedelta(days=7)
    return start_of_day(start, tz), start_of_day(end, tz)


def apply_progress(goal: Goal, raw_progress: float, now: datetime) -> bool:
    """Store clamped progress; complete the goal the first time the target is reached.

    Returns True when this call completed the goal.
    """
    goal.progress = min(raw_progress, goal.target)
    if not goal.completed and raw_progress >= goal.target:
        goal.completed = True
        goal.completed_at = now
        return True
    return False


class GoalService:
    def __init__(
        self,
        store: SqlKeyValueStore,
        *,
        now: Callable[[], datetime] | None = None,
        tz_name: Optional[str] = None,
    ):
        self.store = store
        self.tz_name = tz_name or settings.timezone
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._goals: list[Goal] = self._load()

    def _load(self) -> list[Goal]:
        raw = self.store.get(GOALS_KEY)
        if not raw:
            return []
        try:
            return GoalList.validate_json(raw)
        except ValidationError as e:
            logger.error("Stored goals could not be decoded, starting empty: %s", e)
            return []

    def _save(self) -> None:
        try:
            self.store.set(GOALS_KEY, GoalList.dump_json(self._goals))
        except QuotaExceededError as e:
            raise StorageExhausted(
                "Storage quota exceeded while saving goals. Delete some goals or runs to free up space."
            ) from e

    def list(self) -> list[Goal]:
        return list(self._goals)

    def get(self, goal_id: str) -> Goal:
        for goal in self._goals:
            if goal.id == goal_id:
                return goal
        raise GoalNotFound(f"Goal not found: {goal_id}")

    def create(self, payload: GoalCreate, runs: Sequence[RunRecord]) -> Goal:
        now = self._now()
        start, end = calculate_period_dates(
            payload.period,
            local_date(now, self.tz_name),
            payload.period_start,
            payload.period_end,
            self.tz_name,
        )
        goal = Goal(
            id=uuid.uuid4().hex,
            metric_type=payload.metric_type,
            target=payload.target,
            period=payload.period,
            period_start=start,
            period_end=end,
            title=payload.title,
        )
        apply_progress(goal, goal_progress(goal, runs, self.tz_name), now)
        self._goals.append(goal)
        self._save()
        logger.info("Created %s goal %s (%s %s)", goal.period.value, goal.id, goal.target, goal.unit)
        return goal

    def update(self, goal_id: str, payload: GoalUpdate, runs: Sequence[RunRecord]) -> Goal:
        goal = self.get(goal_id)
        changes = payload.model_dump(exclude_unset=True)
        recalc = any(k in changes for k in ("metric_type", "period", "period_start", "period_end", "target"))

        if "period" in changes and changes["period"] is not None and changes["period"] != GoalPeriod.custom:
            start, end = calculate_period_dates(
                changes["period"], local_date(self._now(), self.tz_name), tz_name=self.tz_name
            )
            changes["period_start"], changes["period_end"] = start, end

        data = goal.model_dump()
        data.update({k: v for k, v in changes.items() if v is not None or k == "title"})
        updated = Goal.model_validate(data)
        if recalc:
            apply_progress(updated, goal_progress(updated, runs, self.tz_name), self._now())

        self._goals[self._goals.index(goal)] = updated
        self._save()
        return updated

    def delete(self, goal_id: str) -> None:
        goal = self.get(goal_id)
        self._goals.remove(goal)
        self._save()

    def add_existing(self, goals: Sequence[Goal]) -> int:
        """Add goals whose id is not known yet; progress is recomputed on the next refresh."""
        known = {g.id for g in self._goals}
        added = [g for g in goals if g.id not in known]
        if added:
            self._goals.extend(added)
            self._save()
        return len(added)

    def complete(self, goal_id: str) -> Goal:
        """Mark a goal complete by hand; progress is set to the target."""
        goal = self.get(goal_id)
        if not goal.completed:
            goal.completed = True
            goal.completed_at = self._now()
            goal.progress = goal.target
            self._save()
        return goal

    def refresh(self, runs: Sequence[RunRecord]) -> list[Goal]:
        """Recompute every goal against `runs`; return goals completed by this refresh."""
        now = self._now()
        newly_completed = []
        changed = False
        for goal in self._goals:
            before = (goal.progress, goal.completed)
            if apply_progress(goal, goal_progress(goal, runs, self.tz_name), now):
                newly_completed.append(goal)
            changed = changed or before != (goal.progress, goal.completed)
        if changed:
            self._save()
        for goal in newly_completed:
            logger.info("Goal %s completed", goal.id)
        return newly_completed

    def completed_count(self) -> int:
        return sum(1 for g in self._goals if g.completed)
