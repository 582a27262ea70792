"""Achievement rules and the append-only unlocked set."""
import json
import logging
from dataclasses import dataclass, field
from functools import cached_property
from typing import Callable, Iterable, Optional, Sequence

from runmetrics.core.config import settings
from runmetrics.core.constants import (
    ACHIEVEMENTS_KEY,
    FEET_PER_METER,
    HALF_MARATHON_M,
    LONG_RUN_M,
    MARATHON_M,
    MILE_M,
    ULTRA_50_MI_M,
)
from runmetrics.core.exceptions import QuotaExceededError, StorageExhausted
from runmetrics.core.time_utils import local_date, to_local_datetime
from runmetrics.schemas.achievement import AchievementCategory, AchievementRead
from runmetrics.schemas.run import RunRecord
from runmetrics.schemas.stats import PersonalRecords
from runmetrics.schemas.story import Story
from runmetrics.services.best_efforts import calculate_best_efforts
from runmetrics.services.goals import longest_streak
from runmetrics.services.store import SqlKeyValueStore

logger = logging.getLogger(__name__)


@dataclass
class AchievementData:
    """Snapshot the rules are evaluated against."""

    runs: Sequence[RunRecord]
    stories: Sequence[Story] = ()
    completed_goals: int = 0
    best_efforts: Optional[PersonalRecords] = None
    tz_name: str = field(default_factory=lambda: settings.timezone)

    def __post_init__(self):
        if self.best_efforts is None:
            self.best_efforts = calculate_best_efforts(self.runs)

    @cached_property
    def total_miles(self) -> float:
        return sum(r.total_distance_m for r in self.runs) / MILE_M

    @cached_property
    def total_elevation_ft(self) -> float:
        return sum(r.elevation_gain_m for r in self.runs) * FEET_PER_METER

    @cached_property
    def longest_streak(self) -> int:
        return longest_streak(local_date(r.start_time, self.tz_name) for r in self.runs)

    @cached_property
    def local_starts(self):
        return [to_local_datetime(r.start_time, self.tz_name) for r in self.runs]


@dataclass(frozen=True)
class Achievement:
    id: str
    title: str
    description: str
    emoji: str
    category: AchievementCategory
    condition: Callable[[AchievementData], bool]

    def to_read(self, unlocked: bool = False) -> AchievementRead:
        return AchievementRead(
            id=self.id,
            title=self.title,
            description=self.description,
            emoji=self.emoji,
            category=self.category,
            unlocked=unlocked,
        )


def _run_count(n):
    return lambda d: len(d.runs) >= n


def _total_miles(n):
    return lambda d: d.total_miles >= n


def _streak(n):
    return lambda d: d.longest_streak >= n


def _elevation_ft(n):
    return lambda d: d.total_elevation_ft >= n


def _single_run(meters):
    return lambda d: any(r.total_distance_m >= meters for r in d.runs)


def _stories(n):
    return lambda d: len(d.stories) >= n


def _goals(n):
    return lambda d: d.completed_goals >= n


def _weekend_runs(d: AchievementData) -> bool:
    # Saturday = 5, Sunday = 6
    return sum(1 for dt in d.local_starts if dt.weekday() >= 5) >= 10


Cat = AchievementCategory

ACHIEVEMENTS: tuple[Achievement, ...] = (
    # Run counts
    Achievement("first-steps", "First Steps", "You logged your very first run!", "👣", Cat.runs, _run_count(1)),
    Achievement("5-runs-club", "Getting Started", "You've completed 5 runs.", "🌱", Cat.runs, _run_count(5)),
    Achievement("10-runs-club", "10 Runs Club", "Double digits: 10 runs logged.", "🏃", Cat.runs, _run_count(10)),
    Achievement("25-runs-club", "Quarter Century", "25 runs completed.", "💪", Cat.runs, _run_count(25)),
    Achievement("50-runs-club", "50 Runs Club", "Half a century of runs.", "🏃‍♂️", Cat.runs, _run_count(50)),
    Achievement("100-runs-club", "Century Club", "100 runs logged.", "🏃‍♀️", Cat.runs, _run_count(100)),
    Achievement("250-runs-club", "250 Runs", "250 runs completed.", "⭐", Cat.runs, _run_count(250)),
    Achievement("500-runs-club", "500 Runs", "500 runs logged.", "👑", Cat.runs, _run_count(500)),
    # Total distance
    Achievement("10-miles", "10 Miles Total", "You've run 10 total miles.", "📏", Cat.milestones, _total_miles(10)),
    Achievement("50-miles", "50 Miles Total", "50 miles completed.", "🗺️", Cat.milestones, _total_miles(50)),
    Achievement("100-miles", "100 Miles", "100 miles in total.", "💯", Cat.milestones, _total_miles(100)),
    Achievement("250-miles", "250 Miles", "250 miles in total.", "🌟", Cat.milestones, _total_miles(250)),
    Achievement("500-miles", "500 Miles", "500 miles in total.", "🌟", Cat.milestones, _total_miles(500)),
    Achievement("1000-miles", "1000 Miles", "1000 miles in total.", "🎯", Cat.milestones, _total_miles(1000)),
    Achievement("2500-miles", "2500 Miles", "2500 miles in total.", "🌎", Cat.milestones, _total_miles(2500)),
    # Streaks
    Achievement("3-day-streak", "3 Day Streak", "You ran 3 days in a row.", "🔥", Cat.streaks, _streak(3)),
    Achievement("7-day-streak", "Week Warrior", "7 consecutive days of running.", "🔥", Cat.streaks, _streak(7)),
    Achievement("14-day-streak", "Two Week Champion", "14 days straight.", "🔥🔥", Cat.streaks, _streak(14)),
    Achievement("30-day-streak", "Monthly Master", "30 consecutive days.", "🔥🔥🔥", Cat.streaks, _streak(30)),
    Achievement("60-day-streak", "60 Day Legend", "60 days in a row.", "🔥🔥🔥🔥", Cat.streaks, _streak(60)),
    Achievement("100-day-streak", "Century Streak", "100 consecutive days.", "🔥🔥🔥🔥🔥", Cat.streaks, _streak(100)),
    # Personal records
    Achievement(
        "speed-demon", "Speed Demon", "You've recorded a fastest mile.", "⚡", Cat.milestones,
        lambda d: d.best_efforts.fastest_mile is not None,
    ),
    Achievement(
        "5k-warrior", "5K Warrior", "You've recorded a fastest 5K.", "🏃", Cat.milestones,
        lambda d: d.best_efforts.fastest_5k is not None,
    ),
    Achievement(
        "10k-champion", "10K Champion", "You've recorded a fastest 10K.", "🏆", Cat.milestones,
        lambda d: d.best_efforts.fastest_10k is not None,
    ),
    # Elevation
    Achievement("hill-climber", "Hill Climber", "1,000 feet of total elevation gain.", "⛰️", Cat.milestones, _elevation_ft(1000)),
    Achievement("mountain-goat", "Mountain Goat", "10,000 feet of total elevation gain.", "⛰️", Cat.milestones, _elevation_ft(10000)),
    Achievement("everest-climber", "Everest Climber", "29,029 feet climbed, the height of Everest.", "🏔️", Cat.milestones, _elevation_ft(29029)),
    # Single-run distance
    Achievement("half-marathoner", "Half Marathoner", "A single run over 13.1 miles.", "🏃", Cat.milestones, _single_run(HALF_MARATHON_M)),
    Achievement("marathoner", "Marathoner", "A single run over 26.2 miles.", "🏅", Cat.milestones, _single_run(MARATHON_M)),
    Achievement("ultra-runner", "Ultra Runner", "A single run over 50 miles.", "🏃‍♂️", Cat.milestones, _single_run(ULTRA_50_MI_M)),
    # Stories
    Achievement("storyteller", "Storyteller", "You created your first running story.", "📖", Cat.stories, _stories(1)),
    Achievement("story-collector", "Story Collector", "5 stories created.", "📚", Cat.stories, _stories(5)),
    Achievement("story-master", "Story Master", "10 stories created.", "📚", Cat.stories, _stories(10)),
    Achievement("story-legend", "Story Legend", "25 stories created.", "📖", Cat.stories, _stories(25)),
    # Goals
    Achievement("goal-crusher", "Goal Crusher", "You completed your first goal.", "🎯", Cat.milestones, _goals(1)),
    Achievement("goal-master", "Goal Master", "5 goals completed.", "🎯", Cat.milestones, _goals(5)),
    # Special
    Achievement(
        "early-bird", "Early Bird", "A run started before 6 AM.", "🌅", Cat.milestones,
        lambda d: any(dt.hour < 6 for dt in d.local_starts),
    ),
    Achievement(
        "night-owl", "Night Owl", "A run started after 9 PM.", "🌙", Cat.milestones,
        lambda d: any(dt.hour >= 21 for dt in d.local_starts),
    ),
    Achievement("weekend-warrior", "Weekend Warrior", "10 weekend runs completed.", "🎉", Cat.runs, _weekend_runs),
    Achievement(
        "long-distance-lover", "Long Distance Lover", "10 runs over 10 miles.", "🛣️", Cat.milestones,
        lambda d: sum(1 for r in d.runs if r.total_distance_m >= LONG_RUN_M) >= 10,
    ),
)

ACHIEVEMENTS_BY_ID = {a.id: a for a in ACHIEVEMENTS}


def check_achievements(data: AchievementData, unlocked_ids: Iterable[str]) -> list[str]:
    """Ids of rules satisfied by `data` that are not unlocked yet, in rule order."""
    unlocked = set(unlocked_ids)
    return [a.id for a in ACHIEVEMENTS if a.id not in unlocked and a.condition(data)]


class AchievementTracker:
    """Persisted set of unlocked achievement ids. Ids are only ever added."""

    def __init__(self, store: SqlKeyValueStore):
        self.store = store
        self._unlocked: list[str] = self._load()

    def _load(self) -> list[str]:
        raw = self.store.get(ACHIEVEMENTS_KEY)
        if not raw:
            return []
        try:
            ids = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.error("Stored achievements could not be decoded, starting empty: %s", e)
            return []
        return [i for i in ids if isinstance(i, str)]

    @property
    def unlocked_ids(self) -> list[str]:
        return list(self._unlocked)

    def _save(self) -> None:
        try:
            self.store.set(ACHIEVEMENTS_KEY, json.dumps(self._unlocked))
        except QuotaExceededError as e:
            raise StorageExhausted(
                "Storage quota exceeded while saving achievements. Delete some runs or stories to free up space."
            ) from e

    def evaluate(self, data: AchievementData) -> list[str]:
        newly = check_achievements(data, self._unlocked)
        if newly:
            self._unlocked.extend(newly)
            self._save()
            logger.info("Unlocked achievements: %s", ", ".join(newly))
        return newly

    def restore(self, ids: Iterable[str]) -> list[str]:
        """Mark known achievement ids unlocked, e.g. from a backup; unknown ids are ignored."""
        restored = []
        for achievement_id in ids:
            if achievement_id in ACHIEVEMENTS_BY_ID and achievement_id not in self._unlocked + restored:
                restored.append(achievement_id)
        if restored:
            self._unlocked.extend(restored)
            self._save()
        return restored

    def list(self) -> list[AchievementRead]:
        unlocked = set(self._unlocked)
        return [a.to_read(a.id in unlocked) for a in ACHIEVEMENTS]
