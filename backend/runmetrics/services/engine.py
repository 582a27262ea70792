"""Engine facade: one entry point that keeps derived state in step with runs.

Every run mutation is followed by a goal refresh and an achievement check,
so callers never have to remember to do either.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterable, Iterator, Sequence

from sqlalchemy.orm import Session

from runmetrics.core.config import settings
from runmetrics.core.exceptions import RunNotFound, StorageExhausted, StoryNotFound
from runmetrics.schemas.export import BackupImportResult
from runmetrics.schemas.goal import Goal, GoalCreate, GoalUpdate
from runmetrics.schemas.run import ImportResult, RunAnnotate, RunRecord
from runmetrics.schemas.stats import PersonalRecords
from runmetrics.schemas.story import Story, StoryCreate, StoryInsightsRead, StoryUpdate
from runmetrics.schemas.strava import SyncEvent, SyncResult
from runmetrics.services.achievements import AchievementData, AchievementTracker
from runmetrics.services.best_efforts import calculate_best_efforts, check_for_new_prs
from runmetrics.services.export import ExportResult, backup_to_json, build_backup, parse_backup, runs_to_csv
from runmetrics.services.goals import GoalService
from runmetrics.services.run_repository import Identity, RunRepository
from runmetrics.services.stories import StoryRepository
from runmetrics.services.story_insights import calculate_story_stats, generate_story_insights, top_insight
from runmetrics.services.story_templates import apply_template, get_template
from runmetrics.services.store import SqlKeyValueStore
from runmetrics.services.strava_client import StravaClient
from runmetrics.services.sync import SyncDriver
from runmetrics.services.track_parser import parse_track_files

logger = logging.getLogger(__name__)


@dataclass
class MutationResult:
    inserted: int = 0
    completed_goals: list[Goal] = field(default_factory=list)
    unlocked_achievements: list[str] = field(default_factory=list)
    new_prs: dict[str, list[str]] = field(default_factory=dict)

    @property
    def completed_goal_ids(self) -> list[str]:
        return [g.id for g in self.completed_goals]


class RunMetricsEngine:
    def __init__(
        self,
        db: Session,
        *,
        quota_bytes: int | None = None,
        tz_name: str | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.now = now or (lambda: datetime.now(timezone.utc))
        self.tz_name = tz_name or settings.timezone
        self.store = SqlKeyValueStore(db, quota_bytes=quota_bytes)
        self.runs = RunRepository(self.store, now=self.now)
        self.goals = GoalService(self.store, now=self.now, tz_name=self.tz_name)
        self.stories = StoryRepository(self.store, now=self.now)
        self.achievements = AchievementTracker(self.store)

    # ---- derived state ----

    def achievement_data(self) -> AchievementData:
        return AchievementData(
            runs=self.runs.list_all(),
            stories=self.stories.list(),
            completed_goals=self.goals.completed_count(),
            tz_name=self.tz_name,
        )

    def check_achievements(self) -> list[str]:
        return self.achievements.evaluate(self.achievement_data())

    def personal_records(self) -> PersonalRecords:
        return calculate_best_efforts(self.runs.list_all())

    def _after_runs_changed(self, result: MutationResult) -> MutationResult:
        result.completed_goals = self.goals.refresh(self.runs.list_all())
        result.unlocked_achievements = self.check_achievements()
        return result

    def _refresh_after_failed_save(self) -> None:
        """Bring goals and achievements in line with the runs kept in memory after a failed save."""
        try:
            self._after_runs_changed(MutationResult())
        except StorageExhausted as e:
            logger.error("Goals and achievements could not be saved either: %s", e)

    # ---- runs ----

    def insert_runs(self, records: Sequence[RunRecord]) -> MutationResult:
        before = self.personal_records()
        known = {r.key for r in self.runs.list_all()}
        try:
            inserted = self.runs.insert_batch(records)
        except StorageExhausted:
            self._refresh_after_failed_save()
            raise
        result = MutationResult(inserted=inserted)
        if not inserted:
            return result
        for record in records:
            if record.key in known:
                continue
            known.add(record.key)
            prs = check_for_new_prs(before, record)
            if prs:
                result.new_prs[record.key] = prs
        return self._after_runs_changed(result)

    def import_files(self, files: Iterable[tuple[str, bytes]]) -> ImportResult:
        records, failed = parse_track_files(files)
        result = self.insert_runs(records)
        logger.info(
            "Imported %d of %d parsed file(s); %d failed to parse",
            result.inserted, len(records), len(failed),
        )
        return ImportResult(
            inserted=result.inserted,
            parsed=len(records),
            duplicates=len(records) - result.inserted,
            failed_files=failed,
            completed_goals=result.completed_goal_ids,
            unlocked_achievements=result.unlocked_achievements,
        )

    def get_run(self, identity: Identity) -> RunRecord:
        record = self.runs.get(identity)
        if record is None:
            raise RunNotFound(f"Run not found: {identity if isinstance(identity, str) else identity.key}")
        return record

    def annotate_run(self, identity: Identity, payload: RunAnnotate) -> RunRecord:
        record = self.get_run(identity)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("tags") is not None:
            changes["tags"] = {t.strip() for t in changes["tags"] if t and t.strip()}
        else:
            changes.pop("tags", None)
        return self.runs.update(record.model_copy(update=changes))

    def delete_run(self, identity: Identity) -> MutationResult:
        try:
            removed = self.runs.delete(identity)
        except StorageExhausted:
            self._refresh_after_failed_save()
            raise
        self.stories.unlink_run(removed.key)
        return self._after_runs_changed(MutationResult())

    # ---- goals ----

    def create_goal(self, payload: GoalCreate) -> Goal:
        goal = self.goals.create(payload, self.runs.list_all())
        self.check_achievements()
        return goal

    def update_goal(self, goal_id: str, payload: GoalUpdate) -> Goal:
        goal = self.goals.update(goal_id, payload, self.runs.list_all())
        self.check_achievements()
        return goal

    def complete_goal(self, goal_id: str) -> Goal:
        goal = self.goals.complete(goal_id)
        self.check_achievements()
        return goal

    def delete_goal(self, goal_id: str) -> None:
        self.goals.delete(goal_id)

    # ---- stories ----

    def create_story(self, payload: StoryCreate) -> Story:
        story = self.stories.create(payload)
        self.check_achievements()
        return story

    def update_story(self, story_id: str, payload: StoryUpdate) -> Story:
        return self.stories.update(story_id, payload)

    def delete_story(self, story_id: str) -> None:
        self.stories.delete(story_id)

    def create_story_from_template(self, template_id: str, run_ids: Sequence[str]) -> Story:
        template = get_template(template_id)
        if template is None:
            raise StoryNotFound(f"Story template not found: {template_id}")
        return self.create_story(apply_template(template, run_ids))

    def story_insights(self, story_id: str) -> StoryInsightsRead:
        story = self.stories.get(story_id)
        runs = self.runs.list_all()
        insights = generate_story_insights(story, self.stories.list(), runs)
        return StoryInsightsRead(
            story_id=story.id,
            stats=calculate_story_stats(story, runs),
            insights=insights,
            top_insight=top_insight(insights),
        )

    # ---- backup / export ----

    def export_backup(self) -> ExportResult:
        backup = build_backup(
            self.runs.list_all(),
            self.stories.list(),
            self.goals.list(),
            self.achievements.unlocked_ids,
            self.now(),
        )
        return backup_to_json(backup)

    def export_runs_csv(self) -> ExportResult:
        return runs_to_csv(self.runs.list_all(), self.now())

    def import_backup(self, raw: str | bytes) -> BackupImportResult:
        """Merge a JSON backup into the current data; nothing already present is overwritten."""
        backup = parse_backup(raw)
        stories_added = self.stories.add_existing(backup.stories)
        goals_added = self.goals.add_existing(backup.goals)
        restored = self.achievements.restore(backup.achievements)
        result = self.insert_runs(backup.runs)
        if not result.inserted:
            result = self._after_runs_changed(result)
        logger.info(
            "Imported backup: %d runs, %d stories, %d goals, %d achievements",
            result.inserted, stories_added, goals_added, len(restored),
        )
        return BackupImportResult(
            runs_added=result.inserted,
            stories_added=stories_added,
            goals_added=goals_added,
            achievements_restored=restored,
            completed_goals=result.completed_goal_ids,
            unlocked_achievements=result.unlocked_achievements,
        )

    # ---- remote sync ----

    def sync_driver(self, client: StravaClient, **kwargs) -> SyncDriver:
        return SyncDriver(client, self.runs, **kwargs)

    def stream_sync(self, driver: SyncDriver) -> Iterator[SyncEvent]:
        """Relay the driver's events, then refresh goals and achievements once."""
        try:
            yield from driver.run()
        except StorageExhausted:
            self._refresh_after_failed_save()
            raise
        finally:
            if driver.result.inserted:
                derived = self._after_runs_changed(MutationResult(inserted=driver.result.inserted))
                driver.result.completed_goals = derived.completed_goal_ids
                driver.result.unlocked_achievements = derived.unlocked_achievements

    def run_sync(self, driver: SyncDriver) -> SyncResult:
        for _ in self.stream_sync(driver):
            pass
        return driver.result
