"""Running stories: short narratives tied to one or more runs."""
import logging
import uuid
from datetime import datetime, timezone
from typing import Callable, Sequence

from pydantic import ValidationError

from runmetrics.core.constants import STORIES_KEY
from runmetrics.core.exceptions import QuotaExceededError, StorageExhausted, StoryNotFound
from runmetrics.schemas.story import Story, StoryCreate, StoryList, StoryUpdate
from runmetrics.services.store import SqlKeyValueStore

logger = logging.getLogger(__name__)


class StoryRepository:
    def __init__(self, store: SqlKeyValueStore, *, now: Callable[[], datetime] | None = None):
        self.store = store
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._stories: list[Story] = self._load()

    def _load(self) -> list[Story]:
        raw = self.store.get(STORIES_KEY)
        if not raw:
            return []
        try:
            return StoryList.validate_json(raw)
        except ValidationError as e:
            logger.error("Stored stories could not be decoded, starting empty: %s", e)
            return []

    def _save(self) -> None:
        try:
            self.store.set(STORIES_KEY, StoryList.dump_json(self._stories))
        except QuotaExceededError as e:
            raise StorageExhausted(
                "Storage quota exceeded while saving stories. Delete some stories or runs to free up space."
            ) from e

    def list(self) -> list[Story]:
        return sorted(self._stories, key=lambda s: s.created_at, reverse=True)

    def get(self, story_id: str) -> Story:
        for story in self._stories:
            if story.id == story_id:
                return story
        raise StoryNotFound(f"Story not found: {story_id}")

    def create(self, payload: StoryCreate) -> Story:
        now = self._now()
        story = Story(id=uuid.uuid4().hex, created_at=now, updated_at=now, **payload.model_dump())
        self._stories.append(story)
        self._save()
        return story

    def update(self, story_id: str, payload: StoryUpdate) -> Story:
        story = self.get(story_id)
        changes = payload.model_dump(exclude_unset=True)
        if changes.get("title") is None:
            changes.pop("title", None)
        updated = story.model_copy(update={**changes, "updated_at": self._now()})
        self._stories[self._stories.index(story)] = updated
        self._save()
        return updated

    def delete(self, story_id: str) -> None:
        self._stories.remove(self.get(story_id))
        self._save()

    def add_existing(self, stories: Sequence[Story]) -> int:
        """Add stories whose id is not known yet, keeping their ids and timestamps."""
        known = {s.id for s in self._stories}
        added = [s for s in stories if s.id not in known]
        if added:
            self._stories.extend(added)
            self._save()
        return len(added)

    def unlink_run(self, run_key: str) -> None:
        """Drop references to a deleted run."""
        changed = False
        for i, story in enumerate(self._stories):
            if run_key in story.run_ids:
                self._stories[i] = story.model_copy(
                    update={"run_ids": [k for k in story.run_ids if k != run_key]}
                )
                changed = True
        if changed:
            self._save()

    def __len__(self) -> int:
        return len(self._stories)
