"""Remote activity sync as an ordered stream of progress events.

Iterate `SyncDriver.run()` to drive the sync; every step is reported as a
SyncEvent and the running totals are kept in `driver.result`. Activities
are fetched one at a time with a minimum delay between stream requests.
A 429 on a listing page or a stream request is retried with backoff; when
retries run out the sync pauses and can be resumed later.
"""
import logging
import time
from typing import Any, Callable, Generator, Iterator, Optional

from runmetrics.core.config import settings
from runmetrics.core.exceptions import InvalidStreamData, RateLimitedError, RemoteFetchError
from runmetrics.schemas.run import RemoteIdentity
from runmetrics.schemas.strava import RemoteActivity, SyncEvent, SyncResult, SyncStage
from runmetrics.services.run_repository import RunRepository
from runmetrics.services.strava_client import StravaClient
from runmetrics.services.stream_normalizer import coarse_run_record, normalize_activity

logger = logging.getLogger(__name__)

_PAUSED = object()


class SyncDriver:
    def __init__(
        self,
        client: StravaClient,
        repository: RunRepository,
        *,
        after: int | None = None,
        min_delay_s: float | None = None,
        max_rate_limit_retries: int | None = None,
        backoff_base_s: float | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.repository = repository
        self.after = after
        self.min_delay_s = min_delay_s if min_delay_s is not None else settings.sync_min_delay_s
        self.max_rate_limit_retries = (
            max_rate_limit_retries if max_rate_limit_retries is not None else settings.sync_max_rate_limit_retries
        )
        self.backoff_base_s = backoff_base_s if backoff_base_s is not None else settings.sync_backoff_base_s
        self.sleep = sleep
        self.result = SyncResult()
        self._cancelled = False

    def cancel(self) -> None:
        """Stop before the next activity; the current one still finishes."""
        self._cancelled = True

    def _event(self, stage: SyncStage, current: int = 0, activity_id: Optional[int] = None, message: str = "", inserted: int = 0) -> SyncEvent:
        event = SyncEvent(
            stage=stage,
            current=current,
            total=self.result.total,
            activity_id=activity_id,
            message=message,
            inserted=inserted,
        )
        self.result.events.append(event)
        return event

    def _backoff(self, error: RateLimitedError, attempt: int) -> float:
        if error.retry_after_s is not None:
            return error.retry_after_s
        return self.backoff_base_s * (2 ** attempt)

    def _retrying(self, fetch: Callable[[], Any], current: int = 0, activity_id: Optional[int] = None) -> Generator[SyncEvent, None, Any]:
        """Call `fetch`, sleeping and retrying on 429; returns _PAUSED once retries run out."""
        attempt = 0
        while True:
            try:
                return fetch()
            except RateLimitedError as e:
                if attempt >= self.max_rate_limit_retries:
                    logger.warning("Rate limit persisted after %d retries", attempt)
                    return _PAUSED
                wait = self._backoff(e, attempt)
                attempt += 1
                yield self._event(
                    SyncStage.rate_limited, current, activity_id,
                    f"Rate limited, retrying in {wait:.0f}s (attempt {attempt}/{self.max_rate_limit_retries})",
                )
                self.sleep(wait)

    def _list_activities(self) -> Generator[SyncEvent, None, tuple[list[RemoteActivity], bool]]:
        """Page through the listing; returns the listed activities and whether listing paused."""
        activities: list[RemoteActivity] = []
        page = 1
        while True:
            outcome = yield from self._retrying(lambda: self.client.list_activity_page(page, after=self.after))
            if outcome is _PAUSED:
                logger.warning("Listing paused at page %d with %d activities listed", page, len(activities))
                return activities, True
            batch, has_more = outcome
            activities.extend(batch)
            if not has_more:
                logger.info("Listed %d activities over %d page(s)", len(activities), page)
                return activities, False
            page += 1

    def run(self) -> Iterator[SyncEvent]:
        yield self._event(SyncStage.listing, message="Listing activities")
        activities, listing_paused = yield from self._list_activities()

        self.result.total = len(activities)
        fetched_before = False

        for current, activity in enumerate(activities, start=1):
            if self._cancelled:
                self.result.cancelled = True
                logger.info("Sync cancelled after %d of %d activities", current - 1, self.result.total)
                yield self._event(SyncStage.cancelled, current - 1, message="Sync cancelled")
                return

            if self.repository.contains(RemoteIdentity(remote_id=activity.id)):
                self.result.skipped += 1
                yield self._event(SyncStage.skipped, current, activity.id, "Already imported")
                continue

            if fetched_before and self.min_delay_s > 0:
                self.sleep(self.min_delay_s)
            fetched_before = True
            yield self._event(SyncStage.fetching, current, activity.id, activity.name)

            streams = None
            failure = ""
            try:
                streams = yield from self._retrying(
                    lambda: self.client.get_activity_streams(activity.id), current, activity.id,
                )
            except RemoteFetchError as e:
                failure = str(e)
            if streams is _PAUSED:
                self.result.paused = True
                logger.warning("Pausing sync at %d/%d", current, self.result.total)
                yield self._event(
                    SyncStage.paused, current - 1, activity.id,
                    "Rate limit reached; sync again later to continue",
                )
                return

            yield self._convert_and_insert(activity, streams, failure, current)

        if listing_paused:
            self.result.paused = True
            yield self._event(
                SyncStage.paused, self.result.total,
                message="Rate limited while listing activities; sync again later to continue",
            )
            return

        logger.info(
            "Sync finished: %d inserted, %d skipped, %d fallback of %d",
            self.result.inserted, self.result.skipped, self.result.fallbacks, self.result.total,
        )
        yield self._event(SyncStage.completed, self.result.total, message="Sync complete")

    def _convert_and_insert(self, activity: RemoteActivity, streams: Optional[dict], failure: str, current: int) -> SyncEvent:
        stage = SyncStage.converted
        message = activity.name
        if streams is None:
            record = coarse_run_record(activity)
            stage, message = SyncStage.fallback, failure or "Streams unavailable"
        else:
            try:
                record = normalize_activity(activity, streams)
            except InvalidStreamData as e:
                record = coarse_run_record(activity)
                stage, message = SyncStage.fallback, str(e)

        if stage == SyncStage.fallback:
            self.result.fallbacks += 1
            logger.info("Activity %s imported without GPS detail: %s", activity.id, message)

        inserted = self.repository.insert_batch([record])
        self.result.inserted += inserted
        return self._event(stage, current, activity.id, message, inserted)
