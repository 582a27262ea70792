from datetime import timedelta

import httpx
import pytest

from runmetrics.core.constants import MILE_M
from runmetrics.core.exceptions import RateLimitedError
from runmetrics.schemas.run import RemoteIdentity
from runmetrics.schemas.strava import SyncStage
from runmetrics.services import strava_client
from runmetrics.services.run_repository import RunRepository
from runmetrics.services.strava_client import StravaClient
from runmetrics.services.stream_normalizer import coarse_run_record
from runmetrics.services.sync import SyncDriver

from helpers import DEG_PER_M, T0, iso

BASE = "https://strava.test"


def _activity(activity_id, kind="Run", day=0):
    return {
        "id": activity_id,
        "name": f"Run {activity_id}",
        "type": kind,
        "distance": 2 * MILE_M,
        "moving_time": 960,
        "total_elevation_gain": 5.0,
        "start_date": iso(T0 + timedelta(days=day)),
    }


STREAMS = {
    "latlng": {"data": [[i * MILE_M * DEG_PER_M, 0.0] for i in range(3)]},
    "time": {"data": [0, 480, 960]},
    "altitude": {"data": [10, 12, 11]},
}


class FakeStrava:
    """Routes requests to canned activity listings and per-activity stream responses."""

    def __init__(self, activities, streams=None, list_failures=None):
        self.activities = activities
        # activity id -> list of (status, response kwargs), consumed in order; the last one repeats
        self.streams = streams or {}
        # page -> list of (status, response kwargs) returned before the real page, each once
        self.list_failures = list_failures or {}
        self.stream_calls: list[int] = []
        self.pages_requested: list[int] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        if path == "/athlete/activities":
            page = int(request.url.params["page"])
            per_page = int(request.url.params["per_page"])
            self.pages_requested.append(page)
            failures = self.list_failures.get(page)
            if failures:
                status, kwargs = failures.pop(0)
                return httpx.Response(status, **kwargs)
            return httpx.Response(200, json=self.activities[(page - 1) * per_page: page * per_page])
        activity_id = int(path.split("/")[2])
        self.stream_calls.append(activity_id)
        queue = self.streams.get(activity_id, [(200, {"json": STREAMS})])
        status, kwargs = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(status, **kwargs)


def _driver(store, fake, **kwargs):
    client = StravaClient("token", base_url=BASE, activity_types="Run", transport=httpx.MockTransport(fake))
    repo = RunRepository(store, now=lambda: T0 + timedelta(days=10))
    sleeps = []
    options = dict(min_delay_s=0.5, max_rate_limit_retries=3, backoff_base_s=1.0)
    options.update(kwargs)
    driver = SyncDriver(client, repo, sleep=sleeps.append, **options)
    return driver, repo, sleeps


def _stages(events):
    return [e.stage for e in events]


def test_sync_converts_and_falls_back(store):
    fake = FakeStrava(
        [_activity(1), _activity(2, day=1)],
        {2: [(500, {"text": "boom"})]},
    )
    driver, repo, sleeps = _driver(store, fake)
    events = list(driver.run())

    assert _stages(events) == [
        SyncStage.listing,
        SyncStage.fetching, SyncStage.converted,
        SyncStage.fetching, SyncStage.fallback,
        SyncStage.completed,
    ]
    assert sleeps == [0.5]
    assert driver.result.inserted == 2
    assert driver.result.fallbacks == 1

    synced = repo.get(RemoteIdentity(remote_id=1))
    assert synced.point_count == 3
    assert len(synced.splits) == 2
    assert synced.total_duration_s == 960
    assert repo.get(RemoteIdentity(remote_id=2)).point_count == 0


def test_invalid_streams_fall_back(store):
    fake = FakeStrava([_activity(1)], {1: [(200, {"json": {"latlng": STREAMS["latlng"]}})]})
    driver, repo, _ = _driver(store, fake)
    events = list(driver.run())
    fallback = next(e for e in events if e.stage == SyncStage.fallback)
    assert "Missing time data" in fallback.message
    assert fallback.inserted == 1


def test_rate_limit_honors_retry_after(store):
    fake = FakeStrava(
        [_activity(1)],
        {1: [(429, {"headers": {"Retry-After": "5"}}), (200, {"json": STREAMS})]},
    )
    driver, repo, sleeps = _driver(store, fake)
    stages = _stages(driver.run())
    assert stages[:4] == [SyncStage.listing, SyncStage.fetching, SyncStage.rate_limited, SyncStage.converted]
    assert sleeps == [5.0]
    assert fake.stream_calls == [1, 1]
    assert repo.contains(RemoteIdentity(remote_id=1))


def test_rate_limit_exhaustion_pauses(store):
    fake = FakeStrava([_activity(1), _activity(2, day=1)], {1: [(429, {})]})
    driver, repo, sleeps = _driver(store, fake, max_rate_limit_retries=2)
    events = list(driver.run())

    assert sleeps == [1.0, 2.0]
    assert events[-1].stage == SyncStage.paused
    assert SyncStage.completed not in _stages(events)
    assert driver.result.paused
    assert len(repo) == 0
    # The second activity is never requested
    assert fake.stream_calls == [1, 1, 1]


def test_rate_limited_listing_pauses(store):
    fake = FakeStrava([], list_failures={1: [(429, {})] * 10})
    driver, _, sleeps = _driver(store, fake)
    assert _stages(driver.run()) == [
        SyncStage.listing,
        SyncStage.rate_limited, SyncStage.rate_limited, SyncStage.rate_limited,
        SyncStage.paused,
    ]
    assert sleeps == [1.0, 2.0, 4.0]
    assert driver.result.paused


def test_listing_page_retried_after_rate_limit(store, monkeypatch):
    monkeypatch.setattr(strava_client, "PER_PAGE", 2)
    fake = FakeStrava(
        [_activity(1), _activity(2, day=1), _activity(3, day=2)],
        list_failures={2: [(429, {"headers": {"Retry-After": "3"}})]},
    )
    driver, repo, sleeps = _driver(store, fake)
    events = list(driver.run())

    assert _stages(events)[:2] == [SyncStage.listing, SyncStage.rate_limited]
    assert events[-1].stage == SyncStage.completed
    assert fake.pages_requested == [1, 2, 2]
    assert sleeps == [3.0, 0.5, 0.5]
    assert driver.result.total == 3
    assert len(repo) == 3


def test_listing_pause_keeps_earlier_pages(store, monkeypatch):
    monkeypatch.setattr(strava_client, "PER_PAGE", 2)
    fake = FakeStrava(
        [_activity(1), _activity(2, day=1), _activity(3, day=2)],
        list_failures={2: [(429, {})] * 10},
    )
    driver, repo, sleeps = _driver(store, fake)
    events = list(driver.run())

    assert events[-1].stage == SyncStage.paused
    assert SyncStage.completed not in _stages(events)
    assert driver.result.paused
    assert sleeps == [1.0, 2.0, 4.0, 0.5]
    assert fake.stream_calls == [1, 2]
    assert repo.contains(RemoteIdentity(remote_id=2))
    assert not repo.contains(RemoteIdentity(remote_id=3))


def test_existing_activities_are_skipped(store):
    fake = FakeStrava([_activity(1), _activity(2, day=1)])
    driver, repo, sleeps = _driver(store, fake)
    repo.insert_batch([coarse_run_record(_activity(1))])

    events = list(driver.run())
    assert SyncStage.skipped in _stages(events)
    assert fake.stream_calls == [2]
    assert sleeps == []
    assert driver.result.skipped == 1
    assert driver.result.inserted == 1


def test_cancel_stops_before_next_activity(store):
    fake = FakeStrava([_activity(1), _activity(2, day=1), _activity(3, day=2)])
    driver, repo, _ = _driver(store, fake)
    events = []
    for event in driver.run():
        events.append(event)
        if event.stage == SyncStage.converted:
            driver.cancel()

    assert events[-1].stage == SyncStage.cancelled
    assert driver.result.cancelled
    assert len(repo) == 1


def test_listing_pages_and_filters_types(monkeypatch):
    monkeypatch.setattr(strava_client, "PER_PAGE", 2)
    fake = FakeStrava([_activity(1), _activity(2, kind="Ride"), _activity(3), _activity(4, kind="Run")])
    with StravaClient("token", base_url=BASE, activity_types="Run", transport=httpx.MockTransport(fake)) as client:
        activities = client.list_all_activities()
    assert [a.id for a in activities] == [1, 3, 4]


def test_client_errors():
    def handler(request):
        return httpx.Response(429, headers={"Retry-After": "12"})

    client = StravaClient("token", base_url=BASE, transport=httpx.MockTransport(handler))
    with pytest.raises(RateLimitedError) as exc:
        client.get_activity_streams(1)
    assert exc.value.retry_after_s == 12
    assert exc.value.status_code == 429
