from datetime import timedelta

import pytest

from runmetrics.core.exceptions import RunNotFound, StorageExhausted
from runmetrics.schemas.run import RemoteIdentity, RunRecordList, UploadIdentity, parse_identity_key
from runmetrics.services.run_repository import RunRepository, degrade_record, downsample_points
from runmetrics.services.store import SqlKeyValueStore

from helpers import T0, make_run

NOW = T0 + timedelta(days=90)


def _repo(store, **kwargs):
    return RunRepository(store, now=lambda: NOW, **kwargs)


def _payload_size(records):
    return len(RunRecordList.dump_json(records))


def test_insert_batch_is_idempotent(store):
    repo = _repo(store)
    runs = [make_run("a.gpx"), make_run("b.gpx"), make_run(remote_id=7)]
    assert repo.insert_batch(runs) == 3
    assert repo.insert_batch(runs) == 0
    assert len(repo.list_all()) == 3


def test_duplicates_within_batch_dropped(store):
    repo = _repo(store)
    assert repo.insert_batch([make_run("a.gpx"), make_run("a.gpx")]) == 1


def test_same_file_different_start_is_distinct(store):
    repo = _repo(store)
    assert repo.insert_batch([make_run("a.gpx"), make_run("a.gpx", start=T0 + timedelta(days=1))]) == 2


def test_identity_keys_round_trip():
    upload = make_run("my run.gpx").identity
    assert isinstance(upload, UploadIdentity)
    assert parse_identity_key(upload.key) == upload
    remote = make_run(remote_id=99).identity
    assert remote == RemoteIdentity(remote_id=99)
    assert parse_identity_key("remote:99") == remote
    with pytest.raises(ValueError):
        parse_identity_key("bogus")


def test_persisted_and_reloaded(db):
    store = SqlKeyValueStore(db, quota_bytes=10_000_000)
    _repo(store).insert_batch([make_run("a.gpx", point_count=5)])
    reloaded = _repo(store)
    [run] = reloaded.list_all()
    assert run.source_file == "a.gpx"
    assert run.point_count == 5
    assert run.start_time == T0


def test_update_only_touches_tags_and_notes(store):
    repo = _repo(store)
    run = make_run("a.gpx")
    repo.insert_batch([run])
    edited = run.model_copy(update={"tags": {"race"}, "notes": "windy", "total_distance_m": 1.0})
    updated = repo.update(edited)
    assert updated.tags == {"race"}
    assert updated.notes == "windy"
    assert updated.total_distance_m == run.total_distance_m


def test_update_and_delete_missing(store):
    repo = _repo(store)
    with pytest.raises(RunNotFound):
        repo.update(make_run("x.gpx"))
    with pytest.raises(RunNotFound):
        repo.delete(make_run("x.gpx").identity)


def test_delete_by_key(store):
    repo = _repo(store)
    run = make_run("a.gpx")
    repo.insert_batch([run])
    repo.delete(run.key)
    assert repo.get(run.identity) is None


def test_downsample_keeps_first_and_last():
    pts = list(range(25))
    assert downsample_points(pts, 10) == [0, 10, 20, 24]
    assert downsample_points(pts, 20) == [0, 20, 24]
    assert downsample_points([1, 2], 10) == [1, 2]
    assert downsample_points(list(range(21)), 10) == [0, 10, 20]


def test_degrade_preserves_summary():
    run = make_run("a.gpx", point_count=101)
    degraded = degrade_record(run, 10)
    assert degraded.point_count == 11
    assert degraded.total_distance_m == run.total_distance_m
    assert degraded.splits == run.splits
    assert degraded.tracks[0].points[0] == run.tracks[0].points[0]
    assert degraded.tracks[0].points[-1] == run.tracks[0].points[-1]


def test_degrades_only_old_runs_with_first_retry(db):
    recent = make_run("recent.gpx", start=NOW - timedelta(days=2), point_count=500)
    old = make_run("old.gpx", start=NOW - timedelta(days=60), point_count=500)
    quota = _payload_size([recent, degrade_record(old, 10)]) + 10
    repo = _repo(SqlKeyValueStore(db, quota_bytes=quota))

    assert repo.insert_batch([recent, old]) == 2
    assert repo.get(recent.identity).point_count == 500
    kept = repo.get(old.identity)
    assert kept.point_count == len(downsample_points(old.tracks[0].points, 10))
    assert kept.tracks[0].points[-1] == old.tracks[0].points[-1]
    assert kept.total_distance_m == old.total_distance_m


def test_second_retry_uses_every_20th_point(db):
    old = make_run("old.gpx", start=NOW - timedelta(days=60), point_count=2000)
    quota = _payload_size([degrade_record(old, 20)]) + 10
    repo = _repo(SqlKeyValueStore(db, quota_bytes=quota))

    repo.insert_batch([old])
    assert repo.get(old.identity).point_count == len(downsample_points(old.tracks[0].points, 20))


def test_storage_exhausted_keeps_memory_state(db):
    store = SqlKeyValueStore(db, quota_bytes=200)
    repo = _repo(store)
    run = make_run("a.gpx", start=NOW - timedelta(days=60), point_count=50)
    with pytest.raises(StorageExhausted):
        repo.insert_batch([run])
    assert repo.get(run.identity) is not None
    assert store.get("runs") is None


def test_young_runs_are_never_degraded(db):
    recent = make_run("recent.gpx", start=NOW - timedelta(days=5), point_count=500)
    quota = _payload_size([degrade_record(recent, 20)]) + 10
    repo = _repo(SqlKeyValueStore(db, quota_bytes=quota))
    with pytest.raises(StorageExhausted):
        repo.insert_batch([recent])
    assert repo.get(recent.identity).point_count == 500


def test_degrade_is_relative_to_original_density():
    run = make_run("a.gpx", point_count=2001)
    once = degrade_record(run, 10)
    assert once.degraded_step == 10
    assert degrade_record(once, 10) is once
    assert degrade_record(degrade_record(run, 20), 10).point_count == 101
    assert degrade_record(once, 20).tracks[0].points == downsample_points(run.tracks[0].points, 20)


def test_later_save_does_not_thin_degraded_run_again(db):
    old = make_run("old.gpx", start=NOW - timedelta(days=60), point_count=2001)
    quota = _payload_size([degrade_record(old, 10)]) + 10
    repo = _repo(SqlKeyValueStore(db, quota_bytes=quota))
    repo.insert_batch([old])
    assert repo.get(old.identity).point_count == 201

    # A second save that no longer fits at step 10 falls through to step 20
    repo.insert_batch([make_run("recent.gpx", start=NOW - timedelta(days=1))])
    kept = repo.get(old.identity)
    assert kept.degraded_step == 20
    assert kept.point_count == len(downsample_points(old.tracks[0].points, 20)) == 101
