from datetime import timedelta

import pytest

from runmetrics.core.constants import MILE_M
from runmetrics.schemas.run import MileSplit
from runmetrics.services.best_efforts import (
    PR_FASTEST_10K,
    PR_FASTEST_MILE,
    PR_LONGEST_DISTANCE,
    PR_LONGEST_TIME,
    calculate_best_efforts,
    check_for_new_prs,
    fastest_mile,
    fastest_segment,
)

from helpers import T0, make_run, run_from_tracks, straight_track


def _steady(miles, seconds_per_mile, day=0, name="run.gpx"):
    start = T0 + timedelta(days=day)
    return run_from_tracks([straight_track(MILE_M, seconds_per_mile, miles, start=start)], source_file=name)


def test_fastest_mile_across_runs():
    slow = _steady(3, 480, name="slow.gpx")
    fast = _steady(1, 420, day=1, name="fast.gpx")
    best = fastest_mile([slow, fast])
    assert best.run_key == fast.key
    assert best.pace == pytest.approx(7.0)
    assert best.time_s == pytest.approx(420)


def test_short_split_is_not_a_mile():
    run = make_run("odd.gpx")
    run.splits = [
        MileSplit(
            index=1, pace=5.0, duration_seconds=186, elevation_gain=0, elevation_loss=0,
            start_distance=0, end_distance=1000, start_time=T0, end_time=T0 + timedelta(seconds=186),
        )
    ]
    assert fastest_mile([run]) is None


def test_5k_from_contiguous_splits():
    run = _steady(4, 480)
    effort = fastest_segment([run], 5000)
    # Three splits, about 4828 m, fall inside the 5% window
    assert effort.distance_m == pytest.approx(3 * MILE_M)
    assert effort.time_s == pytest.approx(1440)
    assert effort.pace == pytest.approx(8.0)


def test_no_10k_for_short_runs():
    assert fastest_segment([_steady(4, 480)], 10000) is None


def test_best_efforts_summary():
    short = _steady(2, 420, name="short.gpx")
    long = _steady(4, 540, day=1, name="long.gpx")
    records = calculate_best_efforts([short, long])
    assert records.fastest_mile.run_key == short.key
    assert records.fastest_5k.run_key == long.key
    assert records.fastest_10k is None
    assert records.longest_run_distance.run_key == long.key
    assert records.longest_run_time.run_key == long.key


def test_no_runs_no_records():
    records = calculate_best_efforts([])
    assert records.fastest_mile is None
    assert records.longest_run_distance is None


def test_new_prs_for_faster_run():
    current = calculate_best_efforts([_steady(3, 480)])
    assert check_for_new_prs(current, _steady(1, 420, day=1)) == [PR_FASTEST_MILE]


def test_new_prs_for_longer_run():
    current = calculate_best_efforts([_steady(3, 480)])
    long = _steady(7, 600, day=1)
    assert check_for_new_prs(current, long) == [PR_FASTEST_10K, PR_LONGEST_DISTANCE, PR_LONGEST_TIME]


def test_everything_is_a_pr_on_empty_history():
    prs = check_for_new_prs(calculate_best_efforts([]), _steady(1, 480))
    assert PR_FASTEST_MILE in prs
    assert PR_LONGEST_DISTANCE in prs
