import pytest

from runmetrics.core.constants import MILE_M
from runmetrics.schemas.run import GeoPoint, Track
from runmetrics.services.geo import (
    average_pace,
    calculate_mile_splits,
    elevation_changes,
    haversine,
    merge_points,
    summarize_tracks,
)

from helpers import T0, straight_points, straight_track


def test_haversine_zero_and_symmetric():
    assert haversine(40.0, -75.0, 40.0, -75.0) == 0.0
    a = haversine(40.0, -75.0, 41.0, -74.5)
    b = haversine(41.0, -74.5, 40.0, -75.0)
    assert a == pytest.approx(b)


def test_haversine_known_distance():
    # One degree of latitude on a 6,371 km sphere
    assert haversine(0.0, 0.0, 1.0, 0.0) == pytest.approx(111194.9, rel=1e-4)


def test_haversine_triangle_inequality():
    p, q, r = (40.0, -75.0), (40.5, -74.0), (41.2, -75.3)
    assert haversine(*p, *r) <= haversine(*p, *q) + haversine(*q, *r) + 1e-9


def test_average_pace_zero_distance():
    assert average_pace(600, 0) == 0.0
    assert average_pace(480, MILE_M) == pytest.approx(8.0)


def test_elevation_gain_and_loss():
    pts = straight_points(10, 5, 4, elevations=[100, 105, 103, 110, 90])
    gain, loss = elevation_changes(pts)
    assert gain == pytest.approx(12)
    assert loss == pytest.approx(22)


@pytest.mark.parametrize("units", [1, 2, 5])
def test_k_units_give_k_splits(units):
    track = straight_track(MILE_M / 4, 120, units * 4)
    splits = calculate_mile_splits([track])
    assert len(splits) == units
    assert [s.index for s in splits] == list(range(1, units + 1))
    for s in splits:
        assert s.pace == pytest.approx(8.0, rel=1e-6)


def test_partial_trailing_segment_dropped():
    # 2.5 units of distance
    track = straight_track(MILE_M / 2, 240, 5)
    splits = calculate_mile_splits([track])
    assert len(splits) == 2


def test_splits_are_contiguous():
    # 8000 m in 400 m hops: each split needs five hops to pass one mile
    track = straight_track(400, 100, 20)
    splits = calculate_mile_splits([track])
    assert [round(s.end_distance) for s in splits] == [2000, 4000, 6000, 8000]
    assert splits[0].start_distance == 0
    for prev, cur in zip(splits, splits[1:]):
        assert cur.start_distance == pytest.approx(prev.end_distance)
        assert cur.start_time == prev.end_time
    assert splits[1].pace == pytest.approx(average_pace(500, 2000))


def test_sparse_points_never_yield_short_splits():
    # 5000 m in 1 km hops: two 2 km splits, the last kilometre is a partial
    splits = calculate_mile_splits([straight_track(1000.0, 300, 5)])
    assert [round(s.end_distance - s.start_distance) for s in splits] == [2000, 2000]
    for s in splits:
        assert s.end_distance - s.start_distance >= MILE_M


def test_split_elevation_is_per_segment():
    elevations = [0, 10, 20, 15, 5]
    track = straight_track(MILE_M / 2, 240, 4, elevations=elevations)
    first, second = calculate_mile_splits([track])
    assert first.elevation_gain == pytest.approx(20)
    assert first.elevation_loss == 0
    assert second.elevation_gain == 0
    assert second.elevation_loss == pytest.approx(15)


def test_three_point_track_end_to_end():
    track = straight_track(MILE_M, 60, 2)
    summary = summarize_tracks([track])
    assert summary.total_distance_m == pytest.approx(3218.68, abs=0.5)
    assert summary.duration_s == 120
    assert summary.average_pace == pytest.approx(1.0, rel=1e-3)
    assert len(summary.splits) == 2


def test_distance_is_not_bridged_across_tracks():
    a = straight_track(1000, 300, 1)
    # Second track starts far away; the gap must not count
    far = [
        GeoPoint(latitude=p.latitude + 1.0, longitude=p.longitude, elevation=0, timestamp=p.timestamp.replace(hour=9))
        for p in straight_points(1000, 300, 1)
    ]
    b = Track(name="b", points=far)
    summary = summarize_tracks([a, b])
    assert summary.total_distance_m == pytest.approx(2000, abs=0.01)


def test_time_bounds_use_merged_order():
    later = straight_track(100, 60, 3, start=T0.replace(hour=9))
    earlier = straight_track(100, 60, 3, start=T0)
    summary = summarize_tracks([later, earlier])
    assert summary.start_time == T0
    assert summary.end_time == T0.replace(hour=9, minute=3)
    merged = merge_points([later, earlier])
    assert merged == sorted(merged, key=lambda p: p.timestamp)
