"""Geodesic metrics over GPS tracks.

Distance, elevation, pace and per-unit-distance splits. Both ingestion paths
(track files and remote streams) go through `summarize_tracks`, so there is
a single metrics algorithm regardless of where a run came from.
"""
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Sequence

from runmetrics.core.constants import EARTH_RADIUS_M, MILE_M, SPLIT_TOLERANCE_M
from runmetrics.schemas.run import GeoPoint, MileSplit, Track


def haversine(lat1, lon1, lat2, lon2):
    """Return great‑circle distance in meters between two WGS84 points.

    Uses the standard haversine formula; sufficient for per‑point distances
    over a typical GPS activity track.
    """
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # Rounding can push `a` a hair past 1 for antipodal points
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def point_distance(a: GeoPoint, b: GeoPoint) -> float:
    return haversine(a.latitude, a.longitude, b.latitude, b.longitude)


def path_distance(points: Sequence[GeoPoint]) -> float:
    """Sum of distances between consecutive points."""
    return sum(point_distance(points[i - 1], points[i]) for i in range(1, len(points)))


def elevation_changes(points: Sequence[GeoPoint]) -> tuple[float, float]:
    """(gain, loss) over consecutive points; loss is a positive magnitude."""
    gain = 0.0
    loss = 0.0
    for i in range(1, len(points)):
        de = points[i].elevation - points[i - 1].elevation
        if de > 0:
            gain += de
        else:
            loss += -de
    return gain, loss


def merge_points(tracks: Iterable[Track]) -> list[GeoPoint]:
    """All points of all tracks in timestamp order.

    Multi-track files do not always store tracks chronologically, so start,
    end and splits are always derived from this merged sequence.
    """
    merged: list[GeoPoint] = []
    for track in tracks:
        merged.extend(track.points)
    merged.sort(key=lambda p: p.timestamp)
    return merged


def average_pace(duration_s: float, distance_m: float, unit_m: float = MILE_M) -> float:
    """Minutes per unit distance; 0 when there is no distance."""
    if distance_m <= 0:
        return 0.0
    return (duration_s / 60) / (distance_m / unit_m)


def calculate_mile_splits(tracks: Iterable[Track], unit_m: float = MILE_M) -> list[MileSplit]:
    """Split a run into consecutive unit-distance segments.

    Walks the merged, time-sorted points accumulating distance. A split
    closes on the first point at least one unit past the split's start
    (the boundary snaps to that point, no interpolation) and the next split
    starts from it, so every split covers at least one unit. A trailing
    segment shorter than one unit is dropped.
    """
    points = merge_points(tracks)
    splits: list[MileSplit] = []
    if len(points) < 2:
        return splits

    cumulative = 0.0
    start_idx = 0
    start_distance = 0.0
    seg_gain = 0.0
    seg_loss = 0.0

    for i in range(1, len(points)):
        a, b = points[i - 1], points[i]
        cumulative += point_distance(a, b)
        de = b.elevation - a.elevation
        if de > 0:
            seg_gain += de
        else:
            seg_loss += -de

        if cumulative - start_distance + SPLIT_TOLERANCE_M < unit_m:
            continue

        start = points[start_idx]
        duration = (b.timestamp - start.timestamp).total_seconds()
        seg_distance = cumulative - start_distance
        splits.append(
            MileSplit(
                index=len(splits) + 1,
                pace=average_pace(duration, seg_distance, unit_m),
                duration_seconds=duration,
                elevation_gain=seg_gain,
                elevation_loss=seg_loss,
                start_distance=start_distance,
                end_distance=cumulative,
                start_time=start.timestamp,
                end_time=b.timestamp,
            )
        )
        start_idx = i
        start_distance = cumulative
        seg_gain = 0.0
        seg_loss = 0.0

    return splits


@dataclass
class TrackSummary:
    total_distance_m: float = 0.0
    elevation_gain_m: float = 0.0
    elevation_loss_m: float = 0.0
    start_time: datetime | None = None
    end_time: datetime | None = None
    duration_s: float = 0.0
    average_pace: float = 0.0
    splits: list[MileSplit] = field(default_factory=list)


def summarize_tracks(tracks: Sequence[Track], unit_m: float = MILE_M) -> TrackSummary:
    """Totals for a run.

    Distance and elevation are summed within each track (gaps between
    tracks are not bridged); time bounds come from the merged sequence.
    """
    summary = TrackSummary()
    for track in tracks:
        summary.total_distance_m += path_distance(track.points)
        gain, loss = elevation_changes(track.points)
        summary.elevation_gain_m += gain
        summary.elevation_loss_m += loss

    merged = merge_points(tracks)
    if merged:
        summary.start_time = merged[0].timestamp
        summary.end_time = merged[-1].timestamp
        summary.duration_s = (summary.end_time - summary.start_time).total_seconds()
    summary.average_pace = average_pace(summary.duration_s, summary.total_distance_m, unit_m)
    summary.splits = calculate_mile_splits(tracks, unit_m)
    return summary
