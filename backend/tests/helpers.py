"""Builders for tracks, runs and GPX documents used across the tests."""
import math
from datetime import datetime, timedelta, timezone

from runmetrics.core.constants import EARTH_RADIUS_M
from runmetrics.schemas.run import GeoPoint, RunOrigin, RunRecord, Track
from runmetrics.services.geo import summarize_tracks

# Degrees of latitude per meter along a meridian
DEG_PER_M = 180 / (math.pi * EARTH_RADIUS_M)

# A Monday morning
T0 = datetime(2025, 1, 6, 7, 0, tzinfo=timezone.utc)


def straight_points(segment_m, seconds_per_segment, n_segments, start=T0, elevations=None, lat0=0.0):
    """n_segments + 1 points due north, each segment_m apart."""
    points = []
    for i in range(n_segments + 1):
        points.append(
            GeoPoint(
                latitude=lat0 + i * segment_m * DEG_PER_M,
                longitude=0.0,
                elevation=elevations[i] if elevations else 0.0,
                timestamp=start + timedelta(seconds=i * seconds_per_segment),
            )
        )
    return points


def straight_track(segment_m, seconds_per_segment, n_segments, start=T0, name="Test", elevations=None):
    return Track(name=name, points=straight_points(segment_m, seconds_per_segment, n_segments, start, elevations))


def run_from_tracks(tracks, source_file="run.gpx", **overrides):
    summary = summarize_tracks(tracks)
    data = dict(
        source_file=source_file,
        tracks=tracks,
        total_distance_m=summary.total_distance_m,
        total_duration_s=summary.duration_s,
        elevation_gain_m=summary.elevation_gain_m,
        elevation_loss_m=summary.elevation_loss_m,
        start_time=summary.start_time,
        end_time=summary.end_time,
        average_pace=summary.average_pace,
        splits=summary.splits,
    )
    data.update(overrides)
    return RunRecord(**data)


def make_run(
    source_file="run.gpx",
    start=T0,
    distance_m=5000.0,
    duration_s=1500.0,
    elevation_gain_m=0.0,
    remote_id=None,
    point_count=0,
):
    """Summary-level run; with point_count, one dense track of that many points."""
    tracks = []
    if point_count:
        step = distance_m / max(point_count - 1, 1)
        seconds = duration_s / max(point_count - 1, 1)
        tracks = [straight_track(step, seconds, point_count - 1, start=start)]
    pace = (duration_s / 60) / (distance_m / 1609.34) if distance_m else 0.0
    return RunRecord(
        source_file=source_file,
        tracks=tracks,
        total_distance_m=distance_m,
        total_duration_s=duration_s,
        elevation_gain_m=elevation_gain_m,
        start_time=start,
        end_time=start + timedelta(seconds=duration_s),
        average_pace=pace,
        origin=RunOrigin.remote_sync if remote_id is not None else RunOrigin.upload,
        remote_id=remote_id,
    )


def gpx_document(tracks, namespace="http://www.topografix.com/GPX/1/1"):
    """GPX text from [(name, [(lat, lon, ele, time_str), ...]), ...]; None fields are omitted."""
    xmlns = f' xmlns="{namespace}"' if namespace else ""
    parts = [f'<?xml version="1.0" encoding="UTF-8"?>\n<gpx version="1.1" creator="tests"{xmlns}>']
    for name, points in tracks:
        parts.append("<trk>")
        if name is not None:
            parts.append(f"<name>{name}</name>")
        parts.append("<trkseg>")
        for lat, lon, ele, ts in points:
            parts.append(f'<trkpt lat="{lat}" lon="{lon}">')
            if ele is not None:
                parts.append(f"<ele>{ele}</ele>")
            if ts is not None:
                parts.append(f"<time>{ts}</time>")
            parts.append("</trkpt>")
        parts.append("</trkseg></trk>")
    parts.append("</gpx>")
    return "\n".join(parts)


def iso(dt):
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
