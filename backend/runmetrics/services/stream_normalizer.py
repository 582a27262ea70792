"""Remote activity streams -> canonical RunRecord.

Streams arrive as parallel arrays keyed by type, either flat or wrapped in
`{"data": [...]}` (what the streams endpoint returns with key_by_type).
They are validated into a RemoteStreamSet before anything is built from them.
"""
import logging
from datetime import timedelta
from typing import Any, Mapping, Optional

from pydantic import ValidationError

from runmetrics.core.exceptions import InvalidStreamData
from runmetrics.schemas.run import GeoPoint, RunOrigin, RunRecord, Track
from runmetrics.schemas.strava import RemoteActivity, RemoteStreamSet
from runmetrics.services.geo import average_pace, elevation_changes, summarize_tracks

logger = logging.getLogger(__name__)

STREAM_KEYS = ("latlng", "time", "distance", "altitude", "heartrate")


def _stream_data(streams: Mapping[str, Any], key: str) -> Optional[list]:
    value = streams.get(key)
    if value is None:
        return None
    if isinstance(value, Mapping):
        value = value.get("data")
    if value is None:
        return None
    return list(value)


def validate_streams(streams: Mapping[str, Any]) -> RemoteStreamSet:
    """Validate raw streams; raise InvalidStreamData listing every problem found."""
    latlng = _stream_data(streams, "latlng")
    time_s = _stream_data(streams, "time")
    optional = {k: _stream_data(streams, k) for k in ("altitude", "distance", "heartrate")}

    issues: list[str] = []
    if not latlng:
        issues.append("Missing GPS coordinates")
    if not time_s:
        issues.append("Missing time data")
    if latlng and time_s and len(latlng) != len(time_s):
        issues.append("GPS and time data length mismatch")
    if latlng:
        for key in ("altitude", "distance"):
            data = optional[key]
            if data is not None and len(data) != len(latlng):
                issues.append(f"{key.capitalize()} data length mismatch")
    if issues:
        raise InvalidStreamData(issues)

    try:
        return RemoteStreamSet(latlng=latlng, time=time_s, **optional)
    except ValidationError as e:
        raise InvalidStreamData([f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()])


def streams_to_track(stream_set: RemoteStreamSet, activity: RemoteActivity) -> Track:
    start = activity.start_date
    altitude = stream_set.altitude or []
    points = []
    for i, (lat, lon) in enumerate(stream_set.latlng):
        ele = altitude[i] if i < len(altitude) else None
        points.append(
            GeoPoint(
                latitude=lat,
                longitude=lon,
                elevation=ele or 0.0,
                timestamp=start + timedelta(seconds=stream_set.time[i]),
            )
        )
    return Track(name=activity.name, points=points)


def normalize_activity(activity: RemoteActivity | Mapping[str, Any], streams: Mapping[str, Any]) -> RunRecord:
    """Build a RunRecord from an activity summary plus its streams.

    Distance, moving time and elevation gain come from the activity summary;
    points and splits come from the streams.
    """
    if not isinstance(activity, RemoteActivity):
        activity = RemoteActivity.model_validate(activity)
    stream_set = validate_streams(streams)
    track = streams_to_track(stream_set, activity)
    summary = summarize_tracks([track])
    _, loss = elevation_changes(track.points)

    return RunRecord(
        source_file=f"{activity.name} (Strava)",
        tracks=[track],
        total_distance_m=activity.distance,
        total_duration_s=activity.moving_time,
        elevation_gain_m=activity.total_elevation_gain,
        elevation_loss_m=loss,
        start_time=activity.start_date,
        end_time=max(summary.end_time, activity.start_date),
        average_pace=average_pace(activity.moving_time, activity.distance),
        splits=summary.splits,
        origin=RunOrigin.remote_sync,
        remote_id=activity.id,
    )


def coarse_run_record(activity: RemoteActivity | Mapping[str, Any]) -> RunRecord:
    """Summary-only record for activities whose streams could not be used."""
    if not isinstance(activity, RemoteActivity):
        activity = RemoteActivity.model_validate(activity)
    return RunRecord(
        source_file=f"{activity.name} (Strava)",
        tracks=[],
        total_distance_m=activity.distance,
        total_duration_s=activity.moving_time,
        elevation_gain_m=activity.total_elevation_gain,
        start_time=activity.start_date,
        end_time=activity.start_date,
        average_pace=average_pace(activity.moving_time, activity.distance),
        splits=[],
        origin=RunOrigin.remote_sync,
        remote_id=activity.id,
    )
