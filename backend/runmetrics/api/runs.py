from datetime import date
from typing import Optional
import os

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from runmetrics.api.deps import get_engine
from runmetrics.core.config import settings
from runmetrics.core.constants import FEET_PER_METER, MILE_M
from runmetrics.core.exceptions import RunNotFound
from runmetrics.core.time_utils import format_pace, local_date, seconds_to_hhmmss
from runmetrics.schemas.run import ImportResult, RunAnnotate, RunRecord, RunSummary
from runmetrics.services.engine import RunMetricsEngine
from runmetrics.services.geo import merge_points

router = APIRouter(prefix="/runs", tags=["runs"])


def to_summary(run: RunRecord) -> RunSummary:
    return RunSummary(
        key=run.key,
        source_file=run.source_file,
        origin=run.origin,
        remote_id=run.remote_id,
        start_time=run.start_time,
        end_time=run.end_time,
        distance_mi=round(run.total_distance_m / MILE_M, 2),
        duration=seconds_to_hhmmss(run.total_duration_s),
        pace=format_pace(run.average_pace),
        elevation_gain_m=run.elevation_gain_m,
        split_count=len(run.splits),
        point_count=run.point_count,
        tags=sorted(run.tags),
        notes=run.notes,
        timestamps_complete=run.timestamps_complete,
    )


def _load_run(engine: RunMetricsEngine, run_key: str) -> RunRecord:
    try:
        return engine.get_run(run_key)
    except (RunNotFound, ValueError):
        raise HTTPException(status_code=404, detail="Run not found")


@router.post("/import", response_model=ImportResult)
def import_runs(
    files: list[UploadFile] = File(...),
    engine: RunMetricsEngine = Depends(get_engine),
):
    payloads = []
    for f in files:
        filename = f.filename or "upload.gpx"
        ext = os.path.splitext(filename)[1].lower()
        if ext != ".gpx":
            raise HTTPException(status_code=400, detail=f"Only .gpx files are supported: {filename}")
        payloads.append((filename, f.file.read()))
    return engine.import_files(payloads)


@router.get("/", response_model=list[RunSummary])
def list_runs(
    start_date: Optional[date] = Query(None, description="YYYY-MM-DD (inclusive)"),
    end_date: Optional[date] = Query(None, description="YYYY-MM-DD (inclusive)"),
    tag: Optional[str] = Query(None),
    engine: RunMetricsEngine = Depends(get_engine),
):
    runs = engine.runs.list_all()
    if start_date:
        runs = [r for r in runs if local_date(r.start_time, settings.timezone) >= start_date]
    if end_date:
        runs = [r for r in runs if local_date(r.start_time, settings.timezone) <= end_date]
    if tag:
        runs = [r for r in runs if tag in r.tags]
    runs.sort(key=lambda r: r.start_time, reverse=True)
    return [to_summary(r) for r in runs]


@router.get("/{run_key}", response_model=RunSummary)
def get_run(run_key: str, engine: RunMetricsEngine = Depends(get_engine)):
    return to_summary(_load_run(engine, run_key))


@router.get("/{run_key}/splits")
def get_run_splits(run_key: str, engine: RunMetricsEngine = Depends(get_engine)):
    run = _load_run(engine, run_key)
    return [
        {
            "idx": s.index,
            "distance_mi": round((s.end_distance - s.start_distance) / MILE_M, 3),
            "duration_sec": s.duration_seconds,
            "pace": format_pace(s.pace),
            "elev_gain_ft": s.elevation_gain * FEET_PER_METER,
            "elev_loss_ft": s.elevation_loss * FEET_PER_METER,
        }
        for s in run.splits
    ]


@router.get("/{run_key}/track")
def get_run_track(run_key: str, engine: RunMetricsEngine = Depends(get_engine)):
    run = _load_run(engine, run_key)
    points = merge_points(run.tracks)
    if not points:
        raise HTTPException(status_code=404, detail="No track")
    lats = [p.latitude for p in points]
    lons = [p.longitude for p in points]
    return {
        "geojson": {
            "type": "MultiLineString",
            "coordinates": [[[p.longitude, p.latitude] for p in t.points] for t in run.tracks],
        },
        "bounds": {"minLat": min(lats), "minLon": min(lons), "maxLat": max(lats), "maxLon": max(lons)},
        "points_count": len(points),
    }


@router.patch("/{run_key}", response_model=RunSummary)
def annotate_run(run_key: str, payload: RunAnnotate, engine: RunMetricsEngine = Depends(get_engine)):
    _load_run(engine, run_key)
    return to_summary(engine.annotate_run(run_key, payload))


@router.delete("/{run_key}")
def delete_run(run_key: str, engine: RunMetricsEngine = Depends(get_engine)):
    _load_run(engine, run_key)
    result = engine.delete_run(run_key)
    return {
        "message": "Run deleted",
        "completed_goals": result.completed_goal_ids,
        "unlocked_achievements": result.unlocked_achievements,
    }
