from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from runmetrics.api.deps import get_engine
from runmetrics.core.exceptions import RemoteFetchError
from runmetrics.schemas.strava import SyncResult
from runmetrics.services.engine import RunMetricsEngine
from runmetrics.services.strava_client import StravaClient, load_tokens

router = APIRouter(prefix="/strava", tags=["strava"])


@router.post("/sync", response_model=SyncResult)
def sync_activities(
    start_date: Optional[str] = Query(None, description="YYYY-MM-DD (inclusive). Only activities after this date."),
    types: Optional[str] = Query(None, description="Comma-separated Strava activity types to import (default: Run)"),
    engine: RunMetricsEngine = Depends(get_engine),
):
    if not load_tokens():
        raise HTTPException(status_code=400, detail="Strava not linked. Authorize the app first.")

    after = None
    if start_date:
        try:
            sd = datetime.fromisoformat(start_date).replace(tzinfo=timezone.utc)
        except ValueError:
            raise HTTPException(status_code=422, detail="start_date must be YYYY-MM-DD")
        after = int(sd.timestamp())

    try:
        client = StravaClient.from_token_file(activity_types=types)
    except RemoteFetchError as e:
        raise HTTPException(status_code=400, detail=str(e))

    with client:
        driver = engine.sync_driver(client, after=after)
        try:
            return engine.run_sync(driver)
        except RemoteFetchError as e:
            # Listing failed outright; nothing was imported
            raise HTTPException(status_code=502, detail=f"Strava list activities failed: {e}")
