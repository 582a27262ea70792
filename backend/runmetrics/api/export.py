import logging

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.responses import Response

from runmetrics.api.deps import get_engine
from runmetrics.core.exceptions import InvalidBackup
from runmetrics.schemas.export import BackupImportResult
from runmetrics.services.engine import RunMetricsEngine
from runmetrics.services.export import ExportResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/export", tags=["export"])


def _download(result: ExportResult) -> Response:
    return Response(
        content=result.content,
        media_type=result.content_type,
        headers={"Content-Disposition": f'attachment; filename="{result.filename}"'},
    )


@router.get("/json")
def export_json(engine: RunMetricsEngine = Depends(get_engine)):
    """Full backup of runs, stories, goals and achievements."""
    return _download(engine.export_backup())


@router.get("/csv")
def export_csv(engine: RunMetricsEngine = Depends(get_engine)):
    """One summary row per run."""
    result = engine.export_runs_csv()
    if not result.row_count:
        raise HTTPException(status_code=404, detail="No runs to export")
    return _download(result)


@router.post("/import", response_model=BackupImportResult)
def import_backup(file: UploadFile = File(...), engine: RunMetricsEngine = Depends(get_engine)):
    try:
        return engine.import_backup(file.file.read())
    except InvalidBackup as e:
        logger.warning("Rejected backup %s: %s", file.filename, e)
        raise HTTPException(status_code=400, detail=str(e))
