from fastapi import Depends
from sqlalchemy.orm import Session

from runmetrics.db import get_db
from runmetrics.services.engine import RunMetricsEngine


def get_engine(db: Session = Depends(get_db)) -> RunMetricsEngine:
    return RunMetricsEngine(db)
