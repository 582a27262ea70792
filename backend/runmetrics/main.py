import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from runmetrics.api.achievements import router as achievements_router
from runmetrics.api.export import router as export_router
from runmetrics.api.goals import router as goals_router
from runmetrics.api.runs import router as runs_router
from runmetrics.api.stats import router as stats_router
from runmetrics.api.stories import router as stories_router
from runmetrics.api.strava import router as strava_router
from runmetrics.core.exceptions import StorageExhausted
from runmetrics.core.logging import setup_logging
from runmetrics.db import Base, engine
from runmetrics.models.store_entry import StoreEntry  # noqa: F401  (import ensures table is registered)

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="Run Metrics")

# Allow CORS for local frontend
origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Create the store table on startup
Base.metadata.create_all(bind=engine)


@app.exception_handler(StorageExhausted)
def storage_exhausted_handler(request: Request, exc: StorageExhausted):
    logger.error("Storage exhausted on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=507, content={"detail": str(exc)})


app.include_router(runs_router)
app.include_router(stats_router)
app.include_router(goals_router)
app.include_router(achievements_router)
app.include_router(stories_router)
app.include_router(strava_router)
app.include_router(export_router)


@app.get("/")
def root():
    return {"message": "Run metrics backend is running"}
