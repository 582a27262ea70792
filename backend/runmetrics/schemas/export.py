from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from runmetrics.schemas.goal import Goal
from runmetrics.schemas.run import RunRecord
from runmetrics.schemas.story import Story

BACKUP_VERSION = "1.0"


class BackupDocument(BaseModel):
    """Everything the engine persists, as one downloadable JSON document."""

    runs: list[RunRecord]
    stories: list[Story] = Field(default_factory=list)
    goals: list[Goal] = Field(default_factory=list)
    achievements: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    export_date: Optional[datetime] = None
    version: str = BACKUP_VERSION


class BackupImportResult(BaseModel):
    runs_added: int = 0
    stories_added: int = 0
    goals_added: int = 0
    achievements_restored: list[str] = Field(default_factory=list)
    completed_goals: list[str] = Field(default_factory=list)
    unlocked_achievements: list[str] = Field(default_factory=list)
