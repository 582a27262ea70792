from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, field_validator

from runmetrics.core.time_utils import ensure_utc


class RunOrigin(str, Enum):
    upload = "upload"
    remote_sync = "remote_sync"


class GeoPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    latitude: float
    longitude: float
    elevation: float = 0.0
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class Track(BaseModel):
    name: str
    points: list[GeoPoint] = Field(default_factory=list)


class MileSplit(BaseModel):
    index: int  # 1-based
    pace: float  # minutes per unit
    duration_seconds: float
    elevation_gain: float
    elevation_loss: float
    start_distance: float  # meters from run start
    end_distance: float
    start_time: datetime
    end_time: datetime


_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _ms_precision(dt: datetime) -> datetime:
    dt = ensure_utc(dt)
    return dt.replace(microsecond=(dt.microsecond // 1000) * 1000)


class UploadIdentity(BaseModel):
    """A file upload is identified by its file name and first timestamp."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["upload"] = "upload"
    source_file: str
    start_time: datetime

    @field_validator("start_time")
    @classmethod
    def _normalize(cls, v: datetime) -> datetime:
        return _ms_precision(v)

    @property
    def key(self) -> str:
        millis = (self.start_time - _EPOCH) // timedelta(milliseconds=1)
        return f"upload:{self.source_file}@{millis}"


class RemoteIdentity(BaseModel):
    """A synced activity is identified by its remote activity id."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["remote"] = "remote"
    remote_id: int

    @property
    def key(self) -> str:
        return f"remote:{self.remote_id}"


RunIdentity = Annotated[Union[UploadIdentity, RemoteIdentity], Field(discriminator="kind")]


def parse_identity_key(key: str) -> UploadIdentity | RemoteIdentity:
    """Inverse of `identity.key`. Raises ValueError for malformed keys."""
    prefix, _, rest = key.partition(":")
    if prefix == "remote" and rest:
        try:
            return RemoteIdentity(remote_id=int(rest))
        except ValueError:
            raise ValueError(f"Invalid remote run key: {key!r}")
    if prefix == "upload" and "@" in rest:
        source_file, _, millis = rest.rpartition("@")
        try:
            start = _EPOCH + timedelta(milliseconds=int(millis))
        except (ValueError, OverflowError):
            raise ValueError(f"Invalid upload run key: {key!r}")
        return UploadIdentity(source_file=source_file, start_time=start)
    raise ValueError(f"Invalid run key: {key!r}")


class RunRecord(BaseModel):
    """Canonical run: both ingestion paths converge on this shape."""

    source_file: str
    tracks: list[Track] = Field(default_factory=list)
    total_distance_m: float = Field(ge=0)
    total_duration_s: float = Field(ge=0)
    elevation_gain_m: float = 0.0
    elevation_loss_m: float = 0.0
    start_time: datetime
    end_time: datetime
    average_pace: float = 0.0  # minutes per mile
    splits: list[MileSplit] = Field(default_factory=list)
    origin: RunOrigin = RunOrigin.upload
    remote_id: Optional[int] = None
    tags: set[str] = Field(default_factory=set)
    notes: Optional[str] = None
    # False when some points had no timestamp and got the parse-time fallback;
    # duration and pace of such a run are unreliable.
    timestamps_complete: bool = True
    # GPS thinning already applied to the stored tracks (1 = full resolution)
    degraded_step: int = Field(default=1, ge=1)

    @field_validator("start_time", "end_time")
    @classmethod
    def _utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def identity(self) -> UploadIdentity | RemoteIdentity:
        if self.origin == RunOrigin.remote_sync and self.remote_id is not None:
            return RemoteIdentity(remote_id=self.remote_id)
        return UploadIdentity(source_file=self.source_file, start_time=self.start_time)

    @property
    def key(self) -> str:
        return self.identity.key

    @property
    def point_count(self) -> int:
        return sum(len(t.points) for t in self.tracks)


RunRecordList = TypeAdapter(list[RunRecord])


class RunSummary(BaseModel):
    """Run as listed by the API (no GPS points)."""

    key: str
    source_file: str
    origin: RunOrigin
    remote_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    distance_mi: float
    duration: str  # 'H:MM:SS'
    pace: str      # 'M:SS'
    elevation_gain_m: float
    split_count: int
    point_count: int
    tags: list[str]
    notes: Optional[str] = None
    timestamps_complete: bool


class RunAnnotate(BaseModel):
    """Schema for updating a run (only tags and notes are mutable)."""

    tags: Optional[list[str]] = None
    notes: Optional[str] = None

    model_config = ConfigDict(extra="ignore")


class ImportResult(BaseModel):
    inserted: int
    parsed: int
    duplicates: int
    failed_files: list[str]
    completed_goals: list[str] = Field(default_factory=list)
    unlocked_achievements: list[str] = Field(default_factory=list)
