"""The single owner of run records and their persistence.

Records are kept in memory keyed by identity and written as one JSON array
under the `runs` store key after every mutation. When the store is close to
or over its quota, GPS point density of older runs is reduced step by step
before giving up with StorageExhausted.
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Sequence

from pydantic import ValidationError

from runmetrics.core.config import settings
from runmetrics.core.constants import RUNS_KEY
from runmetrics.core.exceptions import QuotaExceededError, RunNotFound, StorageExhausted
from runmetrics.schemas.run import (
    RemoteIdentity,
    RunRecord,
    RunRecordList,
    UploadIdentity,
    parse_identity_key,
)
from runmetrics.services.store import SqlKeyValueStore

logger = logging.getLogger(__name__)

Identity = UploadIdentity | RemoteIdentity | str


def _key_of(identity: Identity) -> str:
    if isinstance(identity, str):
        # Round-trip to reject malformed keys early
        return parse_identity_key(identity).key
    return identity.key


def downsample_points(points: Sequence, step: int) -> list:
    """Every `step`-th point, always keeping the first and the last."""
    if step <= 1 or len(points) <= 2:
        return list(points)
    kept = list(points[::step])
    if (len(points) - 1) % step:
        kept.append(points[-1])
    return kept


def degrade_record(record: RunRecord, step: int) -> RunRecord:
    """Copy of `record` keeping every `step`-th point of the full-resolution tracks.

    A record already thinned to `step` or coarser is returned as is, so a
    record that survived a save at step 10 ends at every 20th original point
    when step 20 is applied later, never every 200th. Summary metrics and
    splits are untouched.
    """
    if record.degraded_step >= step:
        return record
    factor = max(1, step // record.degraded_step)
    tracks = [
        t.model_copy(update={"points": downsample_points(t.points, factor)})
        for t in record.tracks
    ]
    return record.model_copy(update={"tracks": tracks, "degraded_step": step})


class RunRepository:
    def __init__(
        self,
        store: SqlKeyValueStore,
        *,
        safety_ratio: float | None = None,
        degrade_after_days: int | None = None,
        degrade_steps: Sequence[int] | None = None,
        now: Callable[[], datetime] | None = None,
    ):
        self.store = store
        self.safety_ratio = safety_ratio if safety_ratio is not None else settings.storage_safety_ratio
        self.degrade_after_days = (
            degrade_after_days if degrade_after_days is not None else settings.degrade_after_days
        )
        self.degrade_steps = tuple(degrade_steps if degrade_steps is not None else settings.degrade_steps)
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._records: dict[str, RunRecord] = {}
        self._load()

    def _load(self) -> None:
        raw = self.store.get(RUNS_KEY)
        if not raw:
            return
        try:
            records = RunRecordList.validate_json(raw)
        except ValidationError as e:
            # Keep the stored document; the next successful write replaces it
            logger.error("Stored runs could not be decoded, starting empty: %s", e)
            return
        for record in records:
            self._records.setdefault(record.key, record)
        logger.info("Loaded %d runs", len(self._records))

    # ---- reads ----

    def list_all(self) -> list[RunRecord]:
        return list(self._records.values())

    def get(self, identity: Identity) -> Optional[RunRecord]:
        return self._records.get(_key_of(identity))

    def contains(self, identity: Identity) -> bool:
        return _key_of(identity) in self._records

    def __len__(self) -> int:
        return len(self._records)

    # ---- mutations ----

    def insert_batch(self, records: Iterable[RunRecord]) -> int:
        """Insert records whose identity is not yet known; return how many were added.

        Duplicates, against existing runs or earlier records of the same batch,
        are dropped silently.
        """
        inserted = 0
        for record in records:
            key = record.key
            if key in self._records:
                logger.debug("Skipping duplicate run %s", key)
                continue
            self._records[key] = record
            inserted += 1
        if inserted:
            self._persist()
        return inserted

    def update(self, record: RunRecord) -> RunRecord:
        """Apply the tags and notes of `record` to the stored run with the same identity."""
        key = record.key
        current = self._records.get(key)
        if current is None:
            raise RunNotFound(f"Run not found: {key}")
        updated = current.model_copy(update={"tags": set(record.tags), "notes": record.notes})
        self._records[key] = updated
        self._persist()
        return updated

    def delete(self, identity: Identity) -> RunRecord:
        key = _key_of(identity)
        removed = self._records.pop(key, None)
        if removed is None:
            raise RunNotFound(f"Run not found: {key}")
        self._persist()
        return removed

    # ---- persistence ----

    def _degradable(self, record: RunRecord, cutoff: datetime) -> bool:
        return record.start_time < cutoff and record.point_count > 0

    def _persist(self) -> None:
        records = list(self._records.values())
        cutoff = self._now() - timedelta(days=self.degrade_after_days)
        threshold = self.safety_ratio * self.store.quota_bytes

        attempts: list[Optional[int]] = [None, *self.degrade_steps]
        for step in attempts:
            if step is None:
                candidate = records
            else:
                # Thinning is relative to the original density, see degrade_record
                candidate = [
                    degrade_record(r, step) if self._degradable(r, cutoff) else r
                    for r in records
                ]
            payload = RunRecordList.dump_json(candidate).decode("utf-8")

            if step is None and self.store.projected_size(RUNS_KEY, payload) > threshold:
                logger.warning(
                    "Run data would exceed %.0f%% of the storage quota; degrading older runs",
                    self.safety_ratio * 100,
                )
                continue
            try:
                self.store.set(RUNS_KEY, payload)
            except QuotaExceededError as e:
                logger.warning("Persist attempt failed (step=%s): %s", step or 1, e)
                continue

            if step is not None:
                degraded = 0
                for r in candidate:
                    if self._records.get(r.key) is not r:
                        self._records[r.key] = r
                        degraded += 1
                logger.warning("Saved runs with every %dth GPS point on %d older run(s)", step, degraded)
            return

        raise StorageExhausted(
            "Storage is full even after reducing GPS detail of runs older than "
            f"{self.degrade_after_days} days. Delete some runs, goals or stories to free space; "
            "recent changes are kept in memory but are not saved."
        )
