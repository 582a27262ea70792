"""Key-value store over the `store_entries` table with a byte quota.

Each persisted collection (runs, goals, achievements, stories) is one JSON
document under its own key. The quota covers the encoded size of all values
together; a write that would exceed it is refused with QuotaExceededError
and leaves the stored value untouched.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from runmetrics.core.config import settings
from runmetrics.core.exceptions import QuotaExceededError
from runmetrics.models.store_entry import StoreEntry

logger = logging.getLogger(__name__)


def encoded_size(value: str | bytes) -> int:
    if isinstance(value, bytes):
        return len(value)
    return len(value.encode("utf-8"))


class SqlKeyValueStore:
    def __init__(self, db: Session, quota_bytes: int | None = None):
        self.db = db
        self.quota_bytes = quota_bytes if quota_bytes is not None else settings.storage_quota_bytes

    def get(self, key: str) -> Optional[str]:
        row = self.db.query(StoreEntry).filter(StoreEntry.key == key).first()
        return row.value if row else None

    def sizes(self) -> dict[str, int]:
        return {row.key: encoded_size(row.value) for row in self.db.query(StoreEntry).all()}

    def total_size(self) -> int:
        return sum(self.sizes().values())

    def projected_size(self, key: str, value: str | bytes) -> int:
        """Total store size if `key` were set to `value`."""
        sizes = self.sizes()
        sizes[key] = encoded_size(value)
        return sum(sizes.values())

    def set(self, key: str, value: str | bytes) -> None:
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        projected = self.projected_size(key, value)
        if projected > self.quota_bytes:
            raise QuotaExceededError(key, projected, self.quota_bytes)

        row = self.db.query(StoreEntry).filter(StoreEntry.key == key).first()
        if row is None:
            row = StoreEntry(key=key, value=value)
            self.db.add(row)
        else:
            row.value = value
        self.db.commit()
        logger.debug("Stored %s (%d bytes, store total %d)", key, encoded_size(value), projected)

    def remove(self, key: str) -> None:
        self.db.query(StoreEntry).filter(StoreEntry.key == key).delete()
        self.db.commit()
