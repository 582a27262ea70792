from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.sql import func
from runmetrics.db import Base


class StoreEntry(Base):
    __tablename__ = "store_entries"

    # One row per persisted collection: runs, goals, achievements, stories
    key = Column(String(64), primary_key=True)

    # Serialized JSON document
    value = Column(Text, nullable=False)

    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
