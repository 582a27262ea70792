import os

# Use in-memory sqlite for tests; must be set before runmetrics is imported
os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("TIMEZONE", "UTC")

import pytest  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from runmetrics.db import Base, make_engine  # noqa: E402
from runmetrics.models.store_entry import StoreEntry  # noqa: E402,F401
from runmetrics.services.store import SqlKeyValueStore  # noqa: E402


@pytest.fixture
def db():
    engine = make_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        engine.dispose()


@pytest.fixture
def store(db):
    return SqlKeyValueStore(db, quota_bytes=50 * 1024 * 1024)
