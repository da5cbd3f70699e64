"""Shared test fixtures for all test modules."""

import contextlib

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import creditledger.models  # noqa: F401  registers every table on Base.metadata
from creditledger.core import database as db_module
from creditledger.core.database import Base
from creditledger.routers.redemptions import validation_rate_limiter

# Create an in-memory SQLite engine with StaticPool so all connections
# share the same database state and there are no file-locking issues.
_test_engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_test_engine)

# Well-known merchants used across all tests
MERCHANT_ID = "merchant-main"
OTHER_MERCHANT_ID = "merchant-other"
ACTOR_ID = "clerk-42"

MERCHANT_HEADERS = {"X-Merchant-Id": MERCHANT_ID, "X-Actor-Id": ACTOR_ID}
OTHER_MERCHANT_HEADERS = {"X-Merchant-Id": OTHER_MERCHANT_ID}


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test and truncate all data after.

    Patches the module-level engine and SessionLocal so all application code
    uses the in-memory test database. Clears data after each test.
    """
    original_engine = db_module.engine
    original_session = db_module.SessionLocal
    db_module.engine = _test_engine
    db_module.SessionLocal = _TestSessionLocal

    Base.metadata.create_all(bind=_test_engine)
    validation_rate_limiter.reset()

    yield
    with _test_engine.connect() as conn:
        conn.execute(text("PRAGMA foreign_keys = OFF"))
        for table in reversed(Base.metadata.sorted_tables):
            with contextlib.suppress(OperationalError):
                conn.execute(table.delete())
        conn.execute(text("PRAGMA foreign_keys = ON"))
        conn.commit()

    db_module.engine = original_engine
    db_module.SessionLocal = original_session


@pytest.fixture
def merchant_id():
    """Return the default merchant ID for tests."""
    return MERCHANT_ID


@pytest.fixture
def file_session_factory(tmp_path):
    """Session factory over a file-backed SQLite database.

    Threads each get their own connection, so concurrent writers really
    contend for the database the way request handlers do.
    """
    engine = create_engine(
        f"sqlite:///{tmp_path / 'ledger.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()
