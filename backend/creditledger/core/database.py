from collections.abc import Generator
from typing import Any

from sqlalchemy import create_engine, text
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from creditledger.core.config import settings

engine = create_engine(
    settings.APP_DATABASE_DSN,
    pool_pre_ping=True,
    connect_args=({"check_same_thread": False} if "sqlite" in settings.APP_DATABASE_DSN else {}),
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base: Any = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db() -> None:
    """Initialize database tables."""
    Base.metadata.create_all(bind=engine)


def apply_statement_timeout(db: Session, seconds: float | None) -> None:
    """Bound every statement of the current transaction to ``seconds``.

    Only PostgreSQL enforces this server-side; other dialects rely on the
    deadline checks in the ledger write path.
    """
    if not seconds or seconds <= 0:
        return
    if db.get_bind().dialect.name != "postgresql":
        return
    db.execute(text(f"SET LOCAL statement_timeout = {int(seconds * 1000)}"))
