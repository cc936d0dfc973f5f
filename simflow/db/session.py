from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from simflow.core.config import get_settings

settings = get_settings()

DATABASE_URL = settings.database_url  # fail fast if missing

engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,
    future=True,
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    future=True,
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


class TransactionScope:
    """
    Unit of work handed to a core service call.

    A service either owns the transaction it runs in (it commits on success and
    rolls back on failure) or joins a caller's transaction, in which case it
    only flushes and leaves commit/rollback to the caller.
    """

    def __init__(self, db: Session, *, owned: bool = True):
        self.db = db
        self.owned = owned

    def commit(self) -> None:
        if self.owned:
            self.db.commit()
        else:
            self.db.flush()

    def rollback(self) -> None:
        if self.owned:
            self.db.rollback()


def get_session_factory():
    """Factory for work that opens its own sessions (scheduled jobs)."""
    return SessionLocal
