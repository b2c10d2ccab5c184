"""SQLAlchemy database engine, session, and base model."""

import logging

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from config import DATABASE_URL
from errors import NotFoundError, PersistenceFailure

logger = logging.getLogger(__name__)


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    # SQLite ignores ON DELETE CASCADE / RESTRICT unless this is set per connection.
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _build_engine(db_url: str):
    """Build a SQLAlchemy engine.  In-memory SQLite shares one connection
    across threads so every session sees the same database."""

    if "sqlite" in db_url:
        if db_url in ("sqlite://", "sqlite:///:memory:"):
            engine = create_engine(
                db_url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            engine = create_engine(db_url, connect_args={"check_same_thread": False}, pool_pre_ping=True)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    logger.info("Using database backend %s", db_url.split(":", 1)[0])
    return create_engine(db_url, pool_pre_ping=True)


engine = _build_engine(DATABASE_URL)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db():
    """FastAPI dependency that yields a DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create all tables."""
    import models  # noqa: F401 – registers models with Base
    Base.metadata.create_all(bind=engine)


def commit_update(db, model, ident, label: str):
    """Commit pending changes to a versioned row.

    A stale version means either the row vanished (NotFound) or another
    request changed it first (PersistenceFailure, caller re-fetches and retries).
    """
    try:
        db.commit()
    except StaleDataError:
        db.rollback()
        if db.get(model, ident) is None:
            raise NotFoundError(f"{label} {ident} not found.")
        logger.warning("Concurrency conflict updating %s %s", label, ident)
        raise PersistenceFailure(
            f"The {label} was modified by another request. Please refresh and try again."
        )
