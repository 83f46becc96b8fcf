"""Base model configuration."""
import logging
import sqlite3
from contextlib import contextmanager
from datetime import UTC, datetime
from functools import wraps
from typing import Callable, Generator, Iterator

from sqlalchemy import Column, DateTime, create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from wordreview.config import settings
from wordreview.exceptions import StorageError
from wordreview.monitoring import db_errors

logger = logging.getLogger(__name__)

# Create SQLAlchemy engine
engine = create_engine(settings.database.url, echo=settings.database.echo)


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    """Enforce foreign keys on SQLite connections."""
    if not isinstance(dbapi_connection, sqlite3.Connection):
        return
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Create declarative base class
Base = declarative_base()


class TimestampMixin:
    """Mixin to add timestamp columns to models."""
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(UTC))
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )


def get_db() -> Generator[Session, None, None]:
    """Get database session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _storage_failure(db: Session, e: SQLAlchemyError) -> StorageError:
    db.rollback()
    db_errors.labels(error_type=type(e).__name__).inc()
    logger.error("Database operation failed, session rolled back: %s", e)
    return StorageError(f"Database operation failed: {e}")


@contextmanager
def storage_errors(db: Session) -> Iterator[Session]:
    """Surface database failures inside the block as StorageError."""
    try:
        yield db
    except SQLAlchemyError as e:
        raise _storage_failure(db, e) from e


@contextmanager
def transaction(db: Session) -> Iterator[Session]:
    """Commit everything done on the session inside the block, or nothing.

    Database failures are rolled back and surfaced as StorageError; any other
    exception is rolled back and re-raised unchanged.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        raise _storage_failure(db, e) from e
    except Exception:
        db.rollback()
        raise


def storage_guarded(method: Callable) -> Callable:
    """Run a method of an object holding `self.db` under `storage_errors`."""

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        with storage_errors(self.db):
            return method(self, *args, **kwargs)

    return wrapper


def init_db() -> None:
    """Initialize database."""
    # Register the tables on Base.metadata before creating them
    import wordreview.models.models  # noqa: F401

    Base.metadata.create_all(bind=engine)  # Create tables if they don't exist
