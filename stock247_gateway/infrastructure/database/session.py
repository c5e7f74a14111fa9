"""Database session management with connection pooling"""

import logging
from contextlib import contextmanager
from typing import Callable, Iterator
from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from stock247_gateway.config import settings
from stock247_gateway.domain.exceptions import PersistenceError

# Connection pool: max 20 connections, recycle after 1 hour to avoid stale connections
engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,  # Verify connections before using
    pool_size=10,
    max_overflow=10,
    pool_recycle=3600,
)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db() -> Session:
    """Dependency injection for database sessions"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory() -> Callable[[], Session]:
    """Session factory for work that outlives the request (background tasks)"""
    return SessionLocal


@contextmanager
def committing(db: Session, failure_message: str) -> Iterator[Session]:
    """Commit on success; roll back on any error, surfacing database errors as PersistenceError"""
    try:
        yield db
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logging.error(f"{failure_message}: {e}")
        raise PersistenceError(failure_message) from e
    except Exception:
        db.rollback()
        raise
