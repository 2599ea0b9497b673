"""
Database connection management.

Remote-mode services reach the relational backend through this module:
one engine, one session factory, and a transactional scope per service call.
SQLite URLs are supported for development and tests.
"""
from contextlib import contextmanager
from typing import Callable, Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)

Base = declarative_base()


def build_engine(url: str) -> Engine:
    """Create an engine for ``url`` with pooling suited to the dialect."""
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in url or url == "sqlite://":
            # A single shared connection keeps the in-memory database alive
            kwargs["poolclass"] = StaticPool
        eng = create_engine(url, echo=settings.DEBUG, **kwargs)

        @event.listens_for(eng, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return eng

    return create_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_pre_ping=True,  # Verify connections before using
        echo=settings.DEBUG,
    )


engine = build_engine(settings.DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Prevent lazy loading issues
)

SessionFactory = Callable[[], Session]


@contextmanager
def session_scope(factory: SessionFactory = SessionLocal) -> Iterator[Session]:
    """
    Transactional scope around a unit of work.

    Commits when the block exits cleanly, rolls back on any error and
    always returns the connection to the pool.
    """
    db = factory()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        # Domain errors are expected control flow, only log real database failures
        from core.exceptions import ServiceError
        if not isinstance(e, ServiceError):
            logger.error(f"Database transaction error: {e}")
        raise
    finally:
        db.close()


def init_db(bind: Engine = None) -> None:
    """Create all tables that do not exist yet."""
    import models  # noqa: F401  registers the mappers on Base.metadata

    Base.metadata.create_all(bind=bind or engine)


def check_db_connection(bind: Engine = None) -> bool:
    """
    Check if database connection is healthy.

    Returns:
        True if connection is healthy, False otherwise
    """
    try:
        with (bind or engine).connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database connection check failed: {e}")
        return False
