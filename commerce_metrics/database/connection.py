"""
Database Connection Management

Synchronous SQLAlchemy 2.0 engine and session handling for the History
Store. Sessions commit on success and roll back on any error, so a failed
write leaves stored rows untouched.
"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

import structlog
from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from commerce_metrics.config import get_settings
from commerce_metrics.database.models import Base

logger = structlog.get_logger(__name__)
settings = get_settings()

# Global engine and session factory
_engine: Optional[Engine] = None
_session_factory: Optional[sessionmaker] = None


def _is_memory_sqlite(url: str) -> bool:
    if not url.startswith("sqlite"):
        return False
    return ":memory:" in url or url.partition("://")[2] == ""


def build_engine(url: str, echo: bool = False) -> Engine:
    """
    Create an engine for the given URL.

    In-memory SQLite shares one connection across sessions so every session
    sees the same database.
    """
    engine_config = {
        "echo": echo,
        "pool_pre_ping": settings.database.pool_pre_ping,
    }
    if _is_memory_sqlite(url):
        engine_config.update({
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        })
    return create_engine(url, **engine_config)


def build_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, class_=Session, expire_on_commit=False, autoflush=False)


def init_database(url: Optional[str] = None) -> Engine:
    """
    Initialize the History Store database and create its tables.

    Returns:
        Engine: The initialized database engine
    """
    global _engine, _session_factory

    if _engine is not None:
        logger.warning("Database already initialized")
        return _engine

    url = url or settings.database.url
    _engine = build_engine(url, echo=settings.database.echo)
    _session_factory = build_session_factory(_engine)

    try:
        Base.metadata.create_all(_engine)
        with _engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        logger.info("Database connection established", url=_engine.url.render_as_string(hide_password=True))
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        _engine.dispose()
        _engine = None
        _session_factory = None
        raise

    return _engine


def close_database() -> None:
    """Dispose the engine and its pooled connections"""
    global _engine, _session_factory

    if _engine is not None:
        _engine.dispose()
        _engine = None
        _session_factory = None
        logger.info("Database connection pool closed")


def get_engine() -> Engine:
    if _engine is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _engine


def get_session_factory() -> sessionmaker:
    if _session_factory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _session_factory


@contextmanager
def get_db(session_factory: Optional[sessionmaker] = None) -> Iterator[Session]:
    """
    Database session scope.

    Commits when the block completes, rolls back and re-raises on error.

    Example:
        with get_db() as db:
            db.execute(query)
    """
    factory = session_factory or get_session_factory()
    session = factory()
    try:
        yield session
        session.commit()
    except Exception as e:
        logger.error("Database session error, rolling back", error=str(e), error_type=type(e).__name__)
        session.rollback()
        raise
    finally:
        session.close()


def check_database_health(session_factory: Optional[sessionmaker] = None) -> dict:
    """Health status with round-trip latency"""
    try:
        start = time.perf_counter()
        with get_db(session_factory) as db:
            db.execute(text("SELECT 1"))
        latency_ms = (time.perf_counter() - start) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(latency_ms, 2),
        }
    except Exception as e:
        return {
            "status": "unhealthy",
            "error": str(e),
        }
