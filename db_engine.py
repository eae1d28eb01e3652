"""
Database engine and session management for Dealbook.
Uses SQLModel; SQLite databases run in Write-Ahead Logging (WAL) mode
with a busy timeout taken from the store timeout setting.
"""

from sqlmodel import SQLModel, Session, create_engine
from typing import Optional
import logging

from config import get_settings

logger = logging.getLogger(__name__)

# Global engine instance
_engine: Optional[object] = None


def get_engine():
    """Get or create the database engine."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.is_sqlite:
            connect_args = {
                "check_same_thread": False,  # Streamlit reruns hop threads
                "timeout": settings.store_timeout_seconds,
            }
        _engine = create_engine(
            settings.database_url,
            echo=settings.db_echo,
            connect_args=connect_args
        )
        if settings.is_sqlite:
            _enable_wal_mode(settings.store_timeout_seconds)
    return _engine


def _enable_wal_mode(timeout_seconds: float):
    """Enable SQLite WAL mode and the busy timeout."""
    if _engine is None:
        return

    try:
        with _engine.connect() as conn:
            conn.exec_driver_sql("PRAGMA journal_mode=WAL")
            conn.exec_driver_sql(f"PRAGMA busy_timeout={int(timeout_seconds * 1000)}")
            logger.info("SQLite WAL mode enabled")
    except Exception as e:
        logger.warning(f"Could not enable WAL mode: {e}")


def reset_engine():
    """Dispose of the current engine so the next call picks up fresh settings."""
    global _engine
    if _engine is not None:
        _engine.dispose()
    _engine = None


def init_db():
    """Initialize the database and create all tables."""
    from models import Deal, UserAccount  # noqa: F401 - registers tables

    engine = get_engine()
    SQLModel.metadata.create_all(engine)
    logger.info("Database initialized")


def get_session():
    """Get a new database session."""
    return Session(get_engine())
