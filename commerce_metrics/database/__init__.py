"""
Database Module
"""
from .connection import (
    build_engine,
    build_session_factory,
    close_database,
    get_db,
    get_session_factory,
    init_database,
)
from .history_store import HistoryStore, InMemoryHistoryStore, SQLHistoryStore
from .models import Base, PeriodSnapshotRow

__all__ = [
    "build_engine",
    "build_session_factory",
    "close_database",
    "get_db",
    "get_session_factory",
    "init_database",
    "HistoryStore",
    "InMemoryHistoryStore",
    "SQLHistoryStore",
    "Base",
    "PeriodSnapshotRow",
]
