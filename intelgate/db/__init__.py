"""Database package — models, engine, session factory."""

from intelgate.db.database import get_session, get_session_factory, init_db, make_session_factory
from intelgate.db.models import AnalysisJobRow, Base, CacheEntryRow

__all__ = [
    "AnalysisJobRow",
    "Base",
    "CacheEntryRow",
    "get_session",
    "get_session_factory",
    "init_db",
    "make_session_factory",
]
