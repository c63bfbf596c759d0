"""Local SQLite storage for IHHT sessions."""

from ihht.database.session import cleanup_database, init_database, session_scope
from ihht.database.sink import DatabaseSink, count_completed_sessions

__all__ = [
    "DatabaseSink",
    "cleanup_database",
    "count_completed_sessions",
    "init_database",
    "session_scope",
]
