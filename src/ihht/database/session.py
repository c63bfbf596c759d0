"""Database engine and session management."""

import logging
import threading

from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from ihht.constants import DEFAULT_DATABASE_PATH
from ihht.database.models import Base

logger = logging.getLogger(__name__)

_engine: Engine | None = None
_SessionFactory: sessionmaker[Session] | None = None
_database_path: str | None = None
_init_lock = threading.Lock()


def init_database(database_path: str | None = None) -> None:
    """
    Open the SQLite database and create missing tables.

    Calling this again while a database is open is a no-op; a different path
    is logged and ignored until cleanup_database() closes the open one.

    Args:
        database_path: Path to the SQLite file, defaults to ~/.ihht/ihht.db

    Raises:
        ValueError: If database_path is empty
        PermissionError: If the parent directory cannot be created
    """
    global _engine, _SessionFactory, _database_path

    with _init_lock:
        if database_path is None:
            database_path = DEFAULT_DATABASE_PATH

        if _engine is not None and _SessionFactory is not None:
            if database_path != _database_path:
                logger.warning(
                    f"Database already open at {_database_path}, "
                    f"ignoring request for {database_path}"
                )
            return

        if not database_path:
            raise ValueError("Database path must not be empty")

        parent = Path(database_path).parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise PermissionError(
                f"Cannot create database directory {parent}: {e}"
            ) from e

        engine = create_engine(
            f"sqlite:///{database_path}",
            echo=False,
            connect_args={"check_same_thread": False},
        )

        @event.listens_for(engine, "connect")
        def set_sqlite_pragma(dbapi_conn: Any, connection_record: Any) -> None:
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        Base.metadata.create_all(engine)
        _engine = engine
        _SessionFactory = sessionmaker(bind=engine)
        _database_path = database_path
        logger.debug(f"Database ready at {database_path}")


def get_session() -> Session:
    """
    Get a new database session.

    Raises:
        RuntimeError: If the database has not been initialized
    """
    if _SessionFactory is None:
        raise RuntimeError("Database not initialized. Call init_database() first.")
    return _SessionFactory()


@contextmanager
def session_scope() -> Generator[Session]:
    """
    Transactional scope: commits on success, rolls back on error.

    Yields:
        A database session
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def cleanup_database() -> None:
    """Dispose of the engine and reset module state."""
    global _engine, _SessionFactory, _database_path

    with _init_lock:
        if _engine is not None:
            _engine.dispose()
            _engine = None
        _SessionFactory = None
        _database_path = None
