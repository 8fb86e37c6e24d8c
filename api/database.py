"""
Database connection management for the API.

Provides a get_db() dependency that opens a per-request SQLite connection and
closes it after the response is sent.  The database path is resolved once at
startup from the APP_DB_PATH environment variable (default:
enforcement.sqlite) and may be overridden by ``create_app(db_path=...)``.

The engine and event bus live on ``app.state``; get_engine() and get_bus()
hand them to routes the same way get_db() hands out connections.
"""

import os
import sqlite3
from collections.abc import Generator
from pathlib import Path

from fastapi import HTTPException, Request

from enforcement.events import EventBus
from enforcement.repository import init_schema
from enforcement.stats import OffenderStatsEngine
from utils.database import connect

_DB_PATH: Path = Path(os.getenv("APP_DB_PATH", "enforcement.sqlite"))


def get_db_path() -> Path:
    """Return the configured database path."""
    return _DB_PATH


def set_db_path(db_path: Path) -> None:
    global _DB_PATH
    _DB_PATH = Path(db_path)


def ensure_schema(db_path: Path | None = None) -> None:
    """Create the enforcement tables in *db_path* if they do not exist yet."""
    path = Path(db_path or _DB_PATH)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = connect(path)
    try:
        init_schema(conn)
    finally:
        conn.close()


def get_db() -> Generator[sqlite3.Connection, None, None]:
    """FastAPI dependency: yield a SQLite connection, close on exit.

    Raises HTTP 503 with a friendly message if the database file is missing,
    instead of a cryptic SQLite error.

    Usage in a route::

        from api.database import get_db
        from fastapi import Depends

        @router.get("/example")
        def example(conn=Depends(get_db)):
            ...
    """
    if not _DB_PATH.exists():
        raise HTTPException(
            status_code=503,
            detail=f"Database not found at '{_DB_PATH}'.",
        )
    conn = connect(_DB_PATH)
    try:
        yield conn
    finally:
        conn.close()


def get_engine(request: Request) -> OffenderStatsEngine:
    return request.app.state.engine


def get_bus(request: Request) -> EventBus:
    return request.app.state.bus
