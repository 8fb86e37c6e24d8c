"""SQLite helpers shared by the repository and the API.

Every connection handed out by :func:`connect` returns ``sqlite3.Row``
rows, enforces foreign keys, and (for on-disk files) runs in WAL mode so the
API's readers are not blocked while a case or notice is being written.
"""

import sqlite3
from pathlib import Path
from typing import Any, Dict, List

MEMORY = ":memory:"


def init_pragmas(conn: sqlite3.Connection) -> None:
    """Apply the pragmas used for the on-disk enforcement store.

    - journal_mode=WAL: concurrent readers during a write
    - synchronous=NORMAL: safe with WAL, fewer fsyncs
    - foreign_keys=ON: cases and notices must point at a real offender
    - busy_timeout: wait for the writer instead of failing immediately
    """
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA synchronous=NORMAL")
    conn.execute("PRAGMA foreign_keys=ON")
    conn.execute("PRAGMA busy_timeout=5000")


def connect(db_path: Path | str) -> sqlite3.Connection:
    """Open a connection to *db_path* (or ``":memory:"``)."""
    target = str(db_path)
    conn = sqlite3.connect(target, check_same_thread=False, timeout=10)
    conn.row_factory = sqlite3.Row
    if target == MEMORY:
        # WAL is meaningless for an in-memory database
        conn.execute("PRAGMA foreign_keys=ON")
    else:
        init_pragmas(conn)
    return conn


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    row = conn.execute(
        "SELECT 1 FROM sqlite_master WHERE type='table' AND name=?", (table,)
    ).fetchone()
    return row is not None


def get_table_count(conn: sqlite3.Connection, table: str) -> int:
    """Row count of *table*, or 0 when the table has not been created yet.

    The table name is checked against ``sqlite_master`` before it is
    interpolated into the query.
    """
    if not table_exists(conn, table):
        return 0
    (count,) = conn.execute(f'SELECT COUNT(*) FROM "{table}"').fetchone()
    return count


def query_to_dicts(conn: sqlite3.Connection, query: str,
                   params: tuple | list = ()) -> List[Dict[str, Any]]:
    """Run *query* and return each row as a plain dict keyed by column name."""
    return [dict(row) for row in conn.execute(query, tuple(params))]
