"""
Database connection management.

Provides the SQLite connection used to persist cached reports.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = ".usage-monitor.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Create and return a SQLite connection.

    Args:
        db_path: Path to SQLite database file; ``~`` is expanded and missing
            parent directories are created

    Returns:
        SQLite connection
    """
    path = Path(db_path).expanduser()
    if str(path) != ":memory:":
        path.parent.mkdir(parents=True, exist_ok=True)
    return sqlite3.connect(str(path))
