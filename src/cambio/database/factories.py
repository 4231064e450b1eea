"""Database factory functions for creating database instances."""

from pathlib import Path
from typing import Optional

from cambio.config import Settings, load_settings
from cambio.database.sqlalchemy_db import SQLAlchemyDatabase

DEFAULT_DB_DIR = ".cambio"
DEFAULT_DB_NAME = "cambio.db"


def default_database_path() -> Path:
    """Return ~/.cambio/cambio.db, creating its directory if needed."""
    db_dir = Path.home() / DEFAULT_DB_DIR
    db_dir.mkdir(exist_ok=True)
    return db_dir / DEFAULT_DB_NAME


def create_sqlite_database(
    database_path: Optional[str] = None, settings: Optional[Settings] = None
) -> SQLAlchemyDatabase:
    """Create a SQLite database instance.

    Args:
        database_path: Path to SQLite database file. Takes precedence over settings.
        settings: Runtime settings to read ``database_path`` from when no explicit
            path is given. Loaded from the environment when omitted.

    Returns:
        SQLAlchemyDatabase instance configured for SQLite
    """
    if database_path is None:
        database_path = (settings or load_settings()).database_path
    if database_path is None:
        database_path = str(default_database_path())

    return SQLAlchemyDatabase(f"sqlite:///{database_path}")
