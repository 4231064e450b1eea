"""Database layer for cambio application."""

from cambio.database.base import Database
from cambio.database.factories import create_sqlite_database

__all__ = ["Database", "create_sqlite_database"]
