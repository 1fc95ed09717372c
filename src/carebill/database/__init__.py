"""Database layer for carebill."""

from carebill.database.base import Database
from carebill.database.factories import create_sqlite_database

__all__ = ["Database", "create_sqlite_database"]
