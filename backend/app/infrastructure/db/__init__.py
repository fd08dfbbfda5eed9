"""
Database Infrastructure Package for Finance Tracker

Exports database utilities.
"""

from app.infrastructure.db.database import (
    DatabaseManager,
    resolve_database_url,
)


__all__ = [
    "DatabaseManager",
    "resolve_database_url",
]
