"""
Database connection management for formspace_core.

Provides:
- DatabaseManager: Async connection manager (Cloud SQL + direct URL)
- db: Global singleton instance
- get_session: FastAPI dependency injection helper
"""

from formspace_core.db.config import DatabaseConfig, get_db_config
from formspace_core.db.connection import DatabaseManager, db, get_session

__all__ = [
    "DatabaseConfig",
    "get_db_config",
    "DatabaseManager",
    "db",
    "get_session",
]
