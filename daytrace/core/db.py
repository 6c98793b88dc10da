"""
SQLite database wrapper
Provides basic operations like connection, query, insert, update
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from daytrace.core.logger import get_logger
from daytrace.core.sqls import schema

logger = get_logger(__name__)


class StoreWriteError(Exception):
    """A write to the store failed; the current pipeline step must stop"""


class DatabaseManager:
    """Database manager"""

    def __init__(self, db_path: Optional[str] = None):
        if db_path is None:
            from daytrace.config.loader import get_config_dir

            db_path = str(get_config_dir() / "daytrace.db")

        self.db_path = db_path
        self._init_database()

    def _init_database(self):
        """Initialize database"""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

        self._create_tables()
        logger.info(f"Database initialization completed: {self.db_path}")

    def _create_tables(self):
        """Create database tables"""
        with self.get_connection() as conn:
            cursor = conn.cursor()

            for table_sql in schema.ALL_TABLES:
                cursor.execute(table_sql)

            for index_sql in schema.ALL_INDEXES:
                cursor.execute(index_sql)

            conn.commit()
            logger.debug("Database table creation completed")

    @contextmanager
    def get_connection(self):
        """Get database connection context manager"""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row  # Enable column name access for results
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self):
        """Connection that commits on success and rolls back on any error"""
        with self.get_connection() as conn:
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise

    def execute_query(self, query: str, params: Tuple = ()) -> List[Dict[str, Any]]:
        """Execute query and return results"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            rows = cursor.fetchall()
            return [dict(row) for row in rows]

    def execute_insert(self, query: str, params: Tuple = ()) -> int:
        """Execute insert operation and return inserted ID"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            conn.commit()
            return cursor.lastrowid or 0

    def execute_update(self, query: str, params: Tuple = ()) -> int:
        """Execute update operation and return affected row count"""
        with self.get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            conn.commit()
            return cursor.rowcount


# Global database manager instance
db_manager: Optional[DatabaseManager] = None


def get_db() -> DatabaseManager:
    """Get database manager instance

    Read database path from database.path in config.toml,
    use <config dir>/daytrace.db if not configured
    """
    global db_manager
    if db_manager is None:
        from daytrace.config.loader import get_config

        config = get_config()
        configured_path = config.get("database.path", "")

        if configured_path and str(configured_path).strip():
            db_manager = DatabaseManager(str(Path(configured_path).expanduser()))
        else:
            db_manager = DatabaseManager()
        logger.info(f"✓ Database manager initialized, path: {db_manager.db_path}")

    return db_manager


def reset_db() -> None:
    """Drop the global manager so the next get_db() re-reads config"""
    global db_manager
    db_manager = None
