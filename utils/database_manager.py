"""
Database Management Utilities

Connection testing, database information and schema checks used by the
``database_commands.py`` command line tool.
"""

import os
import logging
from typing import Optional, Dict, Any, List, Tuple
from sqlalchemy import func, inspect, select, text
from sqlalchemy.exc import SQLAlchemyError
from app import db
from timezone_utils import get_local_time

logger = logging.getLogger(__name__)


def _masked_url(url) -> str:
    """Database URL with the credentials hidden"""
    url = str(url)
    if '@' in url:
        return url.split('://', 1)[0] + '://***@' + url.split('@', 1)[1]
    return url


class DatabaseManager:
    """
    Health and schema checks over the application's engine.
    Must be used inside an application context.
    """

    def test_connection(self) -> Tuple[bool, Optional[str]]:
        """
        Test database connection and return status.

        Returns:
            Tuple[bool, Optional[str]]: (success, error_message)
        """
        try:
            with db.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
            logger.info("Database connection test: SUCCESS")
            return True, None
        except SQLAlchemyError as e:
            error_msg = f"Database connection failed: {str(e)}"
            logger.error(error_msg)
            return False, error_msg

    def get_database_info(self) -> Dict[str, Any]:
        """Engine, version and per-table record counts"""
        info = {
            'engine_info': _masked_url(db.engine.url),
            'database_url_configured': bool(os.environ.get('DATABASE_URL')),
            'timestamp': get_local_time().isoformat(),
            'connection_successful': False,
        }

        try:
            with db.engine.connect() as conn:
                if db.engine.dialect.name == 'postgresql':
                    info['database_version'] = conn.execute(text("SELECT version()")).scalar()
                    info['database_size'] = conn.execute(
                        text("SELECT pg_size_pretty(pg_database_size(current_database()))")
                    ).scalar()
                elif db.engine.dialect.name == 'sqlite':
                    info['database_version'] = f"SQLite {conn.execute(text('SELECT sqlite_version()')).scalar()}"
                    db_path = db.engine.url.database
                    if db_path and os.path.exists(db_path):
                        info['database_size'] = f"{os.path.getsize(db_path) / (1024 * 1024):.2f} MB"

                existing = set(inspect(db.engine).get_table_names())
                info['table_count'] = len(existing)
                info['table_statistics'] = {
                    table.name: conn.execute(select(func.count()).select_from(table)).scalar()
                    for table in db.metadata.sorted_tables if table.name in existing
                }
            info['connection_successful'] = True
        except SQLAlchemyError as e:
            logger.error(f"Error getting database info: {str(e)}")
            info['error'] = str(e)

        return info

    def validate_schema_integrity(self) -> Tuple[bool, List[str]]:
        """
        Compare the live schema with the models.

        Returns:
            Tuple[bool, List[str]]: (is_valid, list_of_issues)
        """
        issues = []
        try:
            inspector = inspect(db.engine)
            existing = set(inspector.get_table_names())
            for table in db.metadata.sorted_tables:
                if table.name not in existing:
                    issues.append(f"Missing required table: {table.name}")
                    continue
                live_columns = {column['name'] for column in inspector.get_columns(table.name)}
                for column in table.columns:
                    if column.name not in live_columns:
                        issues.append(f"Missing column: {table.name}.{column.name}")
        except SQLAlchemyError as e:
            issues.append(f"Schema inspection failed: {str(e)}")

        if issues:
            logger.warning(f"Schema validation found {len(issues)} issues")
        return not issues, issues


database_manager = DatabaseManager()
