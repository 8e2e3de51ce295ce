"""Database connection pool and startup migration for PostgreSQL."""

from contextlib import contextmanager
from pathlib import Path
from typing import Generator, List, Optional

import psycopg2
from psycopg2.pool import ThreadedConnectionPool

from common.logging_config import get_logger
from controller.config import API_TIMEOUT_SECONDS, DATABASE_POOL_MAX_CONNECTIONS, MIGRATION_PATH, get_database_url
from controller.exceptions import ConfigurationError, MigrationError

logger = get_logger(__name__)

_pool: Optional[ThreadedConnectionPool] = None


def init_database(database_url: Optional[str] = None) -> None:
    """
    Create the connection pool.

    Args:
        database_url: Connection URL; built from the environment when omitted

    Raises:
        ConfigurationError: If the database cannot be reached
    """
    global _pool

    if database_url is None:
        database_url = get_database_url()

    logger.info("database connecting...")
    try:
        _pool = ThreadedConnectionPool(
            1,
            DATABASE_POOL_MAX_CONNECTIONS,
            database_url,
            connect_timeout=API_TIMEOUT_SECONDS,
            options=f"-c statement_timeout={int(API_TIMEOUT_SECONDS * 1000)}"
        )
    except psycopg2.Error as e:
        raise ConfigurationError(f"unable to connect to database: {e}") from e


def close_database() -> None:
    """Close every pooled connection."""
    global _pool

    if _pool is not None:
        logger.info("shutting down database connection")
        _pool.closeall()
        _pool = None


@contextmanager
def get_db_connection() -> Generator[psycopg2.extensions.connection, None, None]:
    """
    Context manager that borrows a connection from the pool.

    The transaction is rolled back if the block raises; callers commit.
    """
    if _pool is None:
        raise ConfigurationError("database is not initialized")

    conn = _pool.getconn()
    try:
        yield conn
    except Exception:
        conn.rollback()
        raise
    finally:
        _pool.putconn(conn)


def split_statements(sql_text: str) -> List[str]:
    """
    Split a migration script on statement terminators.

    Returns:
        Non-empty, whitespace-trimmed statements in file order
    """
    statements = []
    for statement in sql_text.split(";"):
        statement = statement.strip()
        if statement:
            statements.append(statement)
    return statements


def run_migrations(path: str = MIGRATION_PATH) -> int:
    """
    Execute the startup migration script statement by statement.

    Args:
        path: Path to the SQL script

    Returns:
        Number of statements executed

    Raises:
        MigrationError: If the script cannot be read or any statement fails
    """
    try:
        sql_text = Path(path).read_text()
    except OSError as e:
        raise MigrationError(f"unable to read migration file {path}: {e}") from e

    statements = split_statements(sql_text)

    with get_db_connection() as conn:
        cursor = conn.cursor()
        for statement in statements:
            try:
                cursor.execute(statement)
            except psycopg2.Error as e:
                raise MigrationError(f"migration statement failed: {e}") from e
        conn.commit()

    logger.info("database migration completed...")
    return len(statements)
