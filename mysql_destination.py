"""
MySQL destination helpers: connection, preflight introspection, constraint
toggling and single-row inserts.
"""
from contextlib import contextmanager
from typing import Any, Dict, List, Sequence

import pymysql
from pymysql.constants import ER

from migration_errors import DestinationUnavailable
from migration_log import log, log_error

# Insert error kinds
DUPLICATE = 'duplicate'
ROW_ERROR = 'row'
FATAL = 'fatal'

# Client-side error codes (CR_*) mean the connection itself is gone
CLIENT_ERROR_RANGE = range(2000, 3000)

# Server errors that roll back the whole open transaction, not just the statement
TRANSACTION_ROLLBACK_ERRORS = (ER.LOCK_DEADLOCK, ER.LOCK_WAIT_TIMEOUT)


def get_connection(config: Dict[str, Any]):
    """Create a destination connection and check that it answers."""
    try:
        connection = pymysql.connect(**config)
    except pymysql.Error as e:
        raise DestinationUnavailable(f"Failed to connect to MySQL: {e}") from e

    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
    except pymysql.Error as e:
        connection.close()
        raise DestinationUnavailable(f"MySQL connection check failed: {e}") from e

    return connection


def quote_identifier(name: str) -> str:
    return '`' + name.replace('`', '``') + '`'


def build_insert_statement(table_name: str, columns: Sequence[str]) -> str:
    columns_str = ', '.join(quote_identifier(col) for col in columns)
    placeholders = ', '.join(['%s'] * len(columns))
    return f"INSERT INTO {quote_identifier(table_name)} ({columns_str}) VALUES ({placeholders})"


def error_code(error: Exception) -> int:
    if error.args and isinstance(error.args[0], int):
        return error.args[0]
    return 0


def classify_insert_error(error: pymysql.Error) -> str:
    """
    Decide how an insert failure is handled.

    DUPLICATE and ROW_ERROR skip the row; FATAL ends the run.
    """
    code = error_code(error)
    if isinstance(error, pymysql.err.IntegrityError) and code == ER.DUP_ENTRY:
        return DUPLICATE
    if isinstance(error, pymysql.err.InterfaceError):
        return FATAL
    if isinstance(error, pymysql.err.OperationalError) and code in CLIENT_ERROR_RANGE:
        return FATAL
    if code in TRANSACTION_ROLLBACK_ERRORS:
        return FATAL
    return ROW_ERROR


def insert_row(connection, statement: str, values: List[Any]):
    with connection.cursor() as cursor:
        cursor.execute(statement, values)


def get_destination_tables(connection) -> Dict[str, bool]:
    """
    Map each table in the destination schema to whether it has a PRIMARY KEY
    or UNIQUE constraint (without one, duplicate rows cannot be detected).
    """
    with connection.cursor() as cursor:
        cursor.execute("""
            SELECT t.TABLE_NAME AS table_name,
                   COUNT(c.CONSTRAINT_NAME) AS unique_keys
            FROM information_schema.TABLES t
            LEFT JOIN information_schema.TABLE_CONSTRAINTS c
                ON c.TABLE_SCHEMA = t.TABLE_SCHEMA
                AND c.TABLE_NAME = t.TABLE_NAME
                AND c.CONSTRAINT_TYPE IN ('PRIMARY KEY', 'UNIQUE')
            WHERE t.TABLE_SCHEMA = DATABASE()
              AND t.TABLE_TYPE = 'BASE TABLE'
            GROUP BY t.TABLE_NAME
        """)
        return {row['table_name']: row['unique_keys'] > 0 for row in cursor.fetchall()}


def disable_mysql_constraints(connection):
    with connection.cursor() as cursor:
        cursor.execute("SET FOREIGN_KEY_CHECKS = 0")
        cursor.execute("SET UNIQUE_CHECKS = 0")
        cursor.execute("SET AUTOCOMMIT = 0")
    log("Disabled MySQL constraints")


def enable_mysql_constraints(connection):
    with connection.cursor() as cursor:
        cursor.execute("SET FOREIGN_KEY_CHECKS = 1")
        cursor.execute("SET UNIQUE_CHECKS = 1")
    connection.commit()
    log("Re-enabled MySQL constraints")


@contextmanager
def constraints_disabled(connection, dry_run: bool = False):
    """
    Disable foreign key and unique checks and autocommit for the duration of
    the block, then restore them and commit, whether or not the block raised.
    Nothing is sent to the destination in a dry run.
    """
    if dry_run:
        yield
        return

    disable_mysql_constraints(connection)
    try:
        yield
    except BaseException:
        try:
            enable_mysql_constraints(connection)
        except pymysql.Error as e:
            log_error(f"Could not re-enable MySQL constraints: {e}")
        raise
    enable_mysql_constraints(connection)
