"""
Migration configuration.

Values are read from the environment (a local .env file is loaded first) and
can be overridden from the command line in migrate_sqlite_to_mysql.py.

Environment variables:
    SOURCE_SQLITE_PATH    - Path to source SQLite database (default: storage/production.sqlite3)
    BATCH_SIZE            - Number of rows read per page (default: 1000)
    DRY_RUN               - 'true' to preview without writing to MySQL
    WRITE_DB_HOST         - MySQL host (default: 127.0.0.1)
    WRITE_DB_PORT         - MySQL port (default: 3306)
    WRITE_DB_USER         - MySQL user (default: root)
    WRITE_DB_PASSWORD     - MySQL password (required unless DRY_RUN)
    WRITE_DB_NAME         - MySQL database (default: fizzy_production)
    TABLE_ORDER           - Comma-separated table order (overrides the built-in list)
    SKIP_TABLES           - Comma-separated tables to skip (overrides the built-in list)
    MAX_ROW_ERRORS_SHOWN  - Row errors printed per table before suppressing (default: 5)
"""
import os
from typing import Any, Dict, List, Optional

import pymysql
from dotenv import load_dotenv

from migration_errors import ConfigurationError

# Load environment variables
load_dotenv()

TRUE_VALUES = ('true', '1', 'yes')

# Tables to migrate in order (respecting foreign key dependencies)
DEFAULT_TABLE_ORDER = [
    'account_external_id_sequences',
    'accounts',
    'identities',
    'users',
    'account_join_codes',
    'account_cancellations',
    'boards',
    'columns',
    'tags',
    'cards',
    'card_tags',
    'comments',
    'events',
    'accesses',
    'attachments',
    'action_text_rich_texts',
    'active_storage_blobs',
    'active_storage_attachments',
    'notifications',
    'notification_identities',
    'search_records',
    'webhooks',
    'account_exports',
    'account_imports',
]

# Schema bookkeeping and job queue tables are never copied
DEFAULT_SKIP_TABLES = [
    'schema_migrations',
    'ar_internal_metadata',
    'solid_queue_jobs',
    'solid_queue_recurring_tasks',
    'solid_queue_scheduled_executions',
    'solid_queue_processes',
    'solid_queue_pauses',
]


def parse_table_list(value: Optional[str]) -> List[str]:
    """Split a comma-separated table list, dropping blanks and duplicates."""
    if not value:
        return []
    tables = []
    for name in value.split(','):
        name = name.strip()
        if name and name not in tables:
            tables.append(name)
    return tables


def parse_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value.strip() == '':
        return default
    return value.strip().lower() in TRUE_VALUES


def parse_int_setting(value: Any, name: str, minimum: int) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}")
    if number < minimum:
        raise ConfigurationError(f"{name} must be at least {minimum}, got {number}")
    return number


def parse_batch_size(value: Any) -> int:
    return parse_int_setting(value, "Batch size", 1)


def parse_max_row_errors(value: Any) -> int:
    return parse_int_setting(value, "MAX_ROW_ERRORS_SHOWN", 0)


SOURCE_SQLITE_PATH = os.getenv('SOURCE_SQLITE_PATH', 'storage/production.sqlite3')
BATCH_SIZE = parse_batch_size(os.getenv('BATCH_SIZE', '1000'))
DRY_RUN = parse_bool(os.getenv('DRY_RUN'))
MAX_ROW_ERRORS_SHOWN = parse_max_row_errors(os.getenv('MAX_ROW_ERRORS_SHOWN', '5'))

TABLE_ORDER = parse_table_list(os.getenv('TABLE_ORDER')) or DEFAULT_TABLE_ORDER
SKIP_TABLES = parse_table_list(os.getenv('SKIP_TABLES')) or DEFAULT_SKIP_TABLES

# Destination database configuration (WRITE)
WRITE_CONFIG = {
    'host': os.getenv('WRITE_DB_HOST', '127.0.0.1'),
    'port': int(os.getenv('WRITE_DB_PORT', 3306)),
    'user': os.getenv('WRITE_DB_USER', 'root'),
    'password': os.getenv('WRITE_DB_PASSWORD', ''),
    'database': os.getenv('WRITE_DB_NAME', 'fizzy_production'),
    'charset': 'utf8mb4',
    'cursorclass': pymysql.cursors.DictCursor
}


def build_write_config(host: str = None, port: int = None, user: str = None,
                       password: str = None, database: str = None) -> Dict[str, Any]:
    """Return a copy of WRITE_CONFIG with any given values overriding it."""
    config = WRITE_CONFIG.copy()
    overrides = {
        'host': host,
        'port': port,
        'user': user,
        'password': password,
        'database': database,
    }
    config.update({key: value for key, value in overrides.items() if value is not None})
    return config


def validate_config(write_config: Dict[str, Any], dry_run: bool):
    """Check that a live run has the destination credentials it needs."""
    if dry_run:
        return

    missing = [key for key in ('host', 'user', 'password', 'database') if not write_config.get(key)]
    if missing:
        raise ConfigurationError(
            f"Missing MySQL settings: {', '.join(missing)}. "
            "Set the WRITE_DB_* variables in your .env file or pass them on the command line."
        )
