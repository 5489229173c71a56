#!/usr/bin/env python3
"""
SQLite to MySQL Data Migration Script

Copies every table of a SQLite database into an existing MySQL/MariaDB schema.
The destination tables must already exist; no DDL is issued.

Features:
- Tables are migrated in a declared dependency order, followed by any
  undeclared tables found in the source
- Rows are read in pages (LIMIT/OFFSET) and inserted one at a time with
  parameterized statements
- SQLite values are converted to MySQL encodings (booleans, timestamps)
- Duplicate keys and other row errors are logged and skipped
- Foreign key and unique checks are disabled during the run and always
  re-enabled afterwards
- Dry-run mode (--dry-run) reports row counts without writing anything

Usage:
    python migrate_sqlite_to_mysql.py --dry-run
    python migrate_sqlite_to_mysql.py -s storage/production.sqlite3 -p secret --yes

Configuration is read from the environment / .env file (see migration_config.py).
"""

import argparse
import os
import sqlite3
import sys
import traceback
from contextlib import closing
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence

import pymysql

import migration_config
from migration_errors import MigrationError, SourceDatabaseNotFound
from migration_log import log, log_banner, log_error, log_warning
from mysql_destination import (
    DUPLICATE,
    FATAL,
    build_insert_statement,
    classify_insert_error,
    constraints_disabled,
    get_connection,
    get_destination_tables,
    insert_row,
)
from sqlite_schema import count_rows, decode_text, fetch_rows, get_source_tables, get_table_columns

TIMESTAMP_FORMAT = '%Y-%m-%d %H:%M:%S'


@dataclass
class TableResult:
    """Outcome of migrating one table."""
    table: str
    total_rows: int = 0
    inserted: int = 0
    duplicates: int = 0
    failed: int = 0
    pages: int = 0
    dry_run: bool = False
    skipped_reason: Optional[str] = None

    @property
    def migrated(self) -> int:
        """Rows written, or rows that would be written in a dry run."""
        return self.total_rows if self.dry_run else self.inserted


# ============================================================================
# VALUE CONVERSION
# ============================================================================

def convert_value(value: Any) -> Any:
    """Convert a SQLite value to its MySQL encoding."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float, Decimal)):
        return value
    if isinstance(value, (datetime, date)):
        return value.strftime(TIMESTAMP_FORMAT)
    if isinstance(value, str):
        lowered = value.lower()
        if lowered == 'true':
            return 1
        if lowered == 'false':
            return 0
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        # BLOB columns go through as binary
        return bytes(value)
    return str(value)


def convert_row(row, columns: Sequence[str]) -> List[Any]:
    return [convert_value(row[col]) for col in columns]


# ============================================================================
# TABLE ORDERING
# ============================================================================

def order_tables(discovered: Iterable[str], declared_order: Iterable[str],
                 skip_tables: Iterable[str]) -> List[str]:
    """
    Declared tables that exist in the source come first, in declared order,
    followed by the remaining discovered tables in discovery order. Skipped
    tables never appear.
    """
    discovered = list(dict.fromkeys(discovered))
    available = set(discovered)
    skip = set(skip_tables)

    ordered = []
    for table in declared_order:
        if table in available and table not in skip and table not in ordered:
            ordered.append(table)

    declared = set(ordered)
    ordered.extend(t for t in discovered if t not in declared and t not in skip)
    return ordered


# ============================================================================
# PROGRESS
# ============================================================================

def progress_percent(processed: int, total: int) -> float:
    """Percentage of rows processed, one decimal, clamped to [0, 100]."""
    if total <= 0:
        return 100.0
    return max(0.0, min(round(processed / total * 100, 1), 100.0))


def format_percent(percent: float) -> str:
    return f"{percent:g}%"


# ============================================================================
# TABLE MIGRATION
# ============================================================================

def migrate_table_data(source_conn, dest_conn, table_name: str, columns: List[str],
                       batch_size: int = migration_config.BATCH_SIZE,
                       dry_run: bool = False,
                       max_errors_shown: int = migration_config.MAX_ROW_ERRORS_SHOWN) -> TableResult:
    """
    Copy all rows of one table in pages of batch_size.

    Row-level insert errors are logged and skipped. Errors that mean the
    destination connection is gone are re-raised.
    """
    result = TableResult(table=table_name, dry_run=dry_run)
    result.total_rows = total_rows = count_rows(source_conn, table_name)

    if total_rows == 0:
        log("  Table is empty, skipping...")
        return result

    log(f"  Found {total_rows} rows to migrate")

    if dry_run:
        log(f"  [DRY RUN] Would migrate {total_rows} rows")
        return result

    statement = build_insert_statement(table_name, columns)
    processed = 0
    offset = 0

    while offset < total_rows:
        batch = fetch_rows(source_conn, table_name, columns, offset, batch_size)
        if not batch:
            break
        result.pages += 1

        for row in batch:
            processed += 1
            try:
                insert_row(dest_conn, statement, convert_row(row, columns))
                result.inserted += 1
            except pymysql.Error as e:
                kind = classify_insert_error(e)
                if kind == FATAL:
                    raise
                if kind == DUPLICATE:
                    result.duplicates += 1
                    message = f"  Skipping duplicate record in {table_name} (row {processed}): {e}"
                else:
                    result.failed += 1
                    message = f"  Error inserting record into {table_name} (row {processed}): {e}"

                errors = result.duplicates + result.failed
                if errors <= max_errors_shown:
                    log_error(message)
                    if errors == max_errors_shown:
                        log_warning(f"  (suppressing further row errors for {table_name}...)")

        offset += batch_size
        log(f"  Progress: {processed}/{total_rows} "
            f"({format_percent(progress_percent(processed, total_rows))})")

    log(f"  Migrated {result.inserted} rows")
    if result.duplicates or result.failed:
        log_warning(f"  {table_name}: {result.duplicates} duplicate(s), "
                    f"{result.failed} failed row(s) skipped")
    return result


def migrate_table(source_conn, dest_conn, table_name: str,
                  destination_tables: Optional[Dict[str, bool]],
                  batch_size: int, dry_run: bool, max_errors_shown: int) -> TableResult:
    """Look up a table's columns, check the destination, then copy it."""
    log("")
    log(f"--- Migrating table: {table_name} ---")

    columns = get_table_columns(source_conn, table_name)
    if not columns:
        log_error(f"  Could not determine columns for {table_name}, skipping table")
        return TableResult(table=table_name, dry_run=dry_run, skipped_reason='no columns')
    log(f"  Columns: {', '.join(columns)}")

    if destination_tables is not None:
        if table_name not in destination_tables:
            log_error(f"  Table {table_name} does not exist in the destination, skipping table")
            return TableResult(table=table_name, dry_run=dry_run, skipped_reason='missing in destination')
        if not destination_tables[table_name]:
            log_warning(f"  {table_name} has no PRIMARY KEY or UNIQUE constraint in the destination; "
                        "duplicate rows will not be detected")

    return migrate_table_data(source_conn, dest_conn, table_name, columns,
                              batch_size=batch_size, dry_run=dry_run,
                              max_errors_shown=max_errors_shown)


# ============================================================================
# REPORTING
# ============================================================================

def print_summary(stats: Dict[str, int], dry_run: bool):
    log("")
    log_banner("MIGRATION SUMMARY")

    total = 0
    for table, count in stats.items():
        log(f"  {table}: {count} records")
        total += count

    log('-' * 60)
    log(f"  Total records migrated: {total}")
    log('=' * 60)

    if dry_run:
        log("")
        log("This was a DRY RUN. No data was actually migrated.")
        log("To perform the actual migration, run without --dry-run / DRY_RUN=true")


# ============================================================================
# ORCHESTRATION
# ============================================================================

def validate_source(source_path: str):
    if not os.path.isfile(source_path):
        raise SourceDatabaseNotFound(source_path)


def connect_source(source_path: str) -> sqlite3.Connection:
    """Open the SQLite source read-only."""
    uri = Path(source_path).resolve().as_uri() + '?mode=ro'
    connection = sqlite3.connect(uri, uri=True)
    connection.text_factory = decode_text
    return connection


def run_migration(source_path: str, dest_conn,
                  table_order: Sequence[str] = migration_config.TABLE_ORDER,
                  skip_tables: Sequence[str] = migration_config.SKIP_TABLES,
                  batch_size: int = migration_config.BATCH_SIZE,
                  dry_run: bool = False,
                  max_errors_shown: int = migration_config.MAX_ROW_ERRORS_SHOWN) -> Dict[str, int]:
    """
    Migrate every table of the source into dest_conn and return the
    per-table statistics in processing order.

    dest_conn may be None in a dry run.
    """
    validate_source(source_path)

    log("Starting migration from SQLite to MySQL...")
    log(f"Source: {source_path}")
    log(f"Dry run: {dry_run}")
    log('=' * 60)

    stats: Dict[str, int] = {}

    with closing(connect_source(source_path)) as source_conn:
        log("Connected to SQLite database")
        tables = order_tables(get_source_tables(source_conn), table_order, skip_tables)
        log(f"Tables to migrate ({len(tables)}): {', '.join(tables)}")

        destination_tables = None
        if dest_conn is not None and not dry_run:
            destination_tables = get_destination_tables(dest_conn)

        try:
            with constraints_disabled(dest_conn, dry_run=dry_run):
                for table_name in tables:
                    result = migrate_table(source_conn, dest_conn, table_name, destination_tables,
                                           batch_size, dry_run, max_errors_shown)
                    if result.skipped_reason is None:
                        stats[table_name] = result.migrated
        except Exception as e:
            log_error(f"Migration failed: {e}")
            log_error(''.join(traceback.format_exception(type(e), e, e.__traceback__)[-10:]))
            raise

    print_summary(stats, dry_run)
    return stats


# ============================================================================
# COMMAND LINE
# ============================================================================

def batch_size_arg(value: str) -> int:
    try:
        return migration_config.parse_batch_size(value)
    except MigrationError as e:
        raise argparse.ArgumentTypeError(str(e))


def parse_args(argv: Optional[List[str]] = None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="SQLite to MySQL Data Migration Tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python migrate_sqlite_to_mysql.py --dry-run
  python migrate_sqlite_to_mysql.py -s storage/production.sqlite3 -p secret
  python migrate_sqlite_to_mysql.py --skip-tables "events,search_records" --yes
        """
    )

    parser.add_argument('-s', '--sqlite-db', default=migration_config.SOURCE_SQLITE_PATH,
                        help='Path to SQLite database (default: %(default)s)')
    parser.add_argument('--mysql-host', default=None, help='MySQL host (default: WRITE_DB_HOST)')
    parser.add_argument('-P', '--mysql-port', type=int, default=None, help='MySQL port (default: WRITE_DB_PORT)')
    parser.add_argument('-u', '--mysql-user', default=None, help='MySQL user (default: WRITE_DB_USER)')
    parser.add_argument('-p', '--mysql-pass', default=None, help='MySQL password (default: WRITE_DB_PASSWORD)')
    parser.add_argument('-d', '--mysql-db', default=None, help='MySQL database name (default: WRITE_DB_NAME)')
    parser.add_argument('--batch-size', default=migration_config.BATCH_SIZE,
                        type=batch_size_arg,
                        help='Rows read per page (default: %(default)s)')
    parser.add_argument('--dry-run', action='store_true', default=migration_config.DRY_RUN,
                        help='Show what would be migrated without writing to MySQL')
    parser.add_argument('--table-order', default='',
                        help='Comma-separated table order (default: built-in dependency order)')
    parser.add_argument('--skip-tables', default='',
                        help='Comma-separated tables to skip (default: built-in skip list)')
    parser.add_argument('-y', '--yes', action='store_true',
                        help='Do not ask for confirmation before a live run')

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    """Main function to orchestrate the migration."""
    args = parse_args(argv)

    print("\n🚀 SQLite to MySQL Data Migration")
    print("=" * 50)

    write_config = migration_config.build_write_config(
        host=args.mysql_host,
        port=args.mysql_port,
        user=args.mysql_user,
        password=args.mysql_pass,
        database=args.mysql_db,
    )
    table_order = migration_config.parse_table_list(args.table_order) or migration_config.TABLE_ORDER
    skip_tables = migration_config.parse_table_list(args.skip_tables) or migration_config.SKIP_TABLES

    try:
        migration_config.validate_config(write_config, args.dry_run)
        validate_source(args.sqlite_db)
    except MigrationError as e:
        log_error(str(e))
        return 1

    print(f"\nConfiguration:")
    print(f"  Source: {args.sqlite_db}")
    if args.dry_run:
        print(f"  Destination: (not used in dry run)")
    else:
        print(f"  Destination: {write_config['host']}:{write_config['port']}/{write_config['database']}")
    print(f"  Batch Size: {args.batch_size} rows")
    print(f"  Dry run: {args.dry_run}")
    if skip_tables:
        print(f"  ⊗ Skip tables: {', '.join(skip_tables)}")

    dest_conn = None
    try:
        if not args.dry_run and not args.yes:
            confirmation = input("\nProceed with migration? (yes/no): ").strip().lower()
            if confirmation not in ['yes', 'y']:
                print("❌ Migration cancelled by user.")
                return 0

        if not args.dry_run:
            log("Testing MySQL connection...")
            dest_conn = get_connection(write_config)
            log("MySQL connection successful.")

        run_migration(
            args.sqlite_db,
            dest_conn,
            table_order=table_order,
            skip_tables=skip_tables,
            batch_size=args.batch_size,
            dry_run=args.dry_run,
        )
    except KeyboardInterrupt:
        print("\n\n❌ Migration interrupted by user.")
        return 1
    except MigrationError as e:
        log_error(str(e))
        return 1
    except (pymysql.Error, sqlite3.Error) as e:
        log_error(f"Database error: {e}")
        return 1
    finally:
        if dest_conn is not None:
            dest_conn.close()

    print("\n✅ Migration process completed!")
    if not args.dry_run:
        print("Please verify your data before using the MySQL database in production.")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except Exception as e:
        print(f"\n❌ Unexpected error: {e}")
        sys.exit(1)
