"""
Shared fixtures: temporary SQLite sources and a fake MySQL destination that
records every statement and raises real pymysql errors.
"""
import re
import sqlite3
from collections import defaultdict

import pymysql
import pytest

INSERT_TABLE = re.compile(r"INSERT INTO `([^`]+)`")


class FakeCursor:
    def __init__(self, connection):
        self.connection = connection
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        return False

    def execute(self, statement, args=None):
        conn = self.connection
        conn.statements.append((statement, args))

        if conn.fail_on is not None:
            error = conn.fail_on(statement, args)
            if error is not None:
                raise error

        if 'information_schema' in statement:
            self._rows = [
                {'table_name': name, 'unique_keys': 1 if unique else 0}
                for name, unique in conn.destination_tables.items()
            ]
            return len(self._rows)

        match = INSERT_TABLE.match(statement)
        if match:
            table = match.group(1)
            if table in conn.unique_first_column:
                key = args[0]
                if key in conn.seen_keys[table]:
                    raise pymysql.err.IntegrityError(
                        1062, f"Duplicate entry '{key}' for key 'PRIMARY'")
                conn.seen_keys[table].add(key)
            conn.rows[table].append(tuple(args))
            return 1

        self._rows = [{'1': 1}]
        return 0

    def fetchone(self):
        return self._rows[0] if self._rows else None

    def fetchall(self):
        return list(self._rows)


class FakeMySQLConnection:
    """Stands in for a pymysql connection opened with DictCursor."""

    def __init__(self, destination_tables=None, unique_first_column=(), fail_on=None):
        self.destination_tables = dict(destination_tables or {})
        self.unique_first_column = set(unique_first_column)
        self.fail_on = fail_on
        self.statements = []
        self.rows = defaultdict(list)
        self.seen_keys = defaultdict(set)
        self.commits = 0
        self.closed = False

    def cursor(self):
        return FakeCursor(self)

    def commit(self):
        self.commits += 1

    def close(self):
        self.closed = True

    @property
    def executed(self):
        return [statement for statement, _ in self.statements]

    @property
    def inserts(self):
        return [(s, a) for s, a in self.statements if s.startswith('INSERT')]


@pytest.fixture
def fake_mysql():
    """Factory for fake destination connections."""
    return FakeMySQLConnection


@pytest.fixture
def make_sqlite(tmp_path):
    """Create a SQLite file from a SQL script and return its path."""
    def _make(script, name='source.sqlite3'):
        path = tmp_path / name
        with sqlite3.connect(path) as conn:
            conn.executescript(script)
        conn.close()
        return str(path)
    return _make


@pytest.fixture
def source_path(make_sqlite):
    """
    A small application database. Tables are created boards-first so that
    discovery order differs from the dependency order.
    """
    return make_sqlite("""
        CREATE TABLE boards (
            id INTEGER PRIMARY KEY,
            account_id INTEGER NOT NULL,
            title TEXT
        );
        CREATE TABLE accounts (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            active TEXT,
            created_at TEXT
        );
        CREATE TABLE tags (
            id INTEGER PRIMARY KEY,
            title TEXT
        );
        CREATE TABLE schema_migrations (version TEXT NOT NULL);

        INSERT INTO accounts (name, active, created_at) VALUES
            ('Acme', 'true', '2024-01-02 03:04:05'),
            ('Globex', 'FALSE', '2024-02-03 04:05:06'),
            ('Initech', NULL, NULL);
        INSERT INTO boards (id, account_id, title) VALUES
            (1, 1, 'Roadmap'),
            (2, 2, 'Bugs');
        INSERT INTO schema_migrations (version) VALUES ('20240101000000');
    """)


@pytest.fixture
def source_conn(source_path):
    conn = sqlite3.connect(source_path)
    yield conn
    conn.close()


@pytest.fixture
def all_destination_tables():
    return {'accounts': True, 'boards': True, 'tags': True, 'schema_migrations': False}
