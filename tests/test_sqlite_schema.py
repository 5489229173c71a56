import math
import sqlite3

import pytest

from sqlite_schema import (
    count_rows,
    decode_text,
    fetch_rows,
    get_source_tables,
    get_table_columns,
    parse_create_table_columns,
    quote_identifier,
)


def test_source_tables_skip_sqlite_internals(source_conn):
    # AUTOINCREMENT on accounts creates sqlite_sequence
    names = [r[0] for r in source_conn.execute("SELECT name FROM sqlite_master WHERE type='table'")]
    assert 'sqlite_sequence' in names

    assert get_source_tables(source_conn) == ['boards', 'accounts', 'tags', 'schema_migrations']


def test_tables_with_underscore_lookalike_prefix_are_kept(make_sqlite):
    path = make_sqlite("CREATE TABLE sqliteX_notes (id INTEGER);", name='lookalike.sqlite3')
    with sqlite3.connect(path) as conn:
        assert get_source_tables(conn) == ['sqliteX_notes']


def test_columns_from_pragma(source_conn):
    assert get_table_columns(source_conn, 'accounts') == ['id', 'name', 'active', 'created_at']


def test_columns_with_quoted_names(make_sqlite):
    path = make_sqlite('CREATE TABLE "odd table" ("first name" TEXT, "order" INTEGER, plain REAL);',
                       name='quoted.sqlite3')
    with sqlite3.connect(path) as conn:
        assert get_table_columns(conn, 'odd table') == ['first name', 'order', 'plain']


class PragmaFailingConnection:
    """Answers sqlite_master lookups but fails table_info."""

    def __init__(self, create_sql):
        self.create_sql = create_sql

    def execute(self, sql, params=()):
        if sql.startswith('PRAGMA'):
            raise sqlite3.DatabaseError("malformed database schema")
        conn = sqlite3.connect(':memory:')
        return conn.execute("SELECT ?", (self.create_sql,))


def test_columns_fall_back_to_create_sql():
    conn = PragmaFailingConnection("CREATE TABLE t (id INTEGER PRIMARY KEY, body TEXT, UNIQUE (body))")
    assert get_table_columns(conn, 't') == ['id', 'body']


def test_unparseable_definition_gives_no_columns():
    conn = PragmaFailingConnection("CREATE TABLE t (id INTEGER, body TEXT DEFAULT 'unterminated)")
    assert get_table_columns(conn, 't') == []


@pytest.mark.parametrize("create_sql,expected", [
    ("CREATE TABLE a (id INTEGER, name TEXT)", ['id', 'name']),
    ('CREATE TABLE "a" ("id" INTEGER, "na""me" TEXT)', ['id', 'na"me']),
    ("CREATE TABLE a (`id` INTEGER, [name] TEXT, 'note' TEXT)", ['id', 'name', 'note']),
    (
        "CREATE TABLE a (id INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL, "
        "account_id INTEGER REFERENCES accounts(id) ON DELETE CASCADE)",
        ['id', 'account_id'],
    ),
    (
        """CREATE TABLE "cards" (
            "id" varchar NOT NULL PRIMARY KEY,
            "board_id" varchar NOT NULL,
            "title" varchar DEFAULT 'Untitled, draft',
            "price" decimal(10, 2),
            CONSTRAINT "fk_board" FOREIGN KEY ("board_id") REFERENCES "boards" ("id"),
            CHECK (price >= 0),
            UNIQUE ("board_id", "title"),
            PRIMARY KEY ("id")
        )""",
        ['id', 'board_id', 'title', 'price'],
    ),
    ("CREATE TABLE a (primary_flag INTEGER, unique_code TEXT, checked_at TEXT)",
     ['primary_flag', 'unique_code', 'checked_at']),
    ("CREATE TABLE a (id INTEGER, body TEXT,)", ['id', 'body']),
])
def test_parse_create_table_columns(create_sql, expected):
    assert parse_create_table_columns(create_sql) == expected


@pytest.mark.parametrize("create_sql", [
    None,
    "",
    "CREATE TABLE broken",
    "CREATE TABLE a (id INTEGER, (name TEXT)",
    'CREATE TABLE a ("id INTEGER, name TEXT)',
])
def test_malformed_definitions_give_no_columns(create_sql):
    assert parse_create_table_columns(create_sql) == []


def test_quote_identifier_escapes_quotes():
    assert quote_identifier('a"b') == '"a""b"'


@pytest.mark.parametrize("total,page", [(0, 2), (1, 1), (3, 2), (10, 3), (10, 10), (7, 50)])
def test_pages_cover_every_row_once(make_sqlite, total, page):
    values = ', '.join(f'({i})' for i in range(total))
    script = "CREATE TABLE nums (n INTEGER);"
    if total:
        script += f"INSERT INTO nums (n) VALUES {values};"
    path = make_sqlite(script, name=f'nums_{total}_{page}.sqlite3')

    with sqlite3.connect(path) as conn:
        assert count_rows(conn, 'nums') == total
        seen = []
        pages = 0
        offset = 0
        while offset < total:
            rows = fetch_rows(conn, 'nums', ['n'], offset, page)
            pages += 1
            seen.extend(row['n'] for row in rows)
            offset += page

    assert pages == math.ceil(total / page)
    assert sorted(seen) == list(range(total))


def test_decode_text_keeps_invalid_utf8_as_bytes():
    assert decode_text('café'.encode('utf-8')) == 'café'
    assert decode_text(b'\xffa') == b'\xffa'
