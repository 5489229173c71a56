"""
Schema discovery for the SQLite source database.

Tables come from sqlite_master. Columns come from PRAGMA table_info; when that
gives nothing back the CREATE TABLE text is parsed instead.
"""
import re
import sqlite3
from typing import List, Optional

# Entries of a CREATE TABLE body that declare constraints, not columns
CONSTRAINT_KEYWORDS = re.compile(r'^(PRIMARY|FOREIGN|UNIQUE|CHECK|CONSTRAINT)\b', re.IGNORECASE)

IDENTIFIER_QUOTES = {'"': '"', '`': '`', "'": "'", '[': ']'}


def quote_identifier(name: str) -> str:
    """Quote a SQLite identifier, doubling any embedded double quotes."""
    return '"' + name.replace('"', '""') + '"'


def get_source_tables(connection: sqlite3.Connection) -> List[str]:
    """Get all user tables in discovery order, skipping sqlite_* internals."""
    cursor = connection.execute(
        "SELECT name FROM sqlite_master "
        "WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' "
        "ORDER BY rowid"
    )
    return [row[0] for row in cursor.fetchall()]


def get_table_sql(connection: sqlite3.Connection, table_name: str) -> Optional[str]:
    cursor = connection.execute(
        "SELECT sql FROM sqlite_master WHERE type = 'table' AND name = ?", (table_name,)
    )
    row = cursor.fetchone()
    return row[0] if row else None


def get_table_columns(connection: sqlite3.Connection, table_name: str) -> List[str]:
    """
    Get the data columns of a table in declaration order.

    Returns an empty list when the table cannot be introspected; callers skip
    such tables.
    """
    try:
        cursor = connection.execute(f"PRAGMA table_info({quote_identifier(table_name)})")
        columns = [row[1] for row in cursor.fetchall()]
    except sqlite3.DatabaseError:
        columns = []

    if columns:
        return columns

    try:
        create_sql = get_table_sql(connection, table_name)
    except sqlite3.DatabaseError:
        return []
    return parse_create_table_columns(create_sql)


def split_definitions(body: str) -> List[str]:
    """Split a CREATE TABLE body on commas that sit outside parentheses and quotes."""
    parts = []
    current = []
    depth = 0
    closing = None

    for char in body:
        if closing:
            current.append(char)
            if char == closing:
                closing = None
            continue
        if char in IDENTIFIER_QUOTES:
            closing = IDENTIFIER_QUOTES[char]
        elif char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth < 0:
                raise ValueError("unbalanced parentheses")
        elif char == ',' and depth == 0:
            parts.append(''.join(current))
            current = []
            continue
        current.append(char)

    if closing or depth != 0:
        raise ValueError("unterminated quote or parenthesis")
    parts.append(''.join(current))
    return parts


def read_column_name(definition: str) -> Optional[str]:
    """Return the leading identifier of a column definition, unquoted."""
    definition = definition.strip()
    if not definition:
        return None

    opening = definition[0]
    if opening in IDENTIFIER_QUOTES:
        closing = IDENTIFIER_QUOTES[opening]
        name = []
        index = 1
        while index < len(definition):
            char = definition[index]
            if char == closing:
                # A doubled quote is an escaped quote inside the name
                if index + 1 < len(definition) and definition[index + 1] == closing and closing != ']':
                    name.append(char)
                    index += 2
                    continue
                return ''.join(name)
            name.append(char)
            index += 1
        return None

    return definition.split()[0]


def parse_create_table_columns(create_sql: Optional[str]) -> List[str]:
    """
    Extract column names from a CREATE TABLE statement.

    Table-level constraint entries are dropped. Malformed statements give [].
    """
    if not create_sql:
        return []

    start = create_sql.find('(')
    end = create_sql.rfind(')')
    if start == -1 or end <= start:
        return []

    try:
        definitions = split_definitions(create_sql[start + 1:end])
    except ValueError:
        return []

    columns = []
    for definition in definitions:
        stripped = definition.strip()
        if not stripped or CONSTRAINT_KEYWORDS.match(stripped):
            continue
        name = read_column_name(stripped)
        if not name:
            return []
        columns.append(name)
    return columns


def decode_text(data: bytes):
    """
    text_factory for the source connection. TEXT cells that are not valid
    UTF-8 come back as raw bytes so the row can still be attempted.
    """
    try:
        return data.decode('utf-8')
    except UnicodeDecodeError:
        return bytes(data)


def count_rows(connection: sqlite3.Connection, table_name: str) -> int:
    cursor = connection.execute(f"SELECT COUNT(*) FROM {quote_identifier(table_name)}")
    return cursor.fetchone()[0]


def fetch_rows(connection: sqlite3.Connection, table_name: str, columns: List[str],
               offset: int, limit: int) -> List[sqlite3.Row]:
    """Fetch one page of rows as sqlite3.Row objects keyed by column name."""
    columns_str = ', '.join(quote_identifier(col) for col in columns)
    cursor = connection.cursor()
    cursor.row_factory = sqlite3.Row
    cursor.execute(
        f"SELECT {columns_str} FROM {quote_identifier(table_name)} LIMIT ? OFFSET ?",
        (limit, offset),
    )
    return cursor.fetchall()
