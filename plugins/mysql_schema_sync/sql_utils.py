"""
SQL construction helpers.

All identifier quoting goes through quote_identifier() so every statement
the sync issues can be built and inspected without a database. Values are
never interpolated here; they are bound as driver parameters.
"""

import re
from typing import Sequence

# MySQL identifier length limit
MAX_IDENTIFIER_LENGTH = 64

# Artifact layout shared by the writer (artifact.py) and LOAD DATA below
FIELD_TERMINATOR = '\\t'
LINE_TERMINATOR = '\\n'
ESCAPE_CHARACTER = '\\\\'


def validate_identifier(identifier: str, identifier_type: str = "identifier") -> str:
    """
    Validate a MySQL identifier before it is quoted.

    MySQL allows almost any character in a quoted identifier, so this only
    rejects what quoting cannot make safe.

    Args:
        identifier: Schema, table, or column name
        identifier_type: Description used in error messages

    Returns:
        The identifier, unchanged

    Raises:
        ValueError: If the identifier is empty, too long, or contains NUL

    Examples:
        >>> validate_identifier("orders")
        'orders'
        >>> validate_identifier("order items")
        'order items'
    """
    if not identifier:
        raise ValueError(f"Invalid {identifier_type}: cannot be empty")

    if len(identifier) > MAX_IDENTIFIER_LENGTH:
        raise ValueError(
            f"Invalid {identifier_type}: exceeds maximum length of {MAX_IDENTIFIER_LENGTH} characters "
            f"(got {len(identifier)} characters)"
        )

    if '\x00' in identifier:
        raise ValueError(f"Invalid {identifier_type} {identifier!r}: contains NUL character")

    return identifier


def quote_identifier(identifier: str) -> str:
    """
    Quote an identifier with backticks, doubling embedded backticks.

    Examples:
        >>> quote_identifier("orders")
        '`orders`'
        >>> quote_identifier("we`ird")
        '`we``ird`'
    """
    validate_identifier(identifier)
    return '`' + identifier.replace('`', '``') + '`'


def qualified_name(schema: str, table: str) -> str:
    """Return `schema`.`table`."""
    return f"{quote_identifier(schema)}.{quote_identifier(table)}"


def list_tables_sql() -> str:
    """Query for base tables with timestamps and approximate row counts."""
    return (
        "SELECT TABLE_NAME, CREATE_TIME, UPDATE_TIME, TABLE_ROWS "
        "FROM information_schema.TABLES "
        "WHERE TABLE_SCHEMA = %s AND TABLE_TYPE = 'BASE TABLE' "
        "ORDER BY TABLE_NAME"
    )


def list_columns_sql() -> str:
    """Query for column name/type/position triples of one table."""
    return (
        "SELECT COLUMN_NAME, DATA_TYPE, ORDINAL_POSITION, EXTRA "
        "FROM information_schema.COLUMNS "
        "WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s "
        "ORDER BY ORDINAL_POSITION"
    )


def show_create_table_sql(schema: str, table: str) -> str:
    return f"SHOW CREATE TABLE {qualified_name(schema, table)}"


def checksum_table_sql(schema: str, table: str) -> str:
    return f"CHECKSUM TABLE {qualified_name(schema, table)} EXTENDED"


def drop_table_sql(schema: str, table: str) -> str:
    return f"DROP TABLE IF EXISTS {qualified_name(schema, table)}"


def create_database_sql(schema: str) -> str:
    return f"CREATE DATABASE IF NOT EXISTS {quote_identifier(schema)}"


def use_database_sql(schema: str) -> str:
    return f"USE {quote_identifier(schema)}"


def lock_table_sql(schema: str, table: str, mode: str) -> str:
    """
    Build a LOCK TABLES statement.

    Args:
        schema: Schema holding the table
        table: Table to lock
        mode: READ or WRITE

    Raises:
        ValueError: For any other lock mode
    """
    mode = mode.upper()
    if mode not in ('READ', 'WRITE'):
        raise ValueError(f"Invalid lock mode '{mode}': must be READ or WRITE")
    return f"LOCK TABLES {qualified_name(schema, table)} {mode}"


def unlock_tables_sql() -> str:
    return "UNLOCK TABLES"


def select_columns_sql(schema: str, table: str, columns: Sequence[str]) -> str:
    """SELECT the given columns, in the given order, from schema.table."""
    if not columns:
        raise ValueError(f"No columns to select from {schema}.{table}")
    column_list = ', '.join(quote_identifier(col) for col in columns)
    return f"SELECT {column_list} FROM {qualified_name(schema, table)}"


def load_data_sql(
    schema: str,
    table: str,
    targets: Sequence[str],
    assignments: Sequence[str],
    charset: str = 'utf8mb4',
) -> str:
    """
    Build the LOAD DATA LOCAL INFILE statement for one artifact.

    The file name is left as a %s placeholder and bound by the driver.
    targets are already-quoted column names or @variables in ordinal order;
    assignments are SET expressions (see binary_codec.build_load_projection).

    Returns:
        LOAD DATA statement text
    """
    if not targets:
        raise ValueError(f"No load targets for {schema}.{table}")
    if not re.match(r"^[A-Za-z0-9_]+$", charset):
        raise ValueError(f"Invalid character set '{charset}'")

    statement = (
        f"LOAD DATA LOCAL INFILE %s INTO TABLE {qualified_name(schema, table)} "
        f"CHARACTER SET {charset} "
        f"FIELDS TERMINATED BY '{FIELD_TERMINATOR}' ESCAPED BY '{ESCAPE_CHARACTER}' "
        f"LINES TERMINATED BY '{LINE_TERMINATOR}' "
        f"({', '.join(targets)})"
    )
    if assignments:
        statement += f" SET {', '.join(assignments)}"
    return statement


def foreign_key_checks_sql(enabled: bool) -> str:
    return f"SET FOREIGN_KEY_CHECKS = {1 if enabled else 0}"
