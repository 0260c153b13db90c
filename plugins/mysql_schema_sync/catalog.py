"""
MySQL Catalog Reader Module

This module reads schema metadata from a MySQL server's information_schema:
- Table inventory with creation/modification timestamps and approximate row counts
- Verbatim CREATE TABLE text (SHOW CREATE TABLE)
- Column name/type/position triples, cached per table for the run
- Whole-table checksums (CHECKSUM TABLE ... EXTENDED)

Row counts come from TABLE_ROWS, never from COUNT(*), so building an
inventory costs one query regardless of table sizes.
"""

from dataclasses import dataclass
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, TypeVar
import logging
import re

from mysql_schema_sync import sql_utils
from mysql_schema_sync.divergence import normalize_timestamp
from mysql_schema_sync.errors import ConnectivityError, MetadataError, is_connection_error
from mysql_schema_sync.mysql_helper import MySqlConnectionHelper

logger = logging.getLogger(__name__)

T = TypeVar('T')

# EXTRA for generated columns; MySQL 8 also reports DEFAULT_GENERATED for
# plain columns with an expression default, which hold real data
GENERATED_COLUMN_PATTERN = re.compile(r'\b(VIRTUAL|STORED) GENERATED\b', re.IGNORECASE)

SchemaSnapshot = Mapping[str, 'TableDescriptor']


@dataclass(frozen=True)
class TableDescriptor:
    name: str
    last_modified: Optional[datetime]
    row_count: int
    create_statement: Optional[str] = None


@dataclass(frozen=True)
class ColumnDescriptor:
    name: str
    data_type: str
    ordinal_position: int
    is_generated: bool = False


def _text(value: Any) -> Any:
    """information_schema values may come back as bytes on some server versions."""
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode('utf-8')
    return value


class CatalogReader:
    """Read table metadata for one schema on one server."""

    def __init__(self, helper: MySqlConnectionHelper, schema: str):
        """
        Initialize the catalog reader.

        Args:
            helper: Connection helper for the server to inspect
            schema: Schema (database) name
        """
        self.helper = helper
        self.schema = schema
        self._columns_cache: Dict[str, List[ColumnDescriptor]] = {}

    def _query(self, description: str, func: Callable[[], T], table: Optional[str] = None) -> T:
        """Run a metadata call, translating driver errors into sync errors."""
        try:
            return func()
        except Exception as e:
            if is_connection_error(e):
                raise ConnectivityError(
                    f"Lost connection to {self.helper.conn_id} while reading {description}: {e}",
                    table=table,
                ) from e
            raise MetadataError(
                f"Failed to read {description} from {self.helper.conn_id}: {e}",
                table=table,
            ) from e

    def snapshot(self, with_definitions: bool = True) -> SchemaSnapshot:
        """
        Build an immutable inventory of the schema's base tables.

        Args:
            with_definitions: Also fetch SHOW CREATE TABLE text for each table

        Returns:
            Read-only mapping of table name to TableDescriptor
        """
        rows = self._query(
            f"table inventory of {self.schema}",
            lambda: self.helper.get_records(sql_utils.list_tables_sql(), parameters=[self.schema]),
        )

        tables: Dict[str, TableDescriptor] = {}
        for row in rows or []:
            name = _text(row[0])
            create_time, update_time, table_rows = row[1], row[2], row[3]
            tables[name] = TableDescriptor(
                name=name,
                # UPDATE_TIME is NULL until the first write after a server restart
                last_modified=normalize_timestamp(update_time or create_time),
                row_count=int(table_rows or 0),
                create_statement=self.get_create_statement(name) if with_definitions else None,
            )

        logger.info(f"Found {len(tables)} tables in schema '{self.schema}' on {self.helper.conn_id}")
        return MappingProxyType(tables)

    def get_create_statement(self, table: str) -> str:
        """Return the verbatim CREATE TABLE text for a table."""
        row = self._query(
            f"definition of {self.schema}.{table}",
            lambda: self.helper.get_first(sql_utils.show_create_table_sql(self.schema, table)),
            table=table,
        )
        if not row or len(row) < 2 or not row[1]:
            raise MetadataError(
                f"SHOW CREATE TABLE returned no definition for {self.schema}.{table}",
                table=table,
            )
        return _text(row[1])

    def get_columns(self, table: str) -> List[ColumnDescriptor]:
        """
        Get columns of a table ordered by ordinal position.

        Results are cached for the reader's lifetime, so each table costs at
        most one metadata round trip per run.
        """
        if table in self._columns_cache:
            return self._columns_cache[table]

        rows = self._query(
            f"columns of {self.schema}.{table}",
            lambda: self.helper.get_records(
                sql_utils.list_columns_sql(), parameters=[self.schema, table]
            ),
            table=table,
        )

        columns = [
            ColumnDescriptor(
                name=_text(row[0]),
                data_type=_text(row[1]).lower(),
                ordinal_position=int(row[2]),
                is_generated=bool(GENERATED_COLUMN_PATTERN.search(_text(row[3]) or '')),
            )
            for row in rows or []
        ]
        columns.sort(key=lambda col: col.ordinal_position)

        if not columns:
            raise MetadataError(f"No columns found for {self.schema}.{table}", table=table)

        self._columns_cache[table] = columns
        return columns

    def checksum(self, table: str) -> Optional[int]:
        """
        Compute CHECKSUM TABLE ... EXTENDED for a table.

        Returns:
            The checksum, or None if the server reports the table missing
        """
        row = self._query(
            f"checksum of {self.schema}.{table}",
            lambda: self.helper.get_first(sql_utils.checksum_table_sql(self.schema, table)),
            table=table,
        )
        if not row or row[1] is None:
            return None
        return int(row[1])
