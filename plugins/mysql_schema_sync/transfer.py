"""
Table Transfer Module

Rebuilds one target table from its source:

    PENDING -> DROPPING (optional) -> CREATING -> EXPORTING -> IMPORTING -> COMPLETED
                                                                 any of them -> FAILED

- DROPPING: DROP TABLE on the target (only when the decision requires it)
- CREATING: re-issue the source's SHOW CREATE TABLE text on the target
- EXPORTING: LOCK TABLES ... READ on the source, stream rows to the artifact,
  UNLOCK TABLES
- IMPORTING: LOCK TABLES ... WRITE on the target, LOAD DATA LOCAL INFILE the
  artifact, UNLOCK TABLES
- COMPLETED: the table is appended to the ledger

The export lock is always released before the import lock is taken, and the
ledger is appended only after a successful import. An in-progress marker file
is created before any target change and removed only after the ledger entry
is durable, so a leftover marker means the target copy cannot be trusted.
The artifact itself may be kept after success (keep_artifacts) and carries no
such meaning.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence
import logging
import time

import mysql.connector

from mysql_schema_sync import sql_utils
from mysql_schema_sync.artifact import write_artifact
from mysql_schema_sync.binary_codec import LoadProjection, build_load_projection
from mysql_schema_sync.catalog import CatalogReader, TableDescriptor
from mysql_schema_sync.divergence import RefreshDecision
from mysql_schema_sync.errors import (
    ConnectivityError,
    MetadataError,
    TransferError,
    is_connection_error,
)
from mysql_schema_sync.ledger import CompletionLedger
from mysql_schema_sync.mysql_helper import MySqlConnectionHelper
from mysql_schema_sync.sync_config import SyncConfig

logger = logging.getLogger(__name__)

# Batches between export progress log lines
PROGRESS_LOG_BATCHES = 10


class TransferPhase(Enum):
    PENDING = 'pending'
    DROPPING = 'dropping'
    CREATING = 'creating'
    EXPORTING = 'exporting'
    IMPORTING = 'importing'
    COMPLETED = 'completed'
    FAILED = 'failed'


@dataclass
class TransferResult:
    table: str
    phase: TransferPhase = TransferPhase.PENDING
    dropped: bool = False
    rows_exported: int = 0
    rows_loaded: int = 0
    elapsed_time_seconds: float = 0.0
    artifact_path: Optional[Path] = None

    @property
    def success(self) -> bool:
        return self.phase is TransferPhase.COMPLETED


class TableTransfer:
    """Run the drop/create/export/import state machine for single tables."""

    def __init__(
        self,
        config: SyncConfig,
        source_helper: MySqlConnectionHelper,
        target_helper: MySqlConnectionHelper,
        source_catalog: CatalogReader,
        ledger: CompletionLedger,
    ):
        """
        Initialize the transfer handler.

        Args:
            config: Run configuration
            source_helper: Connection helper for the source server
            target_helper: Connection helper for the target server
            source_catalog: Catalog reader for the source schema (column cache)
            ledger: Completion ledger appended after each successful import
        """
        self.config = config
        self.source_helper = source_helper
        self.target_helper = target_helper
        self.source_catalog = source_catalog
        self.ledger = ledger

    def transfer(self, descriptor: TableDescriptor, decision: RefreshDecision) -> TransferResult:
        """
        Transfer one table.

        Args:
            descriptor: Source descriptor of the table
            decision: Refresh decision for the table

        Returns:
            TransferResult in the COMPLETED phase

        Raises:
            TransferError: If any phase fails; the table is left unrecorded
            ConnectivityError: If either server connection is lost
            MetadataError: If the table's columns cannot be read
        """
        table = descriptor.name
        result = TransferResult(table=table)
        artifact_path = self.config.artifact_path(table)
        result.artifact_path = artifact_path
        start_time = time.time()

        if not decision.populate_required:
            raise ValueError(f"Transfer of {table} requested without populate_required")

        logger.info(
            f"Starting transfer of {table} "
            f"(~{descriptor.row_count:,} rows, drop={decision.drop_required}, reason: {decision.reason})"
        )

        try:
            self.ledger.check_name(table)
        except ValueError as e:
            raise TransferError(str(e), table=table, phase=result.phase.value) from e

        # Resolved before touching the target so a metadata failure leaves it as is
        projection = build_load_projection(self.source_catalog.get_columns(table))
        marker_path = self.config.marker_path(table)

        try:
            # Marks the transfer as started until the ledger entry exists
            marker_path.parent.mkdir(parents=True, exist_ok=True)
            marker_path.touch()

            if decision.drop_required:
                result.phase = TransferPhase.DROPPING
                self._drop_table(table)
                result.dropped = True

            result.phase = TransferPhase.CREATING
            self._create_table(descriptor)

            result.phase = TransferPhase.EXPORTING
            result.rows_exported = self._export_rows(table, projection, artifact_path)

            result.phase = TransferPhase.IMPORTING
            result.rows_loaded = self._import_rows(table, projection, artifact_path)

            if self.config.verify_row_counts and result.rows_loaded != result.rows_exported:
                raise TransferError(
                    f"Loaded {result.rows_loaded:,} rows but exported {result.rows_exported:,}",
                    table=table,
                    phase=result.phase.value,
                )

        except (ConnectivityError, MetadataError, TransferError):
            logger.error(f"✗ {table}: failed while {result.phase.value}")
            raise
        except Exception as e:
            failed_phase = result.phase.value
            result.phase = TransferPhase.FAILED
            logger.error(f"✗ {table}: failed while {failed_phase}: {e}")
            if is_connection_error(e):
                raise ConnectivityError(
                    f"Lost connection during {failed_phase}: {e}",
                    table=table,
                    phase=failed_phase,
                ) from e
            raise TransferError(str(e), table=table, phase=failed_phase) from e

        self.ledger.append(table)
        result.phase = TransferPhase.COMPLETED
        result.elapsed_time_seconds = time.time() - start_time

        self._remove_file(marker_path)
        if not self.config.keep_artifacts:
            self._remove_file(artifact_path)

        logger.info(
            f"✓ {table}: transferred {result.rows_loaded:,} rows "
            f"in {result.elapsed_time_seconds:.2f}s"
        )
        return result

    def _drop_table(self, table: str) -> None:
        schema = self.config.target_schema
        with self.target_helper.session() as conn:
            cursor = conn.cursor()
            cursor.execute(sql_utils.foreign_key_checks_sql(False))
            cursor.execute(sql_utils.drop_table_sql(schema, table))
            cursor.close()
        logger.info(f"Dropped {schema}.{table} on target")

    def _create_table(self, descriptor: TableDescriptor) -> None:
        schema = self.config.target_schema
        create_statement = descriptor.create_statement
        if not create_statement:
            create_statement = self.source_catalog.get_create_statement(descriptor.name)

        with self.target_helper.session() as conn:
            cursor = conn.cursor()
            cursor.execute(sql_utils.foreign_key_checks_sql(False))
            # SHOW CREATE TABLE output is unqualified
            cursor.execute(sql_utils.use_database_sql(schema))
            cursor.execute(create_statement)
            cursor.close()
        logger.info(f"Created {schema}.{descriptor.name} on target")

    def _export_rows(self, table: str, projection: LoadProjection, path: Path) -> int:
        """Stream the source table to the artifact under a READ lock."""
        schema = self.config.source_schema
        select_sql = sql_utils.select_columns_sql(schema, table, projection.columns)

        with self.source_helper.session() as conn:
            # Raw, unbuffered: rows arrive as the server's text bytes and are
            # never held in memory all at once
            cursor = conn.cursor(raw=True, buffered=False)
            locked = False
            try:
                cursor.execute(sql_utils.lock_table_sql(schema, table, 'READ'))
                locked = True
                cursor.execute(select_sql)
                count = write_artifact(
                    path,
                    self._iter_rows(cursor, table),
                    projection.binary_mask,
                )
            finally:
                if locked:
                    self._unlock(conn, 'source')

        logger.info(f"Exported {count:,} rows from {schema}.{table} to {path}")
        return count

    def _iter_rows(self, cursor: Any, table: str) -> Iterator[Sequence[Any]]:
        batches = 0
        rows = 0
        while True:
            batch = cursor.fetchmany(self.config.fetch_size)
            if not batch:
                break
            batches += 1
            rows += len(batch)
            for row in batch:
                yield row
            if batches % PROGRESS_LOG_BATCHES == 0:
                logger.info(f"{table}: exported {rows:,} rows so far")

    def _import_rows(self, table: str, projection: LoadProjection, path: Path) -> int:
        """Bulk-load the artifact into the target under a WRITE lock."""
        schema = self.config.target_schema
        load_sql = sql_utils.load_data_sql(
            schema,
            table,
            projection.targets,
            projection.assignments,
            charset=self.target_helper.charset,
        )

        with self.target_helper.session(allow_local_infile=True) as conn:
            cursor = conn.cursor()
            cursor.execute(sql_utils.foreign_key_checks_sql(False))
            locked = False
            try:
                cursor.execute(sql_utils.lock_table_sql(schema, table, 'WRITE'))
                locked = True
                cursor.execute(load_sql, (str(Path(path).resolve()),))
                loaded = cursor.rowcount
                warnings = getattr(cursor, 'warning_count', 0) or 0
                if warnings:
                    logger.warning(f"{schema}.{table}: LOAD DATA reported {warnings} warnings")
            finally:
                if locked:
                    self._unlock(conn, 'target')

        logger.info(f"Loaded {loaded:,} rows into {schema}.{table}")
        return loaded

    def _unlock(self, conn: Any, side: str) -> None:
        """
        Release table locks held by a session.

        If the session is mid-result (failed export), UNLOCK cannot be sent;
        the lock is then released when session() closes the connection.
        """
        try:
            cursor = conn.cursor()
            cursor.execute(sql_utils.unlock_tables_sql())
            cursor.close()
        except mysql.connector.Error as e:
            logger.warning(f"UNLOCK TABLES on {side} failed ({e}); lock is released on disconnect")

    def _remove_file(self, path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove {path}: {e}")
