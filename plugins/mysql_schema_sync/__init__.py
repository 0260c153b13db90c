"""
MySQL Schema Sync Utilities

This package synchronizes the tables of one MySQL schema from a source
server to a target server using Apache Airflow, transferring only tables
whose data has diverged.

Modules:
- catalog: Read table inventory, definitions, columns and checksums
- divergence: Decide per table whether the target must be rebuilt
- binary_codec: Hex-encode binary columns and build the LOAD DATA projection
- artifact: Delimited text format for exported rows
- transfer: Drop/create/export/import one table under table locks
- ledger: Append-only record of completed tables for resumable runs
- sync_runner: Coordinate a full run over a schema
- sync_config: Run configuration from DAG params and environment
- mysql_helper: Airflow-connection-backed MySQL helper
- errors: Sync error hierarchy

Environment Options:
- SYNC_WORK_DIR=path: Directory for artifacts and the ledger
- SYNC_KEEP_ARTIFACTS=true: Keep artifacts after a successful load
- SYNC_FETCH_SIZE=N: Rows fetched per round trip while exporting
"""

__version__ = "1.0.0"

# Core modules
from mysql_schema_sync import catalog
from mysql_schema_sync import divergence
from mysql_schema_sync import binary_codec
from mysql_schema_sync import artifact
from mysql_schema_sync import transfer

# Resumable runs
from mysql_schema_sync import ledger
from mysql_schema_sync import sync_runner

__all__ = [
    "catalog",
    "divergence",
    "binary_codec",
    "artifact",
    "transfer",
    "ledger",
    "sync_runner",
]
