"""
MySQL Schema Sync DAG

This DAG synchronizes one MySQL schema from a source server to a target server:
1. Validate the run configuration (no server is contacted if it is invalid)
2. Ensure the target schema exists
3. For each source table, skip it if the ledger lists it as completed,
   otherwise check for divergence and rebuild it on the target if needed

Divergence strategy (exactly one per run, no default; the run fails if none is chosen):
- timestamp: source modified later than target (cheap, no table scan)
- row_count: approximate row counts differ
- checksum: CHECKSUM TABLE ... EXTENDED differs (scans both copies)

Reruns after a failure resume where the previous run stopped: tables listed
in {work_dir}/{source_schema}.ledger are skipped. Delete a line from that file
to force a table to be transferred again.

Requires local_infile=ON on the target server.
"""

from airflow.decorators import dag, task
from airflow.models.param import Param
from airflow.exceptions import AirflowException
from pendulum import datetime
from typing import Dict, Any
import logging

from mysql_schema_sync import sql_utils
from mysql_schema_sync.errors import ConfigurationError
from mysql_schema_sync.mysql_helper import MySqlConnectionHelper
from mysql_schema_sync.sync_config import DEFAULT_WORK_DIR, SyncConfig
from mysql_schema_sync.sync_runner import run_schema_sync

logger = logging.getLogger(__name__)


@dag(
    dag_id="mysql_schema_sync",
    start_date=datetime(2025, 1, 1),
    schedule=None,  # Run manually or trigger via API
    catchup=False,
    max_active_runs=1,  # One writer per ledger
    is_paused_upon_creation=False,
    doc_md=__doc__,
    default_args={
        "owner": "data-team",
        "retries": 0,
    },
    params={
        "source_conn_id": Param(
            default="mysql_source",
            type="string",
            description="Source MySQL connection ID"
        ),
        "target_conn_id": Param(
            default="mysql_target",
            type="string",
            description="Target MySQL connection ID"
        ),
        "source_schema": Param(
            default="",
            type="string",
            description="Schema (database) to synchronize"
        ),
        "target_schema": Param(
            default="",
            type="string",
            description="Target schema name (defaults to the source schema)"
        ),
        "strategy": Param(
            default=None,
            type=["null", "string"],
            enum=[None, "timestamp", "row_count", "checksum"],
            description="How to decide that a table has diverged (required: timestamp, row_count or checksum)"
        ),
        "include_tables": Param(
            default=[],
            type="array",
            description="Table patterns to include (supports wildcards; empty means all)"
        ),
        "exclude_tables": Param(
            default=[],
            type="array",
            description="Table patterns to exclude (supports wildcards)"
        ),
        "work_dir": Param(
            default=DEFAULT_WORK_DIR,
            type="string",
            description="Directory for transfer artifacts and the completion ledger"
        ),
        "keep_artifacts": Param(
            default=False,
            type="boolean",
            description="Keep artifact files after a successful load"
        ),
        "create_target_schema": Param(
            default=True,
            type="boolean",
            description="Create the target schema if it does not exist"
        ),
        "dry_run": Param(
            default=False,
            type="boolean",
            description="Only report which tables would be transferred"
        ),
    },
    tags=["sync", "mysql", "schema"],
)
def mysql_schema_sync():
    """Sync DAG: rebuild diverged MySQL tables on the target."""

    @task
    def validate_configuration(**context) -> Dict[str, Any]:
        """
        Build and validate the run configuration.

        Returns:
            Summary of the resolved configuration
        """
        try:
            config = SyncConfig.from_params(context["params"])
        except ConfigurationError as e:
            raise AirflowException(str(e)) from e

        logger.info(
            f"Source: {config.source_conn_id}:{config.source_schema}, "
            f"target: {config.target_conn_id}:{config.target_schema}, "
            f"strategy: {config.strategy.value}"
        )
        logger.info(f"Ledger: {config.ledger_path}")

        return {
            "source_schema": config.source_schema,
            "target_schema": config.target_schema,
            "strategy": config.strategy.value,
            "ledger_path": str(config.ledger_path),
        }

    @task
    def ensure_target_schema(config_summary: Dict[str, Any], **context) -> str:
        """
        Create the target schema if it doesn't exist.

        Args:
            config_summary: Output of validate_configuration

        Returns:
            Schema status
        """
        params = context["params"]
        schema_name = config_summary["target_schema"]

        if not params.get("create_target_schema", True) or params.get("dry_run", False):
            logger.info(f"Skipping creation of target schema {schema_name}")
            return f"Schema {schema_name} unchanged"

        helper = MySqlConnectionHelper(params["target_conn_id"])
        helper.run(sql_utils.create_database_sql(schema_name))

        logger.info(f"Ensured schema {schema_name} exists on target")
        return f"Schema {schema_name} ready"

    @task
    def sync_schema(schema_status: str, **context) -> Dict[str, Any]:
        """
        Run the sync over every selected table.

        Returns:
            Run summary (completed, skipped, up_to_date, failed)
        """
        config = SyncConfig.from_params(context["params"])
        result = run_schema_sync(config)
        summary = result.summary()

        context["ti"].xcom_push(key="completed_tables", value=summary["completed"])
        context["ti"].xcom_push(key="rows_transferred", value=summary["rows_transferred"])

        if not result.success:
            failed = ", ".join(f["table"] for f in summary["failed"])
            raise AirflowException(
                f"{len(result.failed)} tables failed to sync: {failed}. "
                f"Rerun to resume; completed tables are skipped."
            )

        logger.info(
            f"✓ Sync complete: {len(result.completed)} transferred, "
            f"{len(result.skipped)} already completed, {len(result.up_to_date)} up to date"
        )
        return summary

    config_summary = validate_configuration()
    schema_status = ensure_target_schema(config_summary)
    sync_schema(schema_status)


# Instantiate the DAG
mysql_schema_sync()
