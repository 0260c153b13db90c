"""
Tests for the MySQL Schema Sync DAG definition
"""

import os
import sys
import pytest

# Add parent directories to path for imports
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..')))
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..', 'plugins')))

from airflow.models import DagBag

DAGS_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', '..', 'dags'))


class TestMySqlSchemaSyncDag:
    """Test DAG structure and parameters."""

    @pytest.fixture(scope="class")
    def dag_bag(self):
        """Create a DagBag for testing."""
        return DagBag(dag_folder=DAGS_DIR, include_examples=False)

    def test_no_import_errors(self, dag_bag):
        assert dag_bag.import_errors == {}

    def test_dag_has_expected_params(self, dag_bag):
        dag = dag_bag.get_dag("mysql_schema_sync")
        assert dag is not None

        expected_params = [
            "source_conn_id",
            "target_conn_id",
            "source_schema",
            "target_schema",
            "strategy",
            "include_tables",
            "exclude_tables",
            "work_dir",
            "keep_artifacts",
            "create_target_schema",
            "dry_run",
        ]
        for param in expected_params:
            assert param in dag.params, f"Missing expected parameter: {param}"

    def test_task_order(self, dag_bag):
        dag = dag_bag.get_dag("mysql_schema_sync")

        validate = dag.get_task("validate_configuration")
        ensure = dag.get_task("ensure_target_schema")
        sync = dag.get_task("sync_schema")

        assert "ensure_target_schema" in validate.downstream_task_ids
        assert "sync_schema" in ensure.downstream_task_ids
        assert sync.downstream_task_ids == set()

    def test_single_active_run(self, dag_bag):
        dag = dag_bag.get_dag("mysql_schema_sync")
        assert dag.max_active_runs == 1

    def test_strategy_has_no_default(self, dag_bag):
        dag = dag_bag.get_dag("mysql_schema_sync")
        assert dag.params["strategy"] is None

    def test_default_params_fail_validation(self, dag_bag):
        from mysql_schema_sync.errors import ConfigurationError
        from mysql_schema_sync.sync_config import SyncConfig

        dag = dag_bag.get_dag("mysql_schema_sync")
        params = dict(dag.params.dump())
        params["source_schema"] = "shop"

        with pytest.raises(ConfigurationError, match="No divergence strategy"):
            SyncConfig.from_params(params, env={})
