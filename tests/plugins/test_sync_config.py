"""
Tests for Sync Configuration Module

These tests validate strategy resolution, identifier validation,
environment fallbacks, and table filtering.
"""

import pytest
from pathlib import Path

from mysql_schema_sync.divergence import DivergenceStrategy
from mysql_schema_sync.errors import ConfigurationError
from mysql_schema_sync.sync_config import (
    DEFAULT_FETCH_SIZE,
    DEFAULT_WORK_DIR,
    SyncConfig,
    resolve_strategy,
)


class TestResolveStrategy:
    """Test divergence strategy resolution."""

    @pytest.mark.parametrize('value,expected', [
        ('timestamp', DivergenceStrategy.TIMESTAMP),
        ('ByTimestamp', DivergenceStrategy.TIMESTAMP),
        ('row_count', DivergenceStrategy.ROW_COUNT),
        ('rowcount', DivergenceStrategy.ROW_COUNT),
        ('row-count', DivergenceStrategy.ROW_COUNT),
        ('count', DivergenceStrategy.ROW_COUNT),
        ('CHECKSUM', DivergenceStrategy.CHECKSUM),
    ])
    def test_names_and_aliases(self, value, expected):
        assert resolve_strategy(value) is expected

    def test_enum_passthrough(self):
        assert resolve_strategy(DivergenceStrategy.CHECKSUM) is DivergenceStrategy.CHECKSUM

    def test_duplicates_of_one_strategy_allowed(self):
        assert resolve_strategy(['timestamp', 'by_timestamp']) is DivergenceStrategy.TIMESTAMP

    def test_none_rejected(self):
        with pytest.raises(ConfigurationError, match="No divergence strategy"):
            resolve_strategy(None)

    def test_empty_string_rejected(self):
        with pytest.raises(ConfigurationError):
            resolve_strategy('')

    def test_unknown_rejected(self):
        with pytest.raises(ConfigurationError, match="Unknown"):
            resolve_strategy('mtime')

    def test_two_strategies_rejected(self):
        with pytest.raises(ConfigurationError, match="mutually exclusive"):
            resolve_strategy('timestamp,checksum')

    def test_two_strategies_in_list_rejected(self):
        with pytest.raises(ConfigurationError):
            resolve_strategy(['row_count', DivergenceStrategy.CHECKSUM])


class TestSyncConfig:
    """Test SyncConfig construction and validation."""

    def test_target_schema_defaults_to_source(self):
        config = SyncConfig(source_schema='shop', strategy=DivergenceStrategy.TIMESTAMP)
        assert config.target_schema == 'shop'

    def test_strategy_string_resolved(self):
        config = SyncConfig(source_schema='shop', strategy='checksum')
        assert config.strategy is DivergenceStrategy.CHECKSUM

    def test_empty_schema_rejected(self):
        with pytest.raises(ConfigurationError):
            SyncConfig(source_schema='', strategy=DivergenceStrategy.TIMESTAMP)

    def test_long_schema_rejected(self):
        with pytest.raises(ConfigurationError):
            SyncConfig(source_schema='s' * 65, strategy=DivergenceStrategy.TIMESTAMP)

    def test_missing_strategy_rejected(self):
        with pytest.raises(ConfigurationError):
            SyncConfig(source_schema='shop', strategy=None)

    def test_fetch_size_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            SyncConfig(source_schema='shop', strategy='timestamp', fetch_size=0)

    def test_paths(self, tmp_path):
        config = SyncConfig(source_schema='shop', strategy='timestamp', work_dir=tmp_path)

        assert config.ledger_path == tmp_path / 'shop.ledger'
        assert config.artifact_path('orders') == tmp_path / 'shop.orders.tsv'
        assert config.marker_path('orders') == tmp_path / 'shop.orders.inprogress'

    def test_artifact_path_stays_in_work_dir(self, tmp_path):
        config = SyncConfig(source_schema='shop', strategy='timestamp', work_dir=tmp_path)

        path = config.artifact_path('a/b')
        assert path.parent == tmp_path

    def test_include_and_exclude_patterns(self):
        config = SyncConfig(
            source_schema='shop',
            strategy='timestamp',
            include_tables='order*, customers',
            exclude_tables=['*_archive'],
        )

        assert config.table_selected('orders')
        assert config.table_selected('customers')
        assert not config.table_selected('products')
        assert not config.table_selected('orders_archive')

    def test_no_patterns_selects_everything(self):
        config = SyncConfig(source_schema='shop', strategy='timestamp')
        assert config.table_selected('anything')


class TestFromParams:
    """Test building config from DAG params and environment."""

    def test_minimal_params(self):
        config = SyncConfig.from_params(
            {'source_schema': 'shop', 'strategy': 'row_count'},
            env={},
        )

        assert config.source_schema == 'shop'
        assert config.target_schema == 'shop'
        assert config.strategy is DivergenceStrategy.ROW_COUNT
        assert config.source_conn_id == 'mysql_source'
        assert config.target_conn_id == 'mysql_target'
        assert config.work_dir == Path(DEFAULT_WORK_DIR)
        assert config.fetch_size == DEFAULT_FETCH_SIZE
        assert config.keep_artifacts is False
        assert config.dry_run is False

    def test_missing_schema_rejected(self):
        with pytest.raises(ConfigurationError, match="source_schema"):
            SyncConfig.from_params({'strategy': 'timestamp'}, env={})

    def test_missing_strategy_rejected(self):
        with pytest.raises(ConfigurationError):
            SyncConfig.from_params({'source_schema': 'shop'}, env={})

    def test_environment_fallbacks(self):
        env = {
            'SYNC_WORK_DIR': '/data/sync',
            'SYNC_KEEP_ARTIFACTS': 'true',
            'SYNC_FETCH_SIZE': '500',
        }
        config = SyncConfig.from_params({'source_schema': 'shop', 'strategy': 'timestamp'}, env=env)

        assert config.work_dir == Path('/data/sync')
        assert config.keep_artifacts is True
        assert config.fetch_size == 500

    def test_params_override_environment(self):
        env = {'SYNC_WORK_DIR': '/data/sync', 'SYNC_KEEP_ARTIFACTS': 'true'}
        config = SyncConfig.from_params(
            {
                'source_schema': 'shop',
                'strategy': 'timestamp',
                'work_dir': '/other',
                'keep_artifacts': False,
            },
            env=env,
        )

        assert config.work_dir == Path('/other')
        assert config.keep_artifacts is False

    def test_invalid_fetch_size(self):
        with pytest.raises(ConfigurationError, match="fetch_size"):
            SyncConfig.from_params(
                {'source_schema': 'shop', 'strategy': 'timestamp'},
                env={'SYNC_FETCH_SIZE': 'lots'},
            )
