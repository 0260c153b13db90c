"""
Sync Configuration Module

Builds the single SyncConfig value a run is driven by, from Airflow DAG
params with environment-variable fallbacks, and validates it before any
engine is contacted.

Environment knobs:
- SYNC_WORK_DIR: directory for transfer artifacts and the ledger
- SYNC_KEEP_ARTIFACTS=true: leave artifacts in place after a successful load
- SYNC_FETCH_SIZE=N: rows fetched per round trip while exporting
"""

from dataclasses import dataclass, field
from fnmatch import fnmatch
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Tuple, Union
import logging
import os

from mysql_schema_sync.divergence import DivergenceStrategy
from mysql_schema_sync.errors import ConfigurationError
from mysql_schema_sync.sql_utils import validate_identifier

logger = logging.getLogger(__name__)

DEFAULT_SOURCE_CONN_ID = 'mysql_source'
DEFAULT_TARGET_CONN_ID = 'mysql_target'
DEFAULT_WORK_DIR = '/tmp/mysql_schema_sync'
DEFAULT_FETCH_SIZE = 10000

STRATEGY_ALIASES = {
    'timestamp': DivergenceStrategy.TIMESTAMP,
    'by_timestamp': DivergenceStrategy.TIMESTAMP,
    'bytimestamp': DivergenceStrategy.TIMESTAMP,
    'row_count': DivergenceStrategy.ROW_COUNT,
    'rowcount': DivergenceStrategy.ROW_COUNT,
    'count': DivergenceStrategy.ROW_COUNT,
    'by_row_count': DivergenceStrategy.ROW_COUNT,
    'byrowcount': DivergenceStrategy.ROW_COUNT,
    'checksum': DivergenceStrategy.CHECKSUM,
    'by_checksum': DivergenceStrategy.CHECKSUM,
    'bychecksum': DivergenceStrategy.CHECKSUM,
}


def _env_flag(value: Optional[str]) -> bool:
    return (value or '').strip().lower() in ('true', '1', 'yes', 'on')


def resolve_strategy(
    value: Union[DivergenceStrategy, str, Iterable[Any], None],
) -> DivergenceStrategy:
    """
    Resolve the configured divergence strategy.

    Accepts a DivergenceStrategy, a name or alias ("timestamp", "row_count",
    "checksum", ...), a comma-separated string, or an iterable of those.
    Exactly one distinct strategy must result.

    Raises:
        ConfigurationError: If no strategy, an unknown one, or more than one
            distinct strategy is given
    """
    if isinstance(value, DivergenceStrategy):
        return value

    if value is None:
        raise ConfigurationError(
            "No divergence strategy configured: choose one of timestamp, row_count, checksum"
        )

    if isinstance(value, str):
        names = [part.strip() for part in value.split(',') if part.strip()]
    else:
        names = list(value)

    resolved = set()
    for name in names:
        if isinstance(name, DivergenceStrategy):
            resolved.add(name)
            continue
        key = str(name).strip().lower().replace('-', '_')
        if key not in STRATEGY_ALIASES:
            raise ConfigurationError(f"Unknown divergence strategy '{name}'")
        resolved.add(STRATEGY_ALIASES[key])

    if not resolved:
        raise ConfigurationError(
            "No divergence strategy configured: choose one of timestamp, row_count, checksum"
        )
    if len(resolved) > 1:
        chosen = ', '.join(sorted(s.value for s in resolved))
        raise ConfigurationError(
            f"Divergence strategies are mutually exclusive, got: {chosen}"
        )
    return resolved.pop()


def _as_patterns(value: Any) -> Tuple[str, ...]:
    """Normalize a list or comma-separated string of patterns."""
    if not value:
        return ()
    if isinstance(value, str):
        return tuple(p.strip() for p in value.split(',') if p.strip())
    patterns = []
    for item in value:
        if isinstance(item, str):
            patterns.extend(p.strip() for p in item.split(',') if p.strip())
    return tuple(patterns)


@dataclass(frozen=True)
class SyncConfig:
    source_schema: str
    strategy: DivergenceStrategy
    target_schema: str = ''
    source_conn_id: str = DEFAULT_SOURCE_CONN_ID
    target_conn_id: str = DEFAULT_TARGET_CONN_ID
    work_dir: Path = Path(DEFAULT_WORK_DIR)
    keep_artifacts: bool = False
    include_tables: Tuple[str, ...] = field(default_factory=tuple)
    exclude_tables: Tuple[str, ...] = field(default_factory=tuple)
    fetch_size: int = DEFAULT_FETCH_SIZE
    verify_row_counts: bool = True
    dry_run: bool = False

    def __post_init__(self):
        try:
            validate_identifier(self.source_schema, "source schema")
            if not self.target_schema:
                object.__setattr__(self, 'target_schema', self.source_schema)
            validate_identifier(self.target_schema, "target schema")
        except ValueError as e:
            raise ConfigurationError(str(e))

        if not self.source_conn_id or not self.target_conn_id:
            raise ConfigurationError("Source and target connection IDs are required")

        object.__setattr__(self, 'strategy', resolve_strategy(self.strategy))
        object.__setattr__(self, 'work_dir', Path(self.work_dir))
        object.__setattr__(self, 'include_tables', _as_patterns(self.include_tables))
        object.__setattr__(self, 'exclude_tables', _as_patterns(self.exclude_tables))

        if self.fetch_size < 1:
            raise ConfigurationError(f"fetch_size must be positive (got {self.fetch_size})")

    @property
    def ledger_path(self) -> Path:
        return self.work_dir / f"{self.source_schema}.ledger"

    def _work_file(self, table: str, suffix: str) -> Path:
        # Table names may contain path separators; keep the file inside work_dir
        safe_name = table.replace(os.sep, '_').replace('/', '_')
        return self.work_dir / f"{self.source_schema}.{safe_name}.{suffix}"

    def artifact_path(self, table: str) -> Path:
        return self._work_file(table, 'tsv')

    def marker_path(self, table: str) -> Path:
        """In-progress marker: exists from the first target change until the ledger entry."""
        return self._work_file(table, 'inprogress')

    def table_selected(self, table: str) -> bool:
        """Apply include/exclude patterns (fnmatch wildcards) to a table name."""
        if self.include_tables and not any(fnmatch(table, p) for p in self.include_tables):
            return False
        for pattern in self.exclude_tables:
            if fnmatch(table, pattern):
                logger.info(f"Excluding table {table} (matches pattern '{pattern}')")
                return False
        return True

    @classmethod
    def from_params(
        cls,
        params: Mapping[str, Any],
        env: Optional[Mapping[str, str]] = None,
    ) -> 'SyncConfig':
        """
        Build a config from DAG params, falling back to environment variables.

        Args:
            params: DAG run params
            env: Environment mapping (defaults to os.environ)

        Raises:
            ConfigurationError: For missing or invalid settings
        """
        env = os.environ if env is None else env

        source_schema = params.get('source_schema')
        if not source_schema:
            raise ConfigurationError("source_schema parameter is required")

        work_dir = params.get('work_dir') or env.get('SYNC_WORK_DIR', DEFAULT_WORK_DIR)

        keep_artifacts = params.get('keep_artifacts')
        if keep_artifacts is None:
            keep_artifacts = _env_flag(env.get('SYNC_KEEP_ARTIFACTS'))

        fetch_size = params.get('fetch_size') or env.get('SYNC_FETCH_SIZE', DEFAULT_FETCH_SIZE)
        try:
            fetch_size = int(fetch_size)
        except (TypeError, ValueError):
            raise ConfigurationError(f"Invalid fetch_size: {fetch_size!r}")

        return cls(
            source_schema=source_schema,
            target_schema=params.get('target_schema') or '',
            strategy=resolve_strategy(params.get('strategy')),
            source_conn_id=params.get('source_conn_id') or DEFAULT_SOURCE_CONN_ID,
            target_conn_id=params.get('target_conn_id') or DEFAULT_TARGET_CONN_ID,
            work_dir=Path(work_dir),
            keep_artifacts=bool(keep_artifacts),
            include_tables=_as_patterns(params.get('include_tables')),
            exclude_tables=_as_patterns(params.get('exclude_tables')),
            fetch_size=fetch_size,
            verify_row_counts=bool(params.get('verify_row_counts', True)),
            dry_run=bool(params.get('dry_run', False)),
        )
