"""
Schema Sync Runner

Coordinates one sync run:
1. Validate configuration (no engine call happens before this succeeds)
2. Check both servers are reachable
3. Snapshot source and target catalogs
4. Load the completion ledger
5. For each selected source table, in name order:
   - skip it if the ledger already lists it
   - rebuild it if an in-progress marker survived an interrupted run
   - otherwise decide whether it diverged and, if so, transfer it

A failed table is recorded and the run moves on; a lost connection aborts
the whole run. Tables are processed one at a time.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import logging
import time

from mysql_schema_sync.catalog import CatalogReader, SchemaSnapshot
from mysql_schema_sync.divergence import DivergenceDetector, RefreshDecision
from mysql_schema_sync.errors import ConnectivityError, TransferError
from mysql_schema_sync.ledger import CompletionLedger
from mysql_schema_sync.mysql_helper import MySqlConnectionHelper
from mysql_schema_sync.sync_config import SyncConfig
from mysql_schema_sync.transfer import TableTransfer, TransferResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TablePlan:
    """What a run will do with one source table."""

    table: str
    action: str  # 'skip' (ledger), 'up_to_date', or 'transfer'
    decision: Optional[RefreshDecision] = None

    @property
    def needs_transfer(self) -> bool:
        return self.action == 'transfer'


@dataclass
class SyncResult:
    """Outcome of one run."""

    completed: List[TransferResult] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    up_to_date: List[str] = field(default_factory=list)
    failed: List[TransferError] = field(default_factory=list)
    planned: List[TablePlan] = field(default_factory=list)
    elapsed_time_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    @property
    def completed_tables(self) -> List[str]:
        return [r.table for r in self.completed]

    def summary(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'completed': self.completed_tables,
            'skipped': list(self.skipped),
            'up_to_date': list(self.up_to_date),
            'failed': [
                {'table': e.table, 'phase': e.phase, 'error': e.message}
                for e in self.failed
            ],
            'rows_transferred': sum(r.rows_loaded for r in self.completed),
            'elapsed_time_seconds': round(self.elapsed_time_seconds, 2),
        }


class SchemaSync:
    """Synchronize one schema from a source server to a target server."""

    def __init__(
        self,
        config: SyncConfig,
        source_helper: Optional[MySqlConnectionHelper] = None,
        target_helper: Optional[MySqlConnectionHelper] = None,
    ):
        """
        Initialize the sync.

        Args:
            config: Validated run configuration
            source_helper: Source connection helper (built from config if omitted)
            target_helper: Target connection helper (built from config if omitted)
        """
        self.config = config
        self.source_helper = source_helper or MySqlConnectionHelper(config.source_conn_id)
        self.target_helper = target_helper or MySqlConnectionHelper(config.target_conn_id)
        self.source_catalog = CatalogReader(self.source_helper, config.source_schema)
        self.target_catalog = CatalogReader(self.target_helper, config.target_schema)
        self.detector = DivergenceDetector(config.strategy, self.source_catalog, self.target_catalog)
        self.ledger = CompletionLedger(config.ledger_path)

    def check_connectivity(self) -> None:
        """
        Verify both servers answer a trivial query.

        Raises:
            ConnectivityError: If either server is unreachable
        """
        for side, helper in (('source', self.source_helper), ('target', self.target_helper)):
            try:
                helper.ping()
            except Exception as e:
                raise ConnectivityError(
                    f"Cannot reach {side} server ({helper.conn_id}): {e}"
                ) from e
            logger.info(f"Connected to {side} server ({helper.conn_id})")

    def _plan_table(
        self,
        name: str,
        source: SchemaSnapshot,
        target: SchemaSnapshot,
        completed: frozenset,
    ) -> TablePlan:
        if name in completed:
            return TablePlan(table=name, action='skip')

        target_descriptor = target.get(name)

        if self.config.marker_path(name).exists():
            # Left behind by an interrupted run: the target copy cannot be trusted
            decision = RefreshDecision(
                drop_required=target_descriptor is not None,
                populate_required=True,
                reason='interrupted transfer',
            )
        else:
            decision = self.detector.decide(source[name], target_descriptor)

        if decision.populate_required:
            return TablePlan(table=name, action='transfer', decision=decision)
        return TablePlan(table=name, action='up_to_date', decision=decision)

    def _snapshots(self):
        source = self.source_catalog.snapshot(with_definitions=True)
        target = self.target_catalog.snapshot(with_definitions=False)

        only_on_target = sorted(set(target) - set(source))
        if only_on_target:
            logger.info(
                f"{len(only_on_target)} tables exist only on the target and are left alone: "
                f"{', '.join(only_on_target)}"
            )
        return source, target

    def plan(self) -> List[TablePlan]:
        """
        Decide what a run would do, without changing anything.

        Returns:
            One TablePlan per selected source table, in name order
        """
        self.check_connectivity()
        source, target = self._snapshots()
        completed = self.ledger.load()

        plans = []
        for name in sorted(source):
            if not self.config.table_selected(name):
                continue
            plans.append(self._plan_table(name, source, target, completed))
        return plans

    def run(self) -> SyncResult:
        """
        Run the sync.

        Returns:
            SyncResult describing every selected table

        Raises:
            ConnectivityError: If a server cannot be reached or is lost
            MetadataError: If a catalog query fails
        """
        start_time = time.time()
        result = SyncResult()

        logger.info(
            f"Syncing {self.config.source_conn_id}:{self.config.source_schema} -> "
            f"{self.config.target_conn_id}:{self.config.target_schema} "
            f"(strategy={self.config.strategy.value}, work_dir={self.config.work_dir})"
        )

        self.check_connectivity()
        source, target = self._snapshots()
        completed = self.ledger.load()
        transfer = TableTransfer(
            self.config,
            self.source_helper,
            self.target_helper,
            self.source_catalog,
            self.ledger,
        )

        selected = [name for name in sorted(source) if self.config.table_selected(name)]
        logger.info(f"{len(selected)} tables selected, {len(completed)} already in ledger")

        for index, name in enumerate(selected, start=1):
            plan = self._plan_table(name, source, target, completed)
            result.planned.append(plan)

            if plan.action == 'skip':
                logger.info(f"[{index}/{len(selected)}] {name}: already completed (ledger), skipping")
                result.skipped.append(name)
                continue

            if plan.action == 'up_to_date':
                logger.info(f"[{index}/{len(selected)}] {name}: up to date ({plan.decision.reason})")
                result.up_to_date.append(name)
                continue

            if self.config.dry_run:
                logger.info(f"[{index}/{len(selected)}] {name}: would transfer ({plan.decision.reason})")
                continue

            logger.info(f"[{index}/{len(selected)}] {name}: transferring")
            try:
                result.completed.append(transfer.transfer(source[name], plan.decision))
            except TransferError as e:
                logger.error(f"✗ {e}")
                result.failed.append(e)

        result.elapsed_time_seconds = time.time() - start_time
        self._log_summary(result)
        return result

    def _log_summary(self, result: SyncResult) -> None:
        summary = result.summary()
        logger.info(
            f"Sync finished in {summary['elapsed_time_seconds']}s: "
            f"{len(result.completed)} transferred, {len(result.skipped)} skipped (ledger), "
            f"{len(result.up_to_date)} up to date, {len(result.failed)} failed"
        )
        for error in result.failed:
            logger.error(f"  ✗ {error.table} ({error.phase}): {error.message}")


def run_schema_sync(
    config: SyncConfig,
    source_helper: Optional[MySqlConnectionHelper] = None,
    target_helper: Optional[MySqlConnectionHelper] = None,
) -> SyncResult:
    """
    Convenience function to run one sync.

    Args:
        config: Run configuration
        source_helper: Optional source connection helper
        target_helper: Optional target connection helper

    Returns:
        SyncResult for the run
    """
    sync = SchemaSync(config, source_helper=source_helper, target_helper=target_helper)
    if config.dry_run:
        logger.info("Dry run: no table will be changed")
    return sync.run()
