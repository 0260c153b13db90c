"""
Divergence Detector Module

Decides, per table, whether the target copy must be rebuilt from the source.

Three mutually exclusive strategies are supported:
1. TIMESTAMP - source last-modified strictly later than target (cheapest, no scan)
2. ROW_COUNT - approximate row counts differ (cheap, blind to same-count edits)
3. CHECKSUM  - CHECKSUM TABLE ... EXTENDED differs (full scan on both sides)

A table that exists on the target and needs a refresh is always dropped and
recreated from the source definition; rows are never reconciled one by one.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional, TYPE_CHECKING

from mysql_schema_sync.errors import ConfigurationError

if TYPE_CHECKING:
    from mysql_schema_sync.catalog import CatalogReader, TableDescriptor

import logging

logger = logging.getLogger(__name__)


class DivergenceStrategy(Enum):
    TIMESTAMP = 'timestamp'
    ROW_COUNT = 'row_count'
    CHECKSUM = 'checksum'


@dataclass(frozen=True)
class RefreshDecision:
    """Outcome of a divergence check for one table."""

    drop_required: bool
    populate_required: bool
    reason: str = ''

    def __post_init__(self):
        if self.drop_required and not self.populate_required:
            raise ValueError("A table that is dropped must also be repopulated")

    @property
    def is_noop(self) -> bool:
        return not self.populate_required


def _refresh(reason: str) -> RefreshDecision:
    return RefreshDecision(drop_required=True, populate_required=True, reason=reason)


def _noop(reason: str) -> RefreshDecision:
    return RefreshDecision(drop_required=False, populate_required=False, reason=reason)


def normalize_timestamp(value: Optional[datetime]) -> Optional[datetime]:
    """
    Reduce a timestamp to a naive (unzoned) datetime for comparison.

    Aware values are converted to UTC first; naive values are assumed to be
    in the server's own zone already and are returned unchanged.
    """
    if value is None:
        return None
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def decide(
    strategy: Optional[DivergenceStrategy],
    source: 'TableDescriptor',
    target: Optional['TableDescriptor'],
    source_checksum: Optional[int] = None,
    target_checksum: Optional[int] = None,
) -> RefreshDecision:
    """
    Decide whether a table must be refreshed.

    Args:
        strategy: Active divergence strategy
        source: Source table descriptor
        target: Target table descriptor, or None when the table is absent
        source_checksum: Source CHECKSUM TABLE value (CHECKSUM strategy only)
        target_checksum: Target CHECKSUM TABLE value (CHECKSUM strategy only)

    Returns:
        RefreshDecision for the table

    Raises:
        ConfigurationError: If no strategy is configured
    """
    if strategy is None:
        raise ConfigurationError("No divergence strategy configured")
    if not isinstance(strategy, DivergenceStrategy):
        raise ConfigurationError(f"Unknown divergence strategy: {strategy!r}")

    if target is None:
        return RefreshDecision(
            drop_required=False,
            populate_required=True,
            reason='absent on target',
        )

    if strategy is DivergenceStrategy.TIMESTAMP:
        source_ts = normalize_timestamp(source.last_modified)
        target_ts = normalize_timestamp(target.last_modified)
        if source_ts is None or target_ts is None:
            return _refresh('timestamp unavailable')
        if source_ts > target_ts:
            return _refresh(f'source modified {source_ts} > target {target_ts}')
        return _noop(f'source modified {source_ts} <= target {target_ts}')

    if strategy is DivergenceStrategy.ROW_COUNT:
        if source.row_count != target.row_count:
            return _refresh(f'row count {source.row_count} != {target.row_count}')
        return _noop(f'row count {source.row_count} == {target.row_count}')

    # CHECKSUM
    if source_checksum != target_checksum:
        return _refresh(f'checksum {source_checksum} != {target_checksum}')
    return _noop(f'checksum {source_checksum} matches')


class DivergenceDetector:
    """
    Binds a strategy to the source and target catalogs.

    Checksums are fetched on demand, and only for tables present on both
    sides, because CHECKSUM TABLE ... EXTENDED scans the whole table.
    """

    def __init__(
        self,
        strategy: Optional[DivergenceStrategy],
        source_catalog: 'CatalogReader',
        target_catalog: 'CatalogReader',
    ):
        """
        Initialize the detector.

        Args:
            strategy: Active divergence strategy
            source_catalog: Catalog reader for the source schema
            target_catalog: Catalog reader for the target schema

        Raises:
            ConfigurationError: If strategy is missing, so the run fails
                before any table is touched
        """
        if not isinstance(strategy, DivergenceStrategy):
            raise ConfigurationError(
                f"Exactly one divergence strategy must be configured (got {strategy!r})"
            )
        self.strategy = strategy
        self.source_catalog = source_catalog
        self.target_catalog = target_catalog

    def decide(
        self,
        source: 'TableDescriptor',
        target: Optional['TableDescriptor'],
    ) -> RefreshDecision:
        source_checksum = None
        target_checksum = None

        if self.strategy is DivergenceStrategy.CHECKSUM and target is not None:
            source_checksum = self.source_catalog.checksum(source.name)
            target_checksum = self.target_catalog.checksum(target.name)

        decision = decide(
            self.strategy,
            source,
            target,
            source_checksum=source_checksum,
            target_checksum=target_checksum,
        )
        logger.debug(f"Decision for {source.name}: {decision}")
        return decision
