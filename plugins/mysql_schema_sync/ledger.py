"""
Completion Ledger Module

Tracks which tables have finished a full transfer in the current campaign,
so that a rerun after a failure or crash skips them.

The ledger is two cooperating parts:
- a durable log: a plain text file, one table name per line, only ever
  appended to (never rewritten or truncated)
- an in-memory set rebuilt from the log when load() is called

Deleting a line from the file is the supported way to force a table to be
transferred again on the next run. Concurrent runs must not share a ledger.
"""

from pathlib import Path
from typing import FrozenSet, Set
import logging
import os

logger = logging.getLogger(__name__)


class CompletionLedger:
    """Append-only record of fully transferred tables."""

    def __init__(self, path: Path):
        """
        Initialize the ledger.

        Args:
            path: Ledger file location (created on first append)
        """
        self.path = Path(path)
        self._completed: Set[str] = set()
        self._loaded = False

    def load(self) -> FrozenSet[str]:
        """
        Replay the log and rebuild the completed set.

        A missing file means nothing has completed yet. Blank lines and
        surrounding whitespace are ignored.

        Returns:
            Names of tables already transferred
        """
        completed: Set[str] = set()
        if self.path.exists():
            with open(self.path, 'r', encoding='utf-8') as handle:
                for line in handle:
                    name = line.strip()
                    if name:
                        completed.add(name)

        self._completed = completed
        self._loaded = True
        logger.info(f"Loaded ledger {self.path}: {len(completed)} tables already completed")
        return frozenset(completed)

    @staticmethod
    def check_name(table: str) -> None:
        """
        Check that a table name survives a write/replay cycle unchanged.

        load() strips each line, so names with surrounding whitespace or line
        breaks cannot be recorded.

        Raises:
            ValueError: If the name cannot be recorded
        """
        if not table or not table.strip():
            raise ValueError("Cannot record an empty table name")
        if '\n' in table or '\r' in table or table != table.strip():
            raise ValueError(f"Cannot record table name {table!r} in the ledger")

    def append(self, table: str) -> None:
        """
        Record a table as completed.

        The entry is flushed and fsynced before this returns, so a crash
        immediately afterwards cannot lose it.

        Raises:
            ValueError: If the name is empty or would break the line format
        """
        self.check_name(table)

        self.path.parent.mkdir(parents=True, exist_ok=True)
        entry = table + '\n'
        if self._missing_final_newline():
            # A hand-edited file may end mid-line
            entry = '\n' + entry

        with open(self.path, 'a', encoding='utf-8') as handle:
            handle.write(entry)
            handle.flush()
            os.fsync(handle.fileno())

        self._completed.add(table)
        logger.info(f"Ledger: recorded {table} as completed")

    def _missing_final_newline(self) -> bool:
        if not self.path.exists() or self.path.stat().st_size == 0:
            return False
        with open(self.path, 'rb') as handle:
            handle.seek(-1, os.SEEK_END)
            return handle.read(1) != b'\n'

    def is_completed(self, table: str) -> bool:
        if not self._loaded:
            self.load()
        return table in self._completed

    @property
    def completed(self) -> FrozenSet[str]:
        if not self._loaded:
            self.load()
        return frozenset(self._completed)

    def __contains__(self, table: object) -> bool:
        return isinstance(table, str) and self.is_completed(table)

    def __len__(self) -> int:
        return len(self.completed)
