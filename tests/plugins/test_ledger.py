"""
Tests for Completion Ledger Module

These tests validate the append-only log, replay on load, and
hand-editing the file to force a table to be transferred again.
"""

import pytest

from mysql_schema_sync.ledger import CompletionLedger


class TestCompletionLedger:
    """Test ledger load and append."""

    @pytest.fixture
    def ledger_path(self, tmp_path):
        return tmp_path / 'work' / 'shop.ledger'

    def test_missing_file_is_empty(self, ledger_path):
        ledger = CompletionLedger(ledger_path)

        assert ledger.load() == frozenset()
        assert len(ledger) == 0
        assert not ledger_path.exists()

    def test_append_creates_file(self, ledger_path):
        ledger = CompletionLedger(ledger_path)
        ledger.append('orders')

        assert ledger_path.read_text() == 'orders\n'
        assert 'orders' in ledger

    def test_append_only(self, ledger_path):
        ledger = CompletionLedger(ledger_path)
        ledger.append('customers')
        ledger.append('orders')

        assert ledger_path.read_text() == 'customers\norders\n'

    def test_reload_replays_log(self, ledger_path):
        first = CompletionLedger(ledger_path)
        first.append('customers')
        first.append('orders')

        second = CompletionLedger(ledger_path)
        assert second.load() == frozenset({'customers', 'orders'})
        assert second.is_completed('orders')
        assert not second.is_completed('products')

    def test_blank_lines_and_whitespace_ignored(self, ledger_path):
        ledger_path.parent.mkdir(parents=True)
        ledger_path.write_text('customers\n\n  orders  \n\n')

        ledger = CompletionLedger(ledger_path)
        assert ledger.load() == frozenset({'customers', 'orders'})

    def test_deleting_line_reopens_table(self, ledger_path):
        ledger = CompletionLedger(ledger_path)
        ledger.append('customers')
        ledger.append('orders')

        ledger_path.write_text('customers\n')

        assert ledger.load() == frozenset({'customers'})
        assert 'orders' not in ledger

    def test_append_after_hand_edit_without_final_newline(self, ledger_path):
        ledger_path.parent.mkdir(parents=True)
        ledger_path.write_text('customers')

        ledger = CompletionLedger(ledger_path)
        ledger.append('orders')

        assert ledger_path.read_text() == 'customers\norders\n'
        assert CompletionLedger(ledger_path).load() == frozenset({'customers', 'orders'})

    def test_lazy_load_on_membership(self, ledger_path):
        ledger_path.parent.mkdir(parents=True)
        ledger_path.write_text('orders\n')

        ledger = CompletionLedger(ledger_path)
        assert ledger.is_completed('orders')

    def test_completed_is_a_snapshot(self, ledger_path):
        ledger = CompletionLedger(ledger_path)
        ledger.append('orders')

        assert ledger.completed == frozenset({'orders'})

    @pytest.mark.parametrize('name', ['', '   ', 'bad\nname', ' padded'])
    def test_invalid_names_rejected(self, ledger_path, name):
        ledger = CompletionLedger(ledger_path)
        with pytest.raises(ValueError):
            ledger.append(name)
        assert not ledger_path.exists()

    def test_check_name(self):
        CompletionLedger.check_name('order items')

        with pytest.raises(ValueError):
            CompletionLedger.check_name(' orders')
