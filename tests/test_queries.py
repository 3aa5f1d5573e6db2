"""Tests for the read-only query facade."""

import pytest

from split_ledger.ledger.queries import LedgerQueries


@pytest.fixture
def queries(db):
    return LedgerQueries(db)


@pytest.fixture
def ledger(service, trip):
    """Alice pays 30 for all three; Bob pays 4 for Alice."""
    service.add_expense(trip.id, "Groceries", "30.00", "alice")
    service.add_expense(trip.id, "Coffee", "4.00", "bob", ["alice"])
    return trip


class TestTotals:
    """Tests for total_spend and member_share."""

    def test_total_spend(self, queries, ledger):
        assert queries.total_spend(ledger.id) == 3400

    def test_member_share_includes_settled(self, queries, ledger):
        assert queries.member_share(ledger.id, "alice") == 1400
        assert queries.member_share(ledger.id, "bob") == 1000

    def test_empty_group(self, queries, trip):
        assert queries.total_spend(trip.id) == 0


class TestOutstanding:
    """Tests for outstanding and dashboard."""

    def test_raw_owes_and_owed(self, queries, ledger):
        alice = queries.outstanding("alice")

        assert alice.owes_minor == 400
        assert alice.owed_minor == 2000
        assert alice.net_minor == 1600
        assert alice.owes_to == {"bob": 400}
        assert alice.owed_by == {"bob": 1000, "carol": 1000}

    def test_settled_splits_drop_out(self, service, queries, ledger):
        service.settle_between("carol", "alice", group_id=ledger.id)

        assert queries.outstanding("carol").owes_minor == 0
        assert queries.outstanding("alice").owed_by == {"bob": 1000}

    def test_dashboard(self, queries, ledger):
        stats = queries.dashboard("alice")

        assert stats.total_expenses_minor == 3400
        assert stats.your_share_minor == 1400
        assert stats.you_owe_minor == 400
        assert stats.you_are_owed_minor == 2000


class TestRecentExpenses:
    """Tests for recent_expenses."""

    def test_newest_first_with_limit(self, queries, ledger):
        expenses = queries.recent_expenses(group_id=ledger.id, limit=1)

        assert [e.description for e in expenses] == ["Coffee"]

    def test_member_filter(self, queries, ledger):
        assert len(queries.recent_expenses(user_id="carol")) == 1
        assert len(queries.recent_expenses(user_id="bob")) == 2
