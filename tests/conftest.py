"""Shared fixtures for Split Ledger tests."""

from datetime import UTC, datetime

import pytest

from split_ledger.config import Settings
from split_ledger.db import Database
from split_ledger.ledger.service import LedgerService
from split_ledger.models import Expense, Split, SplitWithExpense


@pytest.fixture
def settings(tmp_path):
    """Create settings pointing at a temporary database."""
    return Settings(database_path=tmp_path / "ledger.db")


@pytest.fixture
def db(settings):
    """Create a temporary database."""
    database = Database(settings.database_path)
    yield database
    database.close()


@pytest.fixture
def service(settings, db):
    """Create a LedgerService instance."""
    return LedgerService(settings, db)


@pytest.fixture
def trip(service):
    """A group of alice (owner), bob and carol."""
    group = service.create_group("Trip", created_by="alice")
    service.add_member(group.id, "bob")
    return service.add_member(group.id, "carol")


def make_item(
    split_id: str, debtor: str, payer: str, amount_minor: int, expense_id: str = "e1"
) -> SplitWithExpense:
    """Build an unsettled split joined with a minimal expense."""
    return SplitWithExpense(
        split=Split(
            id=split_id,
            expense_id=expense_id,
            user_id=debtor,
            amount_minor=amount_minor,
        ),
        expense=Expense(
            id=expense_id,
            group_id="g1",
            description=f"Expense {expense_id}",
            amount_minor=amount_minor,
            paid_by=payer,
            created_at=datetime(2025, 1, 15, tzinfo=UTC),
        ),
    )
