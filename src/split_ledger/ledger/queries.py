"""Read-only views over the ledger for presentation layers.

Nothing here is cached: every view is recomputed from the store, so it is
always consistent with the ledger at query time.
"""

import logging

from ..db import Database
from ..models import DashboardStats, Expense, Outstanding
from .balances import compute_balances

logger = logging.getLogger(__name__)


class LedgerQueries:
    """Totals and outstanding-balance views built on the balance aggregator."""

    def __init__(self, database: Database):
        """Initialize the query facade."""
        self.db = database

    def total_spend(self, group_id: str) -> int:
        """Total of every expense recorded in a group, in minor units."""
        return sum(e.amount_minor for e in self.db.iter_expenses(group_id=group_id))

    def member_share(self, group_id: str, user_id: str) -> int:
        """A member's share of a group's expenses (settled or not), in minor units."""
        return sum(
            item.split.amount_minor
            for item in self.db.iter_splits(group_id=group_id, user_id=user_id)
            if item.debtor == user_id
        )

    def outstanding(self, user_id: str, group_id: str | None = None) -> Outstanding:
        """
        What a member owes and is owed, per counterparty.

        Uses raw directional balances: opposing debts are shown separately,
        not netted against each other.

        Args:
            user_id: The member to report on
            group_id: Restrict to one group (all groups when None)
        """
        balances = compute_balances(
            self.db.query_unsettled_splits(group_id=group_id, user_id=user_id)
        )

        result = Outstanding(user_id=user_id)
        for (debtor, creditor), balance in sorted(balances.items()):
            if debtor == user_id:
                result.owes_minor += balance.amount_minor
                result.owes_to[creditor] = balance.amount_minor
            elif creditor == user_id:
                result.owed_minor += balance.amount_minor
                result.owed_by[debtor] = balance.amount_minor

        logger.debug(
            f"Outstanding for {user_id}: owes {result.owes_minor}, "
            f"owed {result.owed_minor}"
        )
        return result

    def dashboard(self, user_id: str) -> DashboardStats:
        """Headline numbers across every expense a member has a share in."""
        stats = DashboardStats(user_id=user_id)

        for item in self.db.iter_splits(user_id=user_id):
            if item.debtor != user_id:
                continue
            stats.total_expenses_minor += item.expense.amount_minor
            stats.your_share_minor += item.split.amount_minor

        owed = self.outstanding(user_id)
        stats.you_owe_minor = owed.owes_minor
        stats.you_are_owed_minor = owed.owed_minor
        return stats

    def recent_expenses(
        self,
        group_id: str | None = None,
        user_id: str | None = None,
        limit: int = 20,
    ) -> list[Expense]:
        """Most recent expenses, newest first."""
        return list(
            self.db.iter_expenses(group_id=group_id, user_id=user_id, limit=limit)
        )
