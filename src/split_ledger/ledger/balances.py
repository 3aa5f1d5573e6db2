"""Raw balance aggregation over unsettled splits.

Output is deliberately NOT netted: if A owes B and B owes A, both directions
are reported. Netting is a separate stage (see planner.py).
"""

import logging
from collections.abc import Iterable

from ..exceptions import SelfDebtDetectedError
from ..models import Balance, SplitWithExpense

logger = logging.getLogger(__name__)

BalanceMap = dict[tuple[str, str], Balance]


def compute_balances(unsettled_splits: Iterable[SplitWithExpense]) -> BalanceMap:
    """
    Accumulate unsettled splits into directional (debtor, creditor) balances.

    Each split adds its amount to the pair (split debtor, expense payer) and
    its ID to that pair's contributing splits.

    Args:
        unsettled_splits: Unsettled splits joined with their expenses

    Returns:
        Mapping of (debtor, creditor) to the accumulated Balance

    Raises:
        SelfDebtDetectedError: If a split's debtor is its expense's payer
    """
    balances: BalanceMap = {}

    for item in unsettled_splits:
        debtor, creditor = item.debtor, item.creditor
        if debtor == creditor:
            logger.error(
                f"Data integrity error: unsettled split {item.split.id} on "
                f"expense {item.expense.id} has payer '{creditor}' owing themselves"
            )
            raise SelfDebtDetectedError(
                f"Split {item.split.id} makes '{debtor}' owe themselves"
            )

        balance = balances.get((debtor, creditor))
        if balance is None:
            balance = balances[(debtor, creditor)] = Balance(
                debtor=debtor, creditor=creditor, amount_minor=0
            )
        balance.amount_minor += item.split.amount_minor
        balance.split_ids.append(item.split.id)

    for balance in balances.values():
        balance.split_ids.sort()

    logger.debug(f"Aggregated {len(balances)} directional balances")
    return balances
