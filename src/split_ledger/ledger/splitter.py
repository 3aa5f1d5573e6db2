"""Equal-split calculator.

Shares are computed on integer minor units. The remainder left by integer
division is handed out one minor unit at a time, in ascending identity
order, so allocations always add up to the expense amount exactly.
"""

import logging
from collections.abc import Collection, Iterable

from ..exceptions import InvalidAmountError, InvalidParticipantsError
from ..models import Allocation

logger = logging.getLogger(__name__)


def allocate(
    amount_minor: int,
    participants: Iterable[str],
    payer_id: str,
    members: Collection[str],
) -> list[Allocation]:
    """
    Split an amount equally among participants.

    Steps:
    1. Order participants by identity (duplicates collapse)
    2. Give everyone amount // count minor units
    3. Give the first amount % count participants one extra minor unit
    4. Mark the payer's own share settled (a member can't owe themselves)

    Args:
        amount_minor: Expense amount in minor units
        participants: Identities sharing the expense
        payer_id: Identity of the member who paid
        members: Current members of the expense's group

    Returns:
        Allocations ordered by ascending identity

    Raises:
        InvalidAmountError: If the amount is not positive, or too small to give
                            every participant at least one minor unit
        InvalidParticipantsError: If participants is empty or includes a non-member
    """
    if amount_minor <= 0:
        raise InvalidAmountError("Expense amount must be greater than zero")

    ordered = sorted(set(participants))
    if not ordered:
        raise InvalidParticipantsError("Select at least one member to split with")

    outsiders = [user_id for user_id in ordered if user_id not in members]
    if outsiders:
        raise InvalidParticipantsError(
            f"Not members of this group: {', '.join(outsiders)}"
        )

    count = len(ordered)
    if amount_minor < count:
        raise InvalidAmountError(
            f"{amount_minor} minor units can't be split among {count} participants"
        )

    base, remainder = divmod(amount_minor, count)
    allocations = [
        Allocation(
            user_id=user_id,
            amount_minor=base + (1 if idx < remainder else 0),
            settled=user_id == payer_id,
        )
        for idx, user_id in enumerate(ordered)
    ]

    if remainder:
        logger.debug(
            f"Distributed {remainder} leftover minor units to "
            f"{', '.join(ordered[:remainder])}"
        )

    return allocations
