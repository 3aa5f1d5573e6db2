"""Settlement planning: net directional balances into pay instructions."""

import logging
from collections.abc import Iterable

from ..models import Balance, SettlementInstruction
from .balances import BalanceMap

logger = logging.getLogger(__name__)


def net_pair(
    forward: Balance | None, backward: Balance | None
) -> SettlementInstruction | None:
    """
    Net the two directions of one member pair into a single instruction.

    Args:
        forward: What A owes B (or None)
        backward: What B owes A (or None)

    Returns:
        The residual instruction, or None when the pair nets to zero
    """
    sides = [b for b in (forward, backward) if b is not None]
    if not sides:
        return None

    # Positive residual: the forward debtor still owes the forward creditor
    first = sides[0]
    residual = sum(
        b.amount_minor if b.debtor == first.debtor else -b.amount_minor
        for b in sides
    )
    if residual == 0:
        return None

    split_ids = sorted(sid for b in sides for sid in b.split_ids)
    if residual > 0:
        payer, payee = first.debtor, first.creditor
    else:
        payer, payee = first.creditor, first.debtor

    return SettlementInstruction(
        payer=payer, payee=payee, amount_minor=abs(residual), split_ids=split_ids
    )


def plan(balances: BalanceMap) -> list[SettlementInstruction]:
    """
    Compute the netted transfer plan for a set of raw balances.

    Every unordered pair {A, B} collapses to at most one instruction that
    carries the split IDs from both directions. Pairs that net to zero
    produce nothing.

    Args:
        balances: Raw directional balances from compute_balances()

    Returns:
        Instructions ordered by (payer, payee)
    """
    instructions = []
    seen: set[frozenset[str]] = set()

    for debtor, creditor in balances:
        pair = frozenset((debtor, creditor))
        if pair in seen:
            continue
        seen.add(pair)

        instruction = net_pair(
            balances.get((debtor, creditor)), balances.get((creditor, debtor))
        )
        if instruction is None:
            logger.debug(f"{debtor} and {creditor} are square")
            continue
        instructions.append(instruction)

    instructions.sort(key=lambda i: (i.payer, i.payee))
    logger.debug(f"Planned {len(instructions)} settlement instructions")
    return instructions


def for_member(
    instructions: Iterable[SettlementInstruction], user_id: str
) -> list[SettlementInstruction]:
    """Keep only the instructions a member pays or receives ("my settlements")."""
    return [i for i in instructions if i.involves(user_id)]


def find_instruction(
    instructions: Iterable[SettlementInstruction], member_a: str, member_b: str
) -> SettlementInstruction | None:
    """Find the instruction between two members, in either direction."""
    pair = {member_a, member_b}
    for instruction in instructions:
        if {instruction.payer, instruction.payee} == pair:
            return instruction
    return None
