"""Service layer that composes the split calculator, store and planner.

Group and user context is always passed in explicitly; the service holds no
"current group" state.
"""

import logging
from datetime import UTC, date, datetime
from decimal import Decimal
from uuid import uuid4

from ..config import Settings
from ..db import Database
from ..exceptions import ConcurrencyConflictError, SettlementNotFoundError
from ..models import Expense, Group, SettlementInstruction, Split
from .balances import BalanceMap, compute_balances
from .money import to_minor_units
from .planner import find_instruction, for_member, net_pair
from .planner import plan as plan_settlements
from .splitter import allocate

logger = logging.getLogger(__name__)


class LedgerService:
    """Records shared expenses and settles the debts they create."""

    def __init__(self, settings: Settings, database: Database):
        """Initialize the ledger service."""
        self.settings = settings
        self.db = database

    # ========================================================================
    # Groups
    # ========================================================================

    def create_group(
        self, name: str, created_by: str, description: str | None = None
    ) -> Group:
        """Create a group owned (and initially joined) by its creator."""
        group = Group(
            id=str(uuid4()), name=name, description=description, created_by=created_by
        )
        return self.db.create_group(group)

    def add_member(self, group_id: str, user_id: str) -> Group:
        """Add a member to a group and return the updated group."""
        self.db.add_member(group_id, user_id)
        return self.db.get_group(group_id)

    # ========================================================================
    # Expenses
    # ========================================================================

    def add_expense(
        self,
        group_id: str,
        description: str,
        amount: Decimal | str,
        paid_by: str,
        participants: list[str] | None = None,
        category: str | None = None,
        currency: str | None = None,
        expense_date: date | None = None,
    ) -> tuple[Expense, list[Split]]:
        """
        Split an expense equally and record it with its splits.

        Args:
            group_id: Group the expense belongs to
            description: What the money was spent on
            amount: Amount in major units (e.g. "30.00")
            paid_by: Member who paid
            participants: Members sharing the cost (defaults to the whole group)
            category: Optional free-form category
            currency: Currency code (defaults to settings.default_currency)
            expense_date: Day of the expense (defaults to today)

        Returns:
            Tuple of (expense, splits)
        """
        amount_minor = to_minor_units(amount)
        members = set(self.db.get_group(group_id).members)
        if participants is None:
            participants = sorted(members)

        allocations = allocate(amount_minor, participants, paid_by, members)

        now = datetime.now(UTC)
        expense = Expense(
            id=str(uuid4()),
            group_id=group_id,
            description=description,
            amount_minor=amount_minor,
            currency=currency or self.settings.default_currency,
            category=category,
            paid_by=paid_by,
            expense_date=expense_date or now.date(),
            created_at=now,
        )
        splits = [
            Split(
                id=str(uuid4()),
                expense_id=expense.id,
                user_id=allocation.user_id,
                amount_minor=allocation.amount_minor,
                settled=allocation.settled,
                settled_at=now if allocation.settled else None,
            )
            for allocation in allocations
        ]

        self.db.record_expense(expense, splits)
        return expense, splits

    # ========================================================================
    # Balances & settlement
    # ========================================================================

    def balances(
        self, group_id: str | None = None, user_id: str | None = None
    ) -> BalanceMap:
        """Raw directional balances for a group and/or member."""
        return compute_balances(
            self.db.query_unsettled_splits(group_id=group_id, user_id=user_id)
        )

    def plan(
        self, group_id: str | None = None, user_id: str | None = None
    ) -> list[SettlementInstruction]:
        """
        Netted settlement plan.

        The full pairwise plan is computed for the group; when user_id is
        given only the instructions involving that member are returned.
        """
        instructions = plan_settlements(self.balances(group_id=group_id))
        if user_id is not None:
            instructions = for_member(instructions, user_id)
        return instructions

    def settle_instruction(
        self, instruction: SettlementInstruction, settled_at: datetime | None = None
    ) -> int:
        """
        Mark every split an instruction discharges as settled.

        The instruction is re-validated against the ledger inside the write
        transaction. Safe to retry: once applied, repeating it returns 0.

        Args:
            instruction: Instruction from a (possibly stale) plan
            settled_at: Settlement timestamp (defaults to now)

        Returns:
            Number of splits newly settled

        Raises:
            ConcurrencyConflictError: If the ledger changed so the instruction
                                      no longer describes what it would settle
        """
        with self.db.transaction():
            items = self.db.get_splits_by_ids(instruction.split_ids)
            if len(items) != len(set(instruction.split_ids)):
                raise ConcurrencyConflictError(
                    "Some splits in this settlement no longer exist"
                )

            pending = [item for item in items if not item.split.settled]
            if not pending:
                logger.info(
                    f"Settlement {instruction.payer} -> {instruction.payee} "
                    f"already applied"
                )
                return 0

            if len(pending) != len(items):
                raise ConcurrencyConflictError(
                    "Part of this settlement was already settled elsewhere; "
                    "re-read balances and retry"
                )

            pair = {instruction.payer, instruction.payee}
            if any({item.debtor, item.creditor} != pair for item in pending):
                raise ConcurrencyConflictError(
                    "Settlement references splits between other members"
                )

            fresh = compute_balances(pending)
            current = net_pair(
                fresh.get((instruction.payer, instruction.payee)),
                fresh.get((instruction.payee, instruction.payer)),
            )
            if current is None or (current.payer, current.amount_minor) != (
                instruction.payer,
                instruction.amount_minor,
            ):
                raise ConcurrencyConflictError(
                    "Settlement amount no longer matches the ledger; "
                    "re-read balances and retry"
                )

            updated = self.db.mark_settled(instruction.split_ids, settled_at)

        logger.info(
            f"Settled {instruction.payer} -> {instruction.payee} "
            f"({instruction.amount_minor} minor units, {updated} splits)"
        )
        return updated

    def settle_between(
        self,
        member_a: str,
        member_b: str,
        group_id: str | None = None,
        settled_at: datetime | None = None,
        payer: str | None = None,
    ) -> tuple[SettlementInstruction, int]:
        """
        Settle everything outstanding between two members.

        Args:
            member_a: One member of the pair
            member_b: The other member of the pair
            group_id: Only settle splits from this group
            settled_at: Settlement timestamp (default: now)
            payer: If given, the member expected to pay after netting

        Returns:
            Tuple of (instruction applied, number of splits settled)

        Raises:
            SettlementNotFoundError: If the pair has no net balance, or the net
                debt runs the other way from the expected payer
        """
        instruction = find_instruction(self.plan(group_id=group_id), member_a, member_b)
        if instruction is None:
            raise SettlementNotFoundError(
                f"Nothing to settle between '{member_a}' and '{member_b}'"
            )
        if payer is not None and instruction.payer != payer:
            raise SettlementNotFoundError(
                f"'{instruction.payer}' owes '{instruction.payee}', "
                "not the other way round"
            )

        updated = self.settle_instruction(instruction, settled_at)
        return instruction, updated
