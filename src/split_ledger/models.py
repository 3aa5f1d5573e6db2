"""Pydantic domain models for Split Ledger."""

from datetime import UTC, date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from .ledger.money import from_minor_units


def _utcnow() -> datetime:
    return datetime.now(UTC)


# ============================================================================
# Persisted Models
# ============================================================================


class Group(BaseModel):
    """A group of members sharing expenses."""

    id: str
    name: str
    description: str | None = None
    created_by: str
    created_at: datetime = Field(default_factory=_utcnow)
    members: list[str] = Field(default_factory=list)


class Expense(BaseModel):
    """An expense paid by one member on behalf of a group.

    Immutable once recorded; only its splits change state (via settlement).
    """

    id: str
    group_id: str
    description: str
    amount_minor: int  # always > 0
    currency: str = "USD"
    category: str | None = None
    paid_by: str
    expense_date: date = Field(default_factory=lambda: _utcnow().date())
    created_at: datetime = Field(default_factory=_utcnow)

    @property
    def amount(self) -> Decimal:
        """Amount in major units."""
        return from_minor_units(self.amount_minor)


class Split(BaseModel):
    """One member's owed share of an expense."""

    id: str
    expense_id: str
    user_id: str  # debtor
    amount_minor: int
    settled: bool = False
    settled_at: datetime | None = None

    @property
    def amount(self) -> Decimal:
        """Amount in major units."""
        return from_minor_units(self.amount_minor)


class SplitWithExpense(BaseModel):
    """A split joined with its parent expense, as returned by ledger queries."""

    split: Split
    expense: Expense

    @property
    def debtor(self) -> str:
        return self.split.user_id

    @property
    def creditor(self) -> str:
        return self.expense.paid_by


# ============================================================================
# Derived Models (never persisted)
# ============================================================================


class Allocation(BaseModel):
    """A participant's share as computed by the split calculator."""

    user_id: str
    amount_minor: int
    settled: bool = False  # True only for the payer's own share


class Balance(BaseModel):
    """Raw one-directional debt: debtor owes creditor, before netting."""

    debtor: str
    creditor: str
    amount_minor: int
    split_ids: list[str] = Field(default_factory=list)

    @property
    def amount(self) -> Decimal:
        return from_minor_units(self.amount_minor)


class SettlementInstruction(BaseModel):
    """Tells one member to pay another, and which splits that discharges.

    split_ids covers both directions of the netted pair, so acting on the
    instruction resolves every contributing split at once.
    """

    payer: str  # the member who owes
    payee: str  # the member who is owed
    amount_minor: int  # always > 0
    split_ids: list[str]

    @property
    def amount(self) -> Decimal:
        return from_minor_units(self.amount_minor)

    def involves(self, user_id: str) -> bool:
        """Whether the given member is on either side of this instruction."""
        return user_id in (self.payer, self.payee)


class Outstanding(BaseModel):
    """What a member owes and is owed, from raw (unnetted) balances."""

    user_id: str
    owes_minor: int = 0
    owed_minor: int = 0
    owes_to: dict[str, int] = Field(default_factory=dict)  # creditor -> minor
    owed_by: dict[str, int] = Field(default_factory=dict)  # debtor -> minor

    @property
    def net_minor(self) -> int:
        """Positive when the member is owed more than they owe."""
        return self.owed_minor - self.owes_minor


class DashboardStats(BaseModel):
    """Per-member headline numbers for the dashboard view."""

    user_id: str
    total_expenses_minor: int = 0  # all expenses the member takes part in
    your_share_minor: int = 0
    you_owe_minor: int = 0
    you_are_owed_minor: int = 0
