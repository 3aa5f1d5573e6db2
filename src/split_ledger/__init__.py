"""Split Ledger - Shared-expense ledger and settlement engine."""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .db import Database
from .ledger.balances import compute_balances
from .ledger.planner import plan
from .ledger.queries import LedgerQueries
from .ledger.service import LedgerService
from .ledger.splitter import allocate
from .models import (
    Balance,
    Expense,
    Group,
    SettlementInstruction,
    Split,
    SplitWithExpense,
)

__all__ = [
    "Settings",
    "load_settings",
    "Database",
    "compute_balances",
    "plan",
    "LedgerQueries",
    "LedgerService",
    "allocate",
    "Balance",
    "Expense",
    "Group",
    "SettlementInstruction",
    "Split",
    "SplitWithExpense",
]
