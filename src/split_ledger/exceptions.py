"""Custom exceptions for Split Ledger.

Every error carries a stable ``reason`` string so presentation layers can
render an actionable message for each failure kind.
"""


class SplitLedgerError(Exception):
    """Base exception for all Split Ledger errors."""

    reason = "split_ledger_error"


class ConfigurationError(SplitLedgerError):
    """Raised when configuration is invalid or missing."""

    reason = "configuration_error"


class InvalidAmountError(SplitLedgerError):
    """Raised when an amount is not a positive value in whole minor units."""

    reason = "invalid_amount"


class InvalidParticipantsError(SplitLedgerError):
    """Raised when the participant set for an expense is empty or invalid."""

    reason = "invalid_participants"


class UnknownMemberError(SplitLedgerError):
    """Raised when a payer or debtor is not a member of the expense's group."""

    reason = "unknown_member"

    def __init__(self, group_id: str, user_id: str, message: str | None = None):
        self.group_id = group_id
        self.user_id = user_id
        super().__init__(
            message or f"User '{user_id}' is not a member of group {group_id}"
        )


class PartitionMismatchError(SplitLedgerError):
    """Raised when split amounts don't add up to the expense amount."""

    reason = "partition_mismatch"

    def __init__(self, expected_minor: int, actual_minor: int):
        self.expected_minor = expected_minor
        self.actual_minor = actual_minor
        super().__init__(
            f"Splits sum to {actual_minor} minor units, "
            f"expense amount is {expected_minor}"
        )


class SelfDebtDetectedError(SplitLedgerError):
    """Raised when a member appears to owe themselves (data integrity bug)."""

    reason = "self_debt_detected"


class SettlementNotFoundError(SplitLedgerError):
    """Raised when there is nothing to settle between two members."""

    reason = "settlement_not_found"


class ConcurrencyConflictError(SplitLedgerError):
    """Raised when a write lost a race; re-read and retry."""

    reason = "concurrency_conflict"


class GroupNotFoundError(SplitLedgerError):
    """Raised when a group does not exist."""

    reason = "group_not_found"


class ExpenseNotFoundError(SplitLedgerError):
    """Raised when an expense does not exist."""

    reason = "expense_not_found"
