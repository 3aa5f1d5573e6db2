"""SQLite ledger store for Split Ledger.

The database is the single authority over the ledger. Every multi-row write
runs inside ``BEGIN IMMEDIATE`` so writers are serialized by SQLite's own
locking, and WAL mode lets readers see a consistent snapshot while a write
is in flight.
"""

import logging
import sqlite3
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import UTC, date, datetime
from pathlib import Path

from .exceptions import (
    ConcurrencyConflictError,
    ExpenseNotFoundError,
    GroupNotFoundError,
    InvalidAmountError,
    InvalidParticipantsError,
    PartitionMismatchError,
    SelfDebtDetectedError,
    UnknownMemberError,
)
from .ledger.money import MAX_MINOR_UNITS
from .models import Expense, Group, Split, SplitWithExpense

logger = logging.getLogger(__name__)

_JOINED_COLUMNS = """
    s.id AS split_id, s.expense_id, s.user_id, s.amount_minor AS split_amount,
    s.settled, s.settled_at,
    e.id, e.group_id, e.description, e.amount_minor, e.currency, e.category,
    e.paid_by, e.expense_date, e.created_at
"""


class Database:
    """SQLite ledger store: groups, memberships, expenses and splits."""

    def __init__(self, db_path: Path | str, timeout: float = 5.0):
        """Initialize database connection."""
        self.db_path = db_path
        # Autocommit mode: transactions are opened explicitly in transaction()
        self.conn = sqlite3.connect(str(db_path), timeout=timeout, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA foreign_keys = ON")
        self.conn.execute("PRAGMA journal_mode = WAL")
        self._init_schema()

    def _init_schema(self):
        """Initialize database schema."""
        with self.transaction() as cursor:
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS groups (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    description TEXT,
                    created_by TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS group_members (
                    group_id TEXT NOT NULL REFERENCES groups(id),
                    user_id TEXT NOT NULL,
                    joined_at TIMESTAMP NOT NULL,
                    PRIMARY KEY (group_id, user_id)
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS expenses (
                    id TEXT PRIMARY KEY,
                    group_id TEXT NOT NULL REFERENCES groups(id),
                    description TEXT NOT NULL,
                    amount_minor INTEGER NOT NULL CHECK (amount_minor > 0),
                    currency TEXT NOT NULL,
                    category TEXT,
                    paid_by TEXT NOT NULL,
                    expense_date DATE NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS splits (
                    id TEXT PRIMARY KEY,
                    expense_id TEXT NOT NULL REFERENCES expenses(id),
                    user_id TEXT NOT NULL,
                    amount_minor INTEGER NOT NULL CHECK (amount_minor > 0),
                    settled INTEGER NOT NULL DEFAULT 0,
                    settled_at TIMESTAMP,
                    UNIQUE (expense_id, user_id)
                )
            """
            )

            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_expenses_group ON expenses(group_id)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_splits_unsettled "
                "ON splits(settled, expense_id)"
            )

    def close(self):
        """Close database connection."""
        self.conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """
        Run a block inside a serialized write transaction.

        Nested use joins the outer transaction, so helpers such as
        mark_settled() can be composed into a larger unit of work.

        Raises:
            ConcurrencyConflictError: If the write lock can't be acquired
        """
        cursor = self.conn.cursor()
        if self.conn.in_transaction:
            yield cursor
            return

        try:
            cursor.execute("BEGIN IMMEDIATE")
        except sqlite3.OperationalError as e:
            logger.warning(f"Could not acquire ledger write lock: {e}")
            raise ConcurrencyConflictError(
                "Ledger is busy with another write; re-read and retry"
            ) from e

        try:
            yield cursor
        except BaseException:
            cursor.execute("ROLLBACK")
            raise
        else:
            cursor.execute("COMMIT")

    # ========================================================================
    # Group & membership operations
    # ========================================================================

    def create_group(self, group: Group) -> Group:
        """Save a group and enrol its creator as the first member."""
        with self.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO groups (id, name, description, created_by, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    group.id,
                    group.name,
                    group.description,
                    group.created_by,
                    group.created_at.isoformat(),
                ),
            )
            cursor.execute(
                "INSERT INTO group_members (group_id, user_id, joined_at) "
                "VALUES (?, ?, ?)",
                (group.id, group.created_by, group.created_at.isoformat()),
            )

        logger.info(f"Created group '{group.name}' ({group.id})")
        return group.model_copy(update={"members": [group.created_by]})

    def get_group(self, group_id: str) -> Group:
        """
        Get a group with its current members.

        Raises:
            GroupNotFoundError: If the group doesn't exist
        """
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, name, description, created_by, created_at
            FROM groups
            WHERE id = ?
            """,
            (group_id,),
        )
        row = cursor.fetchone()
        if not row:
            raise GroupNotFoundError(f"Group {group_id} does not exist")

        return self._row_to_group(row, sorted(self.members_of(group_id)))

    def list_groups(self, user_id: str | None = None) -> list[Group]:
        """List all groups, or only those the given user belongs to."""
        cursor = self.conn.cursor()
        if user_id is None:
            cursor.execute(
                "SELECT id, name, description, created_by, created_at "
                "FROM groups ORDER BY created_at DESC"
            )
        else:
            cursor.execute(
                """
                SELECT g.id, g.name, g.description, g.created_by, g.created_at
                FROM groups g
                JOIN group_members m ON m.group_id = g.id
                WHERE m.user_id = ?
                ORDER BY g.created_at DESC
                """,
                (user_id,),
            )
        return [
            self._row_to_group(row, sorted(self.members_of(row["id"])))
            for row in cursor.fetchall()
        ]

    def add_member(self, group_id: str, user_id: str):
        """
        Add a member to a group.

        Raises:
            GroupNotFoundError: If the group doesn't exist
            InvalidParticipantsError: If the user is already a member
        """
        with self.transaction() as cursor:
            self._require_group(cursor, group_id)
            try:
                cursor.execute(
                    "INSERT INTO group_members (group_id, user_id, joined_at) "
                    "VALUES (?, ?, ?)",
                    (group_id, user_id, datetime.now(UTC).isoformat()),
                )
            except sqlite3.IntegrityError as e:
                raise InvalidParticipantsError(
                    f"User '{user_id}' is already a member of this group"
                ) from e

        logger.info(f"Added '{user_id}' to group {group_id}")

    def is_member(self, group_id: str, user_id: str) -> bool:
        """Check whether a user currently belongs to a group."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT 1 FROM group_members WHERE group_id = ? AND user_id = ?",
            (group_id, user_id),
        )
        return cursor.fetchone() is not None

    def members_of(self, group_id: str) -> set[str]:
        """Get the identities of all current members of a group."""
        cursor = self.conn.cursor()
        cursor.execute(
            "SELECT user_id FROM group_members WHERE group_id = ?", (group_id,)
        )
        return {row["user_id"] for row in cursor.fetchall()}

    def _require_group(self, cursor: sqlite3.Cursor, group_id: str):
        cursor.execute("SELECT 1 FROM groups WHERE id = ?", (group_id,))
        if cursor.fetchone() is None:
            raise GroupNotFoundError(f"Group {group_id} does not exist")

    # ========================================================================
    # Expense operations
    # ========================================================================

    def record_expense(self, expense: Expense, splits: list[Split]) -> Expense:
        """
        Atomically persist an expense together with all of its splits.

        Either the expense and every split are written, or nothing is.

        Args:
            expense: The expense to record
            splits: Its complete, exact partition into per-member shares

        Returns:
            The persisted expense

        Raises:
            InvalidAmountError: If the expense or any split amount is not positive,
                or the expense is too large to store
            InvalidParticipantsError: If there are no splits, a debtor repeats or
                a split belongs to another expense
            PartitionMismatchError: If split amounts don't sum to the expense amount
            SelfDebtDetectedError: If the payer's own split isn't already settled
            GroupNotFoundError: If the group doesn't exist
            UnknownMemberError: If the payer or a debtor isn't a group member
            ConcurrencyConflictError: If the write lock can't be acquired or the
                expense id is already taken
        """
        self._validate_partition(expense, splits)

        with self.transaction() as cursor:
            self._require_group(cursor, expense.group_id)

            # Membership is checked inside the write lock, at recording time
            members = self.members_of(expense.group_id)
            for user_id in [expense.paid_by, *(split.user_id for split in splits)]:
                if user_id not in members:
                    raise UnknownMemberError(expense.group_id, user_id)

            try:
                cursor.execute(
                    """
                    INSERT INTO expenses (
                        id, group_id, description, amount_minor, currency,
                        category, paid_by, expense_date, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        expense.id,
                        expense.group_id,
                        expense.description,
                        expense.amount_minor,
                        expense.currency,
                        expense.category,
                        expense.paid_by,
                        expense.expense_date.isoformat(),
                        expense.created_at.isoformat(),
                    ),
                )
                cursor.executemany(
                    """
                    INSERT INTO splits (
                        id, expense_id, user_id, amount_minor, settled, settled_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            split.id,
                            split.expense_id,
                            split.user_id,
                            split.amount_minor,
                            int(split.settled),
                            split.settled_at.isoformat() if split.settled_at else None,
                        )
                        for split in splits
                    ],
                )
            except sqlite3.IntegrityError as e:
                raise ConcurrencyConflictError(
                    f"Expense {expense.id} or one of its splits already exists"
                ) from e

        logger.info(
            f"Recorded expense {expense.id} '{expense.description}' "
            f"({expense.amount_minor} minor units, {len(splits)} splits)"
        )
        return expense

    @staticmethod
    def _validate_partition(expense: Expense, splits: list[Split]):
        if expense.amount_minor <= 0:
            raise InvalidAmountError("Expense amount must be greater than zero")
        if expense.amount_minor > MAX_MINOR_UNITS:
            raise InvalidAmountError(
                f"Expense amount {expense.amount_minor} is too large to record"
            )
        if not splits:
            raise InvalidParticipantsError("An expense needs at least one split")

        debtors = [split.user_id for split in splits]
        if len(set(debtors)) != len(debtors):
            raise InvalidParticipantsError(
                f"Each member may appear only once per expense: {sorted(debtors)}"
            )

        for split in splits:
            if split.expense_id != expense.id:
                raise InvalidParticipantsError(
                    f"Split {split.id} belongs to expense {split.expense_id}, "
                    f"not {expense.id}"
                )
            if split.amount_minor <= 0:
                raise InvalidAmountError(
                    f"Split for '{split.user_id}' must be greater than zero"
                )
            if split.user_id == expense.paid_by and not split.settled:
                raise SelfDebtDetectedError(
                    f"Payer '{expense.paid_by}' would owe themselves on "
                    f"expense {expense.id}"
                )

        total = sum(split.amount_minor for split in splits)
        if total != expense.amount_minor:
            raise PartitionMismatchError(expense.amount_minor, total)

    def get_expense(self, expense_id: str) -> Expense:
        """
        Get an expense by ID.

        Raises:
            ExpenseNotFoundError: If the expense doesn't exist
        """
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id, group_id, description, amount_minor, currency, category,
                   paid_by, expense_date, created_at
            FROM expenses
            WHERE id = ?
            """,
            (expense_id,),
        )
        row = cursor.fetchone()
        if not row:
            raise ExpenseNotFoundError(f"Expense {expense_id} does not exist")
        return self._row_to_expense(row)

    def get_splits(self, expense_id: str) -> list[Split]:
        """Get all splits of an expense, ordered by debtor."""
        cursor = self.conn.cursor()
        cursor.execute(
            """
            SELECT id AS split_id, expense_id, user_id, amount_minor AS split_amount,
                   settled, settled_at
            FROM splits
            WHERE expense_id = ?
            ORDER BY user_id
            """,
            (expense_id,),
        )
        return [self._row_to_split(row) for row in cursor.fetchall()]

    def iter_expenses(
        self,
        group_id: str | None = None,
        user_id: str | None = None,
        limit: int | None = None,
    ) -> Iterator[Expense]:
        """
        Iterate expenses, newest first.

        Args:
            group_id: Only expenses of this group
            user_id: Only expenses the user paid for or has a split in
            limit: Maximum number of expenses
        """
        clauses, params = [], []
        if group_id is not None:
            clauses.append("e.group_id = ?")
            params.append(group_id)
        if user_id is not None:
            clauses.append(
                "(e.paid_by = ? OR EXISTS (SELECT 1 FROM splits s "
                "WHERE s.expense_id = e.id AND s.user_id = ?))"
            )
            params.extend([user_id, user_id])

        sql = (
            "SELECT e.id, e.group_id, e.description, e.amount_minor, e.currency, "
            "e.category, e.paid_by, e.expense_date, e.created_at FROM expenses e"
        )
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY e.expense_date DESC, e.created_at DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        cursor = self.conn.cursor()
        for row in cursor.execute(sql, params):
            yield self._row_to_expense(row)

    # ========================================================================
    # Split operations
    # ========================================================================

    def iter_splits(
        self,
        group_id: str | None = None,
        user_id: str | None = None,
        settled: bool | None = None,
    ) -> Iterator[SplitWithExpense]:
        """
        Lazily iterate splits joined with their parent expense.

        A single SELECT reads one consistent snapshot, so splits of an
        expense that is still being written are never visible.

        Args:
            group_id: Only splits of this group's expenses
            user_id: Only splits where the user is the debtor or the payer
            settled: Filter on settlement state (None for both)
        """
        clauses, params = [], []
        if group_id is not None:
            clauses.append("e.group_id = ?")
            params.append(group_id)
        if user_id is not None:
            clauses.append("(s.user_id = ? OR e.paid_by = ?)")
            params.extend([user_id, user_id])
        if settled is not None:
            clauses.append("s.settled = ?")
            params.append(int(settled))

        sql = f"SELECT {_JOINED_COLUMNS} FROM splits s JOIN expenses e ON e.id = s.expense_id"
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += " ORDER BY e.created_at, s.user_id"

        cursor = self.conn.cursor()
        for row in cursor.execute(sql, params):
            yield SplitWithExpense(
                split=self._row_to_split(row), expense=self._row_to_expense(row)
            )

    def query_unsettled_splits(
        self, group_id: str | None = None, user_id: str | None = None
    ) -> Iterator[SplitWithExpense]:
        """Lazily iterate unsettled splits for a group and/or a user."""
        return self.iter_splits(group_id=group_id, user_id=user_id, settled=False)

    def get_splits_by_ids(self, split_ids: Iterable[str]) -> list[SplitWithExpense]:
        """Get specific splits joined with their parent expense."""
        ids = list(split_ids)
        if not ids:
            return []

        placeholders = ", ".join("?" for _ in ids)
        cursor = self.conn.cursor()
        cursor.execute(
            f"SELECT {_JOINED_COLUMNS} FROM splits s "
            f"JOIN expenses e ON e.id = s.expense_id "
            f"WHERE s.id IN ({placeholders})",
            ids,
        )
        return [
            SplitWithExpense(
                split=self._row_to_split(row), expense=self._row_to_expense(row)
            )
            for row in cursor.fetchall()
        ]

    def mark_settled(
        self, split_ids: Iterable[str], settled_at: datetime | None = None
    ) -> int:
        """
        Mark splits as settled.

        Compare-and-swap: only splits that are still unsettled are flipped.
        Already-settled splits are left untouched, so repeating the call is
        safe and reports zero.

        Args:
            split_ids: Splits to settle
            settled_at: Settlement timestamp (defaults to now)

        Returns:
            Number of splits newly settled by this call
        """
        ids = sorted(set(split_ids))
        if not ids:
            return 0

        stamp = (settled_at or datetime.now(UTC)).isoformat()
        placeholders = ", ".join("?" for _ in ids)
        with self.transaction() as cursor:
            cursor.execute(
                f"""
                UPDATE splits
                SET settled = 1, settled_at = ?
                WHERE settled = 0 AND id IN ({placeholders})
                """,
                [stamp, *ids],
            )
            updated = cursor.rowcount

        logger.info(f"Settled {updated} of {len(ids)} requested splits")
        return updated

    # ========================================================================
    # Row mapping
    # ========================================================================

    @staticmethod
    def _row_to_group(row: sqlite3.Row, members: list[str]) -> Group:
        return Group(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            created_by=row["created_by"],
            created_at=datetime.fromisoformat(row["created_at"]),
            members=members,
        )

    @staticmethod
    def _row_to_expense(row: sqlite3.Row) -> Expense:
        return Expense(
            id=row["id"],
            group_id=row["group_id"],
            description=row["description"],
            amount_minor=row["amount_minor"],
            currency=row["currency"],
            category=row["category"],
            paid_by=row["paid_by"],
            expense_date=date.fromisoformat(row["expense_date"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_split(row: sqlite3.Row) -> Split:
        return Split(
            id=row["split_id"],
            expense_id=row["expense_id"],
            user_id=row["user_id"],
            amount_minor=row["split_amount"],
            settled=bool(row["settled"]),
            settled_at=(
                datetime.fromisoformat(row["settled_at"]) if row["settled_at"] else None
            ),
        )
