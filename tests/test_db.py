"""Tests for the SQLite ledger store."""

from datetime import UTC, datetime

import pytest

from split_ledger.db import Database
from split_ledger.exceptions import (
    ConcurrencyConflictError,
    ExpenseNotFoundError,
    GroupNotFoundError,
    InvalidAmountError,
    InvalidParticipantsError,
    PartitionMismatchError,
    SelfDebtDetectedError,
    UnknownMemberError,
)
from split_ledger.models import Expense, Group, Split


@pytest.fixture
def group(db):
    """A group of alice (owner) and bob."""
    group = db.create_group(Group(id="g1", name="Flat", created_by="alice"))
    db.add_member(group.id, "bob")
    return group


def make_expense(amount_minor: int = 1000, paid_by: str = "alice") -> Expense:
    return Expense(
        id="e1",
        group_id="g1",
        description="Dinner",
        amount_minor=amount_minor,
        paid_by=paid_by,
    )


def make_split(
    split_id: str, user_id: str, amount_minor: int, settled: bool = False
) -> Split:
    return Split(
        id=split_id,
        expense_id="e1",
        user_id=user_id,
        amount_minor=amount_minor,
        settled=settled,
    )


def count_rows(db: Database) -> tuple[int, int]:
    cursor = db.conn.cursor()
    expenses = cursor.execute("SELECT COUNT(*) FROM expenses").fetchone()[0]
    splits = cursor.execute("SELECT COUNT(*) FROM splits").fetchone()[0]
    return expenses, splits


class TestGroups:
    """Tests for group and membership operations."""

    def test_creator_is_first_member(self, db):
        group = db.create_group(Group(id="g1", name="Flat", created_by="alice"))

        assert group.members == ["alice"]
        assert db.is_member("g1", "alice")
        assert db.get_group("g1").members == ["alice"]

    def test_add_member(self, db, group):
        assert db.members_of("g1") == {"alice", "bob"}
        assert db.is_member("g1", "bob")
        assert not db.is_member("g1", "carol")

    def test_duplicate_member_rejected(self, db, group):
        with pytest.raises(InvalidParticipantsError):
            db.add_member("g1", "bob")

    def test_add_member_to_missing_group(self, db):
        with pytest.raises(GroupNotFoundError):
            db.add_member("nope", "bob")

    def test_list_groups_for_user(self, db, group):
        db.create_group(Group(id="g2", name="Other", created_by="carol"))

        assert [g.id for g in db.list_groups(user_id="bob")] == ["g1"]
        assert {g.id for g in db.list_groups()} == {"g1", "g2"}


class TestRecordExpense:
    """Tests for record_expense."""

    def test_persists_expense_and_splits(self, db, group):
        splits = [
            make_split("s1", "alice", 500, settled=True),
            make_split("s2", "bob", 500),
        ]

        db.record_expense(make_expense(), splits)

        assert db.get_expense("e1").amount_minor == 1000
        stored = db.get_splits("e1")
        assert [(s.user_id, s.amount_minor, s.settled) for s in stored] == [
            ("alice", 500, True),
            ("bob", 500, False),
        ]

    def test_unknown_debtor_persists_nothing(self, db, group):
        splits = [make_split("s1", "bob", 500), make_split("s2", "mallory", 500)]

        with pytest.raises(UnknownMemberError) as exc_info:
            db.record_expense(make_expense(), splits)

        assert exc_info.value.user_id == "mallory"
        assert count_rows(db) == (0, 0)

    def test_unknown_payer(self, db, group):
        with pytest.raises(UnknownMemberError):
            db.record_expense(
                make_expense(paid_by="mallory"), [make_split("s1", "bob", 1000)]
            )
        assert count_rows(db) == (0, 0)

    def test_partition_mismatch(self, db, group):
        splits = [make_split("s1", "bob", 500)]

        with pytest.raises(PartitionMismatchError) as exc_info:
            db.record_expense(make_expense(), splits)

        assert exc_info.value.expected_minor == 1000
        assert exc_info.value.actual_minor == 500
        assert count_rows(db) == (0, 0)

    def test_payer_split_must_be_settled(self, db, group):
        splits = [make_split("s1", "alice", 500), make_split("s2", "bob", 500)]

        with pytest.raises(SelfDebtDetectedError):
            db.record_expense(make_expense(), splits)

    def test_duplicate_debtor_rejected(self, db, group):
        splits = [make_split("s1", "bob", 500), make_split("s2", "bob", 500)]

        with pytest.raises(InvalidParticipantsError):
            db.record_expense(make_expense(), splits)

    def test_zero_split_rejected(self, db, group):
        splits = [make_split("s1", "bob", 1000), make_split("s2", "alice", 0, True)]

        with pytest.raises(InvalidAmountError):
            db.record_expense(make_expense(), splits)

    def test_oversized_amount_rejected(self, db, group):
        """Amounts beyond SQLite's INTEGER range fail with a reason, not a crash."""
        amount = 2**63
        splits = [make_split("s1", "bob", amount)]

        with pytest.raises(InvalidAmountError):
            db.record_expense(make_expense(amount_minor=amount), splits)
        assert count_rows(db) == (0, 0)

    def test_split_from_another_expense_rejected(self, db, group):
        split = make_split("s1", "bob", 1000).model_copy(update={"expense_id": "e2"})

        with pytest.raises(InvalidParticipantsError) as exc_info:
            db.record_expense(make_expense(), [split])

        assert exc_info.value.reason == "invalid_participants"
        assert count_rows(db) == (0, 0)

    def test_missing_group(self, db):
        with pytest.raises(GroupNotFoundError):
            db.record_expense(make_expense(), [make_split("s1", "bob", 1000)])

    def test_missing_expense(self, db):
        with pytest.raises(ExpenseNotFoundError):
            db.get_expense("nope")


class TestMarkSettled:
    """Tests for mark_settled."""

    @pytest.fixture
    def recorded(self, db, group):
        db.record_expense(
            make_expense(),
            [make_split("s1", "alice", 500, settled=True), make_split("s2", "bob", 500)],
        )

    def test_settles_and_stamps(self, db, recorded):
        stamp = datetime(2025, 2, 1, 12, 0, tzinfo=UTC)

        assert db.mark_settled(["s2"], stamp) == 1

        bob = db.get_splits("e1")[1]
        assert bob.settled
        assert bob.settled_at == stamp

    def test_idempotent(self, db, recorded):
        first_stamp = datetime(2025, 2, 1, tzinfo=UTC)

        assert db.mark_settled(["s2"], first_stamp) == 1
        assert db.mark_settled(["s2"], datetime(2025, 3, 1, tzinfo=UTC)) == 0

        # The original settlement timestamp is kept
        assert db.get_splits("e1")[1].settled_at == first_stamp

    def test_already_settled_payer_split_not_counted(self, db, recorded):
        assert db.mark_settled(["s1", "s2"]) == 1

    def test_empty_ids(self, db):
        assert db.mark_settled([]) == 0


class TestWriteConflicts:
    """Tests for writes that lose a race with another writer."""

    @pytest.fixture
    def contender(self, db):
        """A second connection to the same ledger that gives up quickly."""
        database = Database(db.db_path, timeout=0.1)
        yield database
        database.close()

    def test_record_expense_while_locked(self, db, group, contender):
        db.conn.execute("BEGIN IMMEDIATE")
        try:
            with pytest.raises(ConcurrencyConflictError) as exc_info:
                contender.record_expense(
                    make_expense(), [make_split("s1", "bob", 1000)]
                )
        finally:
            db.conn.execute("ROLLBACK")

        assert exc_info.value.reason == "concurrency_conflict"
        assert count_rows(contender) == (0, 0)

    def test_mark_settled_while_locked(self, db, group, contender):
        db.record_expense(make_expense(), [make_split("s1", "bob", 1000)])

        db.conn.execute("BEGIN IMMEDIATE")
        try:
            with pytest.raises(ConcurrencyConflictError):
                contender.mark_settled(["s1"])
        finally:
            db.conn.execute("ROLLBACK")

        assert not contender.get_splits("e1")[0].settled

    def test_rerecording_existing_expense_id(self, db, group):
        db.record_expense(make_expense(), [make_split("s1", "bob", 1000)])

        with pytest.raises(ConcurrencyConflictError):
            db.record_expense(make_expense(), [make_split("s2", "bob", 1000)])

        # The first write is intact and the second left nothing behind
        assert count_rows(db) == (1, 1)
        assert [s.id for s in db.get_splits("e1")] == ["s1"]


class TestQueryUnsettledSplits:
    """Tests for query_unsettled_splits."""

    def test_returns_only_unsettled_with_expense(self, db, group):
        db.record_expense(
            make_expense(),
            [make_split("s1", "alice", 500, settled=True), make_split("s2", "bob", 500)],
        )

        items = list(db.query_unsettled_splits(group_id="g1"))

        assert [i.split.id for i in items] == ["s2"]
        assert items[0].debtor == "bob"
        assert items[0].creditor == "alice"
        assert items[0].expense.description == "Dinner"

    def test_filters_by_user_as_debtor_or_payer(self, db, group):
        db.record_expense(make_expense(), [make_split("s2", "bob", 1000)])

        assert len(list(db.query_unsettled_splits(user_id="alice"))) == 1
        assert len(list(db.query_unsettled_splits(user_id="bob"))) == 1
        assert list(db.query_unsettled_splits(user_id="carol")) == []

    def test_is_lazy(self, db, group):
        result = db.query_unsettled_splits(group_id="g1")

        assert not isinstance(result, list)
        assert list(result) == []
