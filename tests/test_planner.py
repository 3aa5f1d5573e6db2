"""Tests for settlement planning (netting)."""

import random

from conftest import make_item

from split_ledger.ledger.balances import compute_balances
from split_ledger.ledger.planner import find_instruction, for_member, plan
from split_ledger.models import SettlementInstruction


class TestPlanNetting:
    """Tests for netting opposing balances."""

    def test_no_balances_gives_empty_plan(self):
        assert plan({}) == []

    def test_one_direction_passes_through(self):
        balances = compute_balances([make_item("s1", "bob", "alice", 1000)])

        assert plan(balances) == [
            SettlementInstruction(
                payer="bob", payee="alice", amount_minor=1000, split_ids=["s1"]
            )
        ]

    def test_opposing_debts_net_to_single_instruction(self):
        """Bob owes 10.00, Alice owes 4.00 back -> Bob pays 6.00, covering both."""
        balances = compute_balances(
            [
                make_item("x-bob", "bob", "alice", 1000, expense_id="x"),
                make_item("y-alice", "alice", "bob", 400, expense_id="y"),
            ]
        )

        instructions = plan(balances)

        assert len(instructions) == 1
        assert instructions[0].payer == "bob"
        assert instructions[0].payee == "alice"
        assert instructions[0].amount_minor == 600
        assert instructions[0].split_ids == ["x-bob", "y-alice"]

    def test_direction_flips_when_reverse_is_larger(self):
        balances = compute_balances(
            [
                make_item("s1", "bob", "alice", 300, expense_id="x"),
                make_item("s2", "alice", "bob", 1000, expense_id="y"),
            ]
        )

        [instruction] = plan(balances)

        assert (instruction.payer, instruction.payee) == ("alice", "bob")
        assert instruction.amount_minor == 700

    def test_equal_opposing_debts_cancel(self):
        balances = compute_balances(
            [
                make_item("s1", "bob", "alice", 500, expense_id="x"),
                make_item("s2", "alice", "bob", 500, expense_id="y"),
            ]
        )

        assert plan(balances) == []

    def test_sorted_by_payer_then_payee(self):
        balances = compute_balances(
            [
                make_item("s1", "carol", "bob", 100, expense_id="a"),
                make_item("s2", "bob", "carol", 50, expense_id="b"),
                make_item("s3", "carol", "alice", 100, expense_id="c"),
                make_item("s4", "bob", "alice", 100, expense_id="d"),
            ]
        )

        pairs = [(i.payer, i.payee) for i in plan(balances)]

        assert pairs == [("bob", "alice"), ("carol", "alice"), ("carol", "bob")]

    def test_plan_is_order_independent(self):
        items = [
            make_item("s1", "bob", "alice", 1000, expense_id="a"),
            make_item("s2", "alice", "bob", 400, expense_id="b"),
            make_item("s3", "carol", "alice", 333, expense_id="a"),
            make_item("s4", "carol", "bob", 120, expense_id="b"),
        ]
        shuffled = items[:]
        random.Random(7).shuffle(shuffled)

        assert plan(compute_balances(items)) == plan(compute_balances(shuffled))


class TestMemberFilters:
    """Tests for for_member and find_instruction."""

    def _instructions(self):
        return plan(
            compute_balances(
                [
                    make_item("s1", "bob", "alice", 1000, expense_id="a"),
                    make_item("s2", "carol", "dave", 500, expense_id="b"),
                ]
            )
        )

    def test_for_member_keeps_only_involved_pairs(self):
        mine = for_member(self._instructions(), "alice")

        assert [(i.payer, i.payee) for i in mine] == [("bob", "alice")]

    def test_find_instruction_either_direction(self):
        instructions = self._instructions()

        assert find_instruction(instructions, "alice", "bob").payer == "bob"
        assert find_instruction(instructions, "bob", "alice").payer == "bob"
        assert find_instruction(instructions, "alice", "carol") is None
