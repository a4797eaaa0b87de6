from __future__ import annotations

from decimal import Decimal

import pytest

from jobledger.services.ledger import (
    BudgetTransfer,
    budget_deltas,
    build_ledger_statement,
    cost_usd_to_cents,
    fractional_cents,
    starting_earned_for,
)


def test_sub_cent_cost_keeps_hundredths_before_storage() -> None:
    assert fractional_cents(0.005) == Decimal("0.5")
    assert cost_usd_to_cents(0.005) == 0


@pytest.mark.parametrize(
    ("cost_usd", "expected"),
    [
        (0.01, 1),
        (0.015, 2),
        (0.25, 25),
        (1.234, 123),
        (1.235, 124),
        (12, 1200),
    ],
)
def test_whole_cent_costs_round_half_up(cost_usd: float, expected: int) -> None:
    assert cost_usd_to_cents(cost_usd) == expected


def test_self_transfer_starts_without_grant() -> None:
    transfer = BudgetTransfer(from_user="user-1", to_user="user-1", amount_cents=40)

    assert starting_earned_for("user-1", transfer, 1000) == 0
    assert budget_deltas("user-1", transfer) == (-40, 40)


def test_receiver_starts_with_grant() -> None:
    transfer = BudgetTransfer(from_user="alice", to_user="bob", amount_cents=40)

    assert starting_earned_for("bob", transfer, 1000) == 1000
    assert budget_deltas("alice", transfer) == (-40, 0)
    assert budget_deltas("bob", transfer) == (0, 40)


def test_ledger_statement_detects_drift() -> None:
    entries = [
        {"id": "l1", "job_id": "j1", "from_user": "alice", "to_user": "bob", "amount_cents": 30, "created_at": 1},
        {"id": "l2", "job_id": "j2", "from_user": "bob", "to_user": "alice", "amount_cents": 5, "created_at": 2},
    ]

    statement = build_ledger_statement(
        "bob",
        entries,
        {"spent_cents": -5, "earned_cents": 1030, "starting_earned_cents": 1000},
        default_starting_earned_cents=1000,
    )
    assert statement["sent_cents"] == 5
    assert statement["received_cents"] == 30
    assert statement["reconciled"] is True

    drifted = build_ledger_statement(
        "bob",
        entries,
        {"spent_cents": -5, "earned_cents": 1000, "starting_earned_cents": 1000},
        default_starting_earned_cents=1000,
    )
    assert drifted["reconciled"] is False


def test_ledger_statement_for_unknown_user_uses_default_budget() -> None:
    statement = build_ledger_statement("nobody", [], None, default_starting_earned_cents=1000)

    assert statement["budget"] == {"spent_cents": 0, "earned_cents": 1000}
    assert statement["reconciled"] is True
