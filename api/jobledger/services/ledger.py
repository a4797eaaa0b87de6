"""Cost conversion and budget bookkeeping shared by the repository backends."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any

ONE_CENT_USD = Decimal("0.01")
SENDER_STARTING_EARNED_CENTS = 0
DEFAULT_STARTING_EARNED_CENTS = 1000
# 10**17 cents, well inside the bigint ledger and budget columns.
MAX_COST_USD = 10**15


@dataclass(slots=True)
class BudgetTransfer:
    from_user: str
    to_user: str
    amount_cents: int


def fractional_cents(cost_usd: float) -> Decimal:
    """Return the charge for ``cost_usd`` in cents before it is stored.

    Costs of one cent or more round half-up to whole cents. Smaller costs are
    rounded at hundredths of a cent first, so ``0.005`` becomes ``0.5``.
    """
    cost = Decimal(repr(cost_usd))
    if cost < ONE_CENT_USD:
        return (cost * 10000).quantize(Decimal(1), rounding=ROUND_HALF_UP) / 100
    return (cost * 100).quantize(Decimal(1), rounding=ROUND_HALF_UP)


def cost_usd_to_cents(cost_usd: float) -> int:
    """Integer cents recorded on the ledger.

    The ledger and budgets hold whole cents, so the sub-cent part of
    :func:`fractional_cents` is truncated here and a sub-cent job records as 0.
    """
    return int(fractional_cents(cost_usd))


def default_budget(starting_earned_cents: int = DEFAULT_STARTING_EARNED_CENTS) -> dict[str, int]:
    return {"spent_cents": 0, "earned_cents": starting_earned_cents}


def starting_earned_for(user_id: str, transfer: BudgetTransfer, receiver_starting_earned_cents: int) -> int:
    # A row first created on the sending side starts without the grant, even
    # when the user pays their own device.
    if user_id == transfer.from_user:
        return SENDER_STARTING_EARNED_CENTS
    return receiver_starting_earned_cents


def budget_deltas(user_id: str, transfer: BudgetTransfer) -> tuple[int, int]:
    """(spent delta, earned delta) applied to ``user_id`` for one transfer."""
    spent_delta = -transfer.amount_cents if user_id == transfer.from_user else 0
    earned_delta = transfer.amount_cents if user_id == transfer.to_user else 0
    return spent_delta, earned_delta


def build_ledger_statement(
    user_id: str,
    entries: list[dict[str, Any]],
    budget: dict[str, Any] | None,
    *,
    default_starting_earned_cents: int,
) -> dict[str, Any]:
    sent_cents = sum(int(entry["amount_cents"]) for entry in entries if entry["from_user"] == user_id)
    received_cents = sum(int(entry["amount_cents"]) for entry in entries if entry["to_user"] == user_id)

    if budget is None:
        stored = default_budget(default_starting_earned_cents)
        starting_earned_cents = default_starting_earned_cents
        # No row means no transfer has touched the user yet.
        reconciled = not entries
    else:
        stored = {"spent_cents": int(budget["spent_cents"]), "earned_cents": int(budget["earned_cents"])}
        starting_earned_cents = int(budget["starting_earned_cents"])
        reconciled = (
            stored["spent_cents"] == -sent_cents
            and stored["earned_cents"] == starting_earned_cents + received_cents
        )

    return {
        "user_id": user_id,
        "entries": entries,
        "sent_cents": sent_cents,
        "received_cents": received_cents,
        "starting_earned_cents": starting_earned_cents,
        "budget": stored,
        "reconciled": reconciled,
    }
