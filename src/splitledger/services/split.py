from __future__ import annotations

from decimal import Decimal, ROUND_DOWN
from typing import Literal, Mapping, Sequence

from splitledger.db.models import Expense, ExpenseShare
from splitledger.services.snapshot import LedgerSnapshot

CENT = Decimal("0.01")

ExpenseStatus = Literal["credit", "debt", "not_involved"]


def split_amount(amount: Decimal, user_ids: Sequence[int]) -> dict[int, Decimal]:
    """Equal split to cent precision; leftover cents go to the first users."""
    if amount < 0:
        raise ValueError("amount must be non-negative")
    if not user_ids:
        raise ValueError("user_ids must not be empty")

    n = len(user_ids)
    base_share = (amount / n).quantize(CENT, rounding=ROUND_DOWN)

    shares = [base_share for _ in user_ids]
    remainder = amount.quantize(CENT) - base_share * n

    idx = 0
    while remainder > 0:
        shares[idx] += CENT
        remainder -= CENT
        idx = (idx + 1) % n

    return {user_id: share for user_id, share in zip(user_ids, shares)}


def build_shares(
    expense_id: int,
    allocation: Mapping[int, Decimal],
    *,
    category: str | None = None,
    skip_zero: bool = False,
) -> list[ExpenseShare]:
    shares: list[ExpenseShare] = []
    for user_id, amount in allocation.items():
        if skip_zero and amount == 0:
            continue
        shares.append(
            ExpenseShare(
                expense_id=expense_id,
                user_id=user_id,
                share_amount=Decimal(amount),
                category=category,
            )
        )
    return shares


def expense_status(snapshot: LedgerSnapshot, expense: Expense, user_id: int) -> ExpenseStatus:
    """Whether ``user_id`` ends up owed money, owing money, or neither on one expense."""
    share = next((s for s in snapshot.shares_for(expense.id) if s.user_id == user_id), None)
    if share is None and expense.payer_id != user_id:
        return "not_involved"

    paid = expense.amount if expense.payer_id == user_id else Decimal("0")
    owed = share.share_amount if share is not None else Decimal("0")
    balance = paid - owed

    if balance < 0:
        return "debt"
    if balance > 0:
        return "credit"
    return "not_involved"
