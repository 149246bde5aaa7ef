from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Iterable

from splitledger.db.models import Expense, ExpenseShare, Payment


@dataclass(frozen=True, slots=True)
class LedgerSnapshot:
    """Point-in-time view of one group's expenses, shares and payments."""

    group_id: int
    expenses: tuple[Expense, ...] = ()
    shares: tuple[ExpenseShare, ...] = ()
    payments: tuple[Payment, ...] = ()

    @classmethod
    def build(
        cls,
        group_id: int,
        *,
        expenses: Iterable[Expense] = (),
        shares: Iterable[ExpenseShare] = (),
        payments: Iterable[Payment] = (),
    ) -> "LedgerSnapshot":
        return cls(
            group_id=group_id,
            expenses=tuple(expenses),
            shares=tuple(shares),
            payments=tuple(payments),
        )

    def shares_by_expense(self) -> dict[int, list[ExpenseShare]]:
        index: dict[int, list[ExpenseShare]] = defaultdict(list)
        for share in self.shares:
            index[share.expense_id].append(share)
        return dict(index)

    def shares_for(self, expense_id: int) -> list[ExpenseShare]:
        return [share for share in self.shares if share.expense_id == expense_id]

    def user_ids(self) -> set[int]:
        users: set[int] = set()
        for expense in self.expenses:
            users.add(expense.payer_id)
        for share in self.shares:
            users.add(share.user_id)
        for payment in self.payments:
            users.add(payment.payer_id)
            users.add(payment.receiver_id)
        return users
