from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Sequence, Union

from splitledger.services.snapshot import LedgerSnapshot

DEFAULT_EPSILON = Decimal("0.01")


@dataclass(frozen=True, slots=True)
class EmptySplit:
    expense_id: int

    def describe(self) -> str:
        return f"expense #{self.expense_id} has no shares"


@dataclass(frozen=True, slots=True)
class SplitMismatch:
    expense_id: int
    expected: Decimal
    actual: Decimal

    def describe(self) -> str:
        return f"expense #{self.expense_id} shares sum to {self.actual}, expected {self.expected}"


@dataclass(frozen=True, slots=True)
class InvalidPayment:
    payment_id: int

    def describe(self) -> str:
        return f"payment #{self.payment_id} has a non-positive amount"


@dataclass(frozen=True, slots=True)
class InvalidExpense:
    expense_id: int

    def describe(self) -> str:
        return f"expense #{self.expense_id} has a non-positive amount"


@dataclass(frozen=True, slots=True)
class DuplicateShare:
    expense_id: int
    user_id: int

    def describe(self) -> str:
        return f"expense #{self.expense_id} has more than one share for user #{self.user_id}"


@dataclass(frozen=True, slots=True)
class OrphanShare:
    expense_id: int
    user_id: int

    def describe(self) -> str:
        return f"share of user #{self.user_id} points at unknown expense #{self.expense_id}"


Violation = Union[EmptySplit, SplitMismatch, InvalidPayment, InvalidExpense, DuplicateShare, OrphanShare]


class LedgerError(Exception):
    def __init__(self, message: str, violations: Sequence[Violation] = ()) -> None:
        super().__init__(message)
        self.violations: tuple[Violation, ...] = tuple(violations)


class InconsistentLedger(LedgerError):
    """Balances were requested for a snapshot that failed validation."""


class ValidationError(LedgerError):
    """A report could not be built; carries every violation found."""


@dataclass(frozen=True, slots=True)
class ValidationResult:
    violations: tuple[Violation, ...] = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return not self.violations


class ConsistencyValidator:
    def __init__(self, epsilon: Decimal = DEFAULT_EPSILON) -> None:
        self.epsilon = epsilon

    def validate(self, snapshot: LedgerSnapshot) -> ValidationResult:
        violations: list[Violation] = []
        shares = snapshot.shares_by_expense()
        known_expenses = {expense.id for expense in snapshot.expenses}

        for expense in snapshot.expenses:
            if expense.amount <= 0:
                violations.append(InvalidExpense(expense.id))

            expense_shares = shares.get(expense.id, [])
            if not expense_shares:
                violations.append(EmptySplit(expense.id))
                continue

            counts = Counter(share.user_id for share in expense_shares)
            for user_id in sorted(user for user, count in counts.items() if count > 1):
                violations.append(DuplicateShare(expense.id, user_id))

            total = sum((share.share_amount for share in expense_shares), Decimal("0"))
            if abs(total - expense.amount) > self.epsilon:
                violations.append(SplitMismatch(expense.id, expected=expense.amount, actual=total))

        for expense_id in sorted(set(shares) - known_expenses):
            for share in shares[expense_id]:
                violations.append(OrphanShare(expense_id, share.user_id))

        for payment in snapshot.payments:
            if payment.amount <= 0:
                violations.append(InvalidPayment(payment.id))

        return ValidationResult(tuple(violations))
