from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True, slots=True)
class User:
    id: int
    email: str
    name: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Group:
    id: int
    name: str
    member_ids: frozenset[int] = field(default_factory=frozenset)
    description: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Expense:
    id: int
    group_id: int
    payer_id: int
    amount: Decimal
    date: date
    name: str = ""
    description: Optional[str] = None


@dataclass(frozen=True, slots=True)
class ExpenseShare:
    expense_id: int
    user_id: int
    share_amount: Decimal
    category: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Payment:
    id: int
    group_id: int
    payer_id: int
    receiver_id: int
    amount: Decimal
    date: date


@dataclass(frozen=True, slots=True)
class NetPosition:
    user_id: int
    credit: Decimal = Decimal("0")
    debit: Decimal = Decimal("0")

    @property
    def net(self) -> Decimal:
        return self.credit - self.debit


@dataclass(frozen=True, slots=True)
class SettlementTransfer:
    from_user: int
    to_user: int
    amount: Decimal
