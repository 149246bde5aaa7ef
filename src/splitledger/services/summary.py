from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Optional

from splitledger.services.report import BalanceReport
from splitledger.services.validation import Violation


@dataclass(slots=True)
class UserBalance:
    user_id: int
    credit: Decimal
    debit: Decimal
    owes: dict[int, Decimal] = field(default_factory=dict)
    owed_by: dict[int, Decimal] = field(default_factory=dict)

    @property
    def net(self) -> Decimal:
        return self.credit - self.debit


def user_balance(report: BalanceReport, user_id: int) -> UserBalance:
    position = report.position(user_id)
    balance = UserBalance(user_id=user_id, credit=position.credit, debit=position.debit)
    for transfer in report.plan:
        if transfer.from_user == user_id:
            balance.owes[transfer.to_user] = balance.owes.get(transfer.to_user, Decimal("0")) + transfer.amount
        elif transfer.to_user == user_id:
            balance.owed_by[transfer.from_user] = (
                balance.owed_by.get(transfer.from_user, Decimal("0")) + transfer.amount
            )
    return balance


def _label(user_id: int, names: Mapping[int, str]) -> str:
    return names.get(user_id) or f"#{user_id}"


def _money(amount: Decimal) -> str:
    return f"{amount:.2f}"


def format_report(report: BalanceReport, names: Optional[Mapping[int, str]] = None) -> str:
    names = names or {}
    lines = [f"Group #{report.group_id} balances:"]
    if not report.per_user:
        lines.append("• no expenses yet")
    for user_id, position in report.per_user.items():
        net = position.net
        sign = "+" if net > 0 else ""
        lines.append(f"• {_label(user_id, names)}: {sign}{_money(net)}")

    lines.append("")
    lines.append("Settlement plan:")
    if not report.plan:
        lines.append("• everyone is settled")
    for transfer in report.plan:
        lines.append(
            f"• {_label(transfer.from_user, names)} → {_label(transfer.to_user, names)}: {_money(transfer.amount)}"
        )
    return "\n".join(lines)


def format_violations(violations: tuple[Violation, ...]) -> str:
    return "\n".join(f"• {violation.describe()}" for violation in violations)
