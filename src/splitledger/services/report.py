from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping, Optional

from splitledger.db.models import NetPosition, SettlementTransfer
from splitledger.logging import get_logger
from splitledger.services.balances import BalanceCalculator
from splitledger.services.settlement import DebtSimplifier
from splitledger.services.snapshot import LedgerSnapshot
from splitledger.services.validation import (
    DEFAULT_EPSILON,
    ConsistencyValidator,
    ValidationError,
)

log = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class BalanceReport:
    group_id: int
    per_user: Mapping[int, NetPosition]
    plan: tuple[SettlementTransfer, ...]

    def position(self, user_id: int) -> NetPosition:
        return self.per_user.get(user_id) or NetPosition(user_id=user_id)


class BalanceReportBuilder:
    def __init__(self, epsilon: Optional[Decimal] = None) -> None:
        if epsilon is None:
            epsilon = DEFAULT_EPSILON
        self.epsilon = epsilon
        self.validator = ConsistencyValidator(epsilon)
        self.calculator = BalanceCalculator(epsilon, validator=self.validator)
        self.simplifier = DebtSimplifier(epsilon)

    def build(self, snapshot: LedgerSnapshot) -> BalanceReport:
        result = self.validator.validate(snapshot)
        if not result.ok:
            log.warning("report.rejected", group_id=snapshot.group_id, violations=len(result.violations))
            raise ValidationError(
                f"group #{snapshot.group_id} ledger has {len(result.violations)} violation(s)",
                result.violations,
            )

        positions = self.calculator.compute_net_positions(snapshot)
        plan = self.simplifier.simplify(positions)

        log.info(
            "report.built",
            group_id=snapshot.group_id,
            users=len(positions),
            transfers=len(plan),
        )
        return BalanceReport(
            group_id=snapshot.group_id,
            per_user=MappingProxyType(dict(positions)),
            plan=tuple(plan),
        )
