from __future__ import annotations

from decimal import Decimal
from typing import Optional

from splitledger.db.models import NetPosition
from splitledger.logging import get_logger
from splitledger.services.snapshot import LedgerSnapshot
from splitledger.services.validation import (
    DEFAULT_EPSILON,
    ConsistencyValidator,
    InconsistentLedger,
)

log = get_logger(__name__)


class BalanceCalculator:
    """Reduces a snapshot to a net position per user.

    Shares are explicit: a user is debited exactly their ``share_amount``,
    the payer is credited the full expense amount. A payment adds its amount
    to the payer's credit and to the receiver's debit.
    """

    def __init__(
        self,
        epsilon: Decimal = DEFAULT_EPSILON,
        validator: Optional[ConsistencyValidator] = None,
    ) -> None:
        self.epsilon = epsilon
        self.validator = validator or ConsistencyValidator(epsilon)

    def compute_net_positions(self, snapshot: LedgerSnapshot) -> dict[int, NetPosition]:
        result = self.validator.validate(snapshot)
        if not result.ok:
            log.warning("ledger.invalid", group_id=snapshot.group_id, violations=len(result.violations))
            raise InconsistentLedger(
                f"group #{snapshot.group_id} ledger has {len(result.violations)} violation(s)",
                result.violations,
            )

        credit: dict[int, Decimal] = {}
        debit: dict[int, Decimal] = {}

        for expense in snapshot.expenses:
            credit[expense.payer_id] = credit.get(expense.payer_id, Decimal("0")) + expense.amount
        for share in snapshot.shares:
            debit[share.user_id] = debit.get(share.user_id, Decimal("0")) + share.share_amount

        for payment in snapshot.payments:
            credit[payment.payer_id] = credit.get(payment.payer_id, Decimal("0")) + payment.amount
            debit[payment.receiver_id] = debit.get(payment.receiver_id, Decimal("0")) + payment.amount

        positions = {
            user_id: NetPosition(
                user_id=user_id,
                credit=credit.get(user_id, Decimal("0")),
                debit=debit.get(user_id, Decimal("0")),
            )
            for user_id in sorted(set(credit) | set(debit))
        }

        # Per-expense rounding that passed validation can still add up across
        # the group; the total itself must stay within epsilon.
        total = sum((position.net for position in positions.values()), Decimal("0"))
        if abs(total) > self.epsilon:
            log.warning("ledger.unbalanced", group_id=snapshot.group_id, total=str(total))
            raise InconsistentLedger(f"group #{snapshot.group_id} nets sum to {total}, not zero")

        return positions
