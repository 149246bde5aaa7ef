from __future__ import annotations

from decimal import Decimal
from typing import Iterable, List, Mapping, Union

from splitledger.db.models import NetPosition, SettlementTransfer
from splitledger.services.validation import DEFAULT_EPSILON

NetLike = Union[NetPosition, Decimal]


def _net_of(value: NetLike) -> Decimal:
    if isinstance(value, NetPosition):
        return value.net
    return Decimal(value)


def _largest(side: dict[int, Decimal]) -> int:
    # Largest outstanding amount first, lower user id on ties.
    return min(side, key=lambda user_id: (-side[user_id], user_id))


class DebtSimplifier:
    def __init__(self, epsilon: Decimal = DEFAULT_EPSILON) -> None:
        self.epsilon = epsilon

    def simplify(self, net_positions: Mapping[int, NetLike]) -> List[SettlementTransfer]:
        creditors: dict[int, Decimal] = {}
        debtors: dict[int, Decimal] = {}

        for user_id, value in net_positions.items():
            net = _net_of(value)
            if net > self.epsilon:
                creditors[user_id] = net
            elif net < -self.epsilon:
                debtors[user_id] = -net

        transfers: list[SettlementTransfer] = []

        while creditors and debtors:
            debt_id = _largest(debtors)
            cred_id = _largest(creditors)

            amount = min(debtors[debt_id], creditors[cred_id])
            transfers.append(SettlementTransfer(from_user=debt_id, to_user=cred_id, amount=amount))

            debtors[debt_id] -= amount
            creditors[cred_id] -= amount

            if debtors[debt_id] <= self.epsilon:
                del debtors[debt_id]
            if creditors[cred_id] <= self.epsilon:
                del creditors[cred_id]

        return transfers


def apply_transfers(
    net_positions: Mapping[int, NetLike],
    transfers: Iterable[SettlementTransfer],
) -> dict[int, Decimal]:
    after = {user_id: _net_of(value) for user_id, value in net_positions.items()}
    for transfer in transfers:
        after[transfer.from_user] = after.get(transfer.from_user, Decimal("0")) + transfer.amount
        after[transfer.to_user] = after.get(transfer.to_user, Decimal("0")) - transfer.amount
    return after
