from decimal import Decimal

import pytest

from ledger_factory import make_expense, make_payment, make_shares
from splitledger.services.balances import BalanceCalculator
from splitledger.services.snapshot import LedgerSnapshot
from splitledger.services.validation import ConsistencyValidator, EmptySplit, InconsistentLedger


def _nets(positions):
    return {user_id: position.net for user_id, position in positions.items()}


def _three_way_dinner(payments=()):
    return LedgerSnapshot.build(
        1,
        expenses=[make_expense(1, payer_id=1, amount="90")],
        shares=make_shares(1, {1: "30", 2: "30", 3: "30"}),
        payments=payments,
    )


def test_two_users_even_split():
    snapshot = LedgerSnapshot.build(
        1,
        expenses=[make_expense(1, payer_id=1, amount="100")],
        shares=make_shares(1, {1: "50", 2: "50"}),
    )

    positions = BalanceCalculator().compute_net_positions(snapshot)

    assert _nets(positions) == {1: Decimal("50"), 2: Decimal("-50")}
    assert positions[1].credit == Decimal("100")
    assert positions[1].debit == Decimal("50")


def test_three_users_even_split():
    positions = BalanceCalculator().compute_net_positions(_three_way_dinner())

    assert _nets(positions) == {1: Decimal("60"), 2: Decimal("-30"), 3: Decimal("-30")}


def test_payment_clears_outstanding_debt():
    snapshot = _three_way_dinner(payments=[make_payment(1, payer_id=2, receiver_id=1, amount="30")])

    positions = BalanceCalculator().compute_net_positions(snapshot)

    assert _nets(positions) == {1: Decimal("30"), 2: Decimal("0"), 3: Decimal("-30")}


def test_shares_are_explicit_weights_not_equal_split():
    snapshot = LedgerSnapshot.build(
        1,
        expenses=[make_expense(1, payer_id=3, amount="120")],
        shares=make_shares(1, {1: "100", 2: "20"}),
    )

    positions = BalanceCalculator().compute_net_positions(snapshot)

    assert _nets(positions) == {1: Decimal("-100"), 2: Decimal("-20"), 3: Decimal("120")}


def test_nets_sum_to_zero():
    snapshot = LedgerSnapshot.build(
        1,
        expenses=[
            make_expense(1, payer_id=1, amount="100"),
            make_expense(2, payer_id=2, amount="45.50"),
            make_expense(3, payer_id=4, amount="12"),
        ],
        shares=[
            *make_shares(1, {1: "33.34", 2: "33.33", 3: "33.33"}),
            *make_shares(2, {2: "15.50", 3: "15", 4: "15"}),
            *make_shares(3, {1: "6", 4: "6"}),
        ],
        payments=[
            make_payment(1, payer_id=3, receiver_id=1, amount="20"),
            make_payment(2, payer_id=4, receiver_id=2, amount="5.25"),
        ],
    )

    positions = BalanceCalculator().compute_net_positions(snapshot)

    assert sum(position.net for position in positions.values()) == Decimal("0")


def test_order_of_records_does_not_matter():
    expenses = [make_expense(1, payer_id=1, amount="100"), make_expense(2, payer_id=2, amount="30")]
    shares = [*make_shares(1, {1: "50", 2: "25", 3: "25"}), *make_shares(2, {1: "10", 2: "10", 3: "10"})]
    payments = [make_payment(1, payer_id=3, receiver_id=1, amount="10"), make_payment(2, payer_id=3, receiver_id=2, amount="5")]

    calculator = BalanceCalculator()
    forward = calculator.compute_net_positions(LedgerSnapshot.build(1, expenses=expenses, shares=shares, payments=payments))
    backward = calculator.compute_net_positions(
        LedgerSnapshot.build(1, expenses=expenses[::-1], shares=shares[::-1], payments=payments[::-1])
    )

    assert forward == backward


def test_inconsistent_ledger_is_refused():
    snapshot = LedgerSnapshot.build(1, expenses=[make_expense(5, payer_id=1, amount="10")])

    with pytest.raises(InconsistentLedger) as exc_info:
        BalanceCalculator().compute_net_positions(snapshot)

    assert exc_info.value.violations == (EmptySplit(5),)


def test_empty_snapshot_has_no_positions():
    assert BalanceCalculator().compute_net_positions(LedgerSnapshot.build(1)) == {}


def _short_by_a_cent(count):
    return LedgerSnapshot.build(
        1,
        expenses=[make_expense(n, payer_id=1, amount="100") for n in range(1, count + 1)],
        shares=[share for n in range(1, count + 1) for share in make_shares(n, {2: "99.99"})],
    )


def test_rounding_drift_across_expenses_is_refused():
    snapshot = _short_by_a_cent(3)
    assert ConsistencyValidator().validate(snapshot).ok

    with pytest.raises(InconsistentLedger) as exc_info:
        BalanceCalculator().compute_net_positions(snapshot)

    assert exc_info.value.violations == ()


def test_drift_of_exactly_epsilon_is_accepted():
    positions = BalanceCalculator().compute_net_positions(_short_by_a_cent(1))

    assert _nets(positions) == {1: Decimal("100"), 2: Decimal("-99.99")}
    assert sum(position.net for position in positions.values()) == Decimal("0.01")
