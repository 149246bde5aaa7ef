from decimal import Decimal

from ledger_factory import make_expense, make_payment, make_shares
from splitledger.db.models import ExpenseShare
from splitledger.services.snapshot import LedgerSnapshot
from splitledger.services.validation import (
    ConsistencyValidator,
    DuplicateShare,
    EmptySplit,
    InvalidExpense,
    InvalidPayment,
    OrphanShare,
    SplitMismatch,
)


def test_valid_snapshot_has_no_violations():
    snapshot = LedgerSnapshot.build(
        1,
        expenses=[make_expense(1, payer_id=1, amount="100")],
        shares=make_shares(1, {1: "33.33", 2: "33.33", 3: "33.33"}),
        payments=[make_payment(1, payer_id=2, receiver_id=1, amount="33.33")],
    )

    result = ConsistencyValidator().validate(snapshot)

    assert result.ok
    assert result.violations == ()


def test_split_mismatch_is_reported():
    snapshot = LedgerSnapshot.build(
        1,
        expenses=[make_expense(1, payer_id=1, amount="100")],
        shares=make_shares(1, {1: "50", 2: "45"}),
    )

    result = ConsistencyValidator().validate(snapshot)

    assert result.violations == (SplitMismatch(1, expected=Decimal("100"), actual=Decimal("95")),)


def test_expense_without_shares_is_reported():
    snapshot = LedgerSnapshot.build(1, expenses=[make_expense(3, payer_id=1, amount="20")])

    result = ConsistencyValidator().validate(snapshot)

    assert not result.ok
    assert result.violations == (EmptySplit(3),)


def test_non_positive_payments_are_reported():
    snapshot = LedgerSnapshot.build(
        1,
        payments=[
            make_payment(1, payer_id=1, receiver_id=2, amount="0"),
            make_payment(2, payer_id=1, receiver_id=2, amount="-5"),
            make_payment(3, payer_id=1, receiver_id=2, amount="5"),
        ],
    )

    result = ConsistencyValidator().validate(snapshot)

    assert result.violations == (InvalidPayment(1), InvalidPayment(2))


def test_all_violations_are_collected():
    snapshot = LedgerSnapshot.build(
        1,
        expenses=[
            make_expense(1, payer_id=1, amount="100"),
            make_expense(2, payer_id=2, amount="10"),
            make_expense(3, payer_id=2, amount="0"),
        ],
        shares=[
            *make_shares(1, {1: "60", 2: "60"}),
            *make_shares(3, {1: "0"}),
            ExpenseShare(expense_id=99, user_id=4, share_amount=Decimal("1")),
        ],
        payments=[make_payment(7, payer_id=1, receiver_id=2, amount="0")],
    )

    result = ConsistencyValidator().validate(snapshot)

    assert result.violations == (
        SplitMismatch(1, expected=Decimal("100"), actual=Decimal("120")),
        EmptySplit(2),
        InvalidExpense(3),
        OrphanShare(99, 4),
        InvalidPayment(7),
    )


def test_duplicate_share_for_same_user():
    snapshot = LedgerSnapshot.build(
        1,
        expenses=[make_expense(1, payer_id=1, amount="100")],
        shares=[
            *make_shares(1, {1: "50"}),
            *make_shares(1, {1: "50"}),
        ],
    )

    result = ConsistencyValidator().validate(snapshot)

    assert result.violations == (DuplicateShare(1, 1),)


def test_epsilon_is_configurable():
    snapshot = LedgerSnapshot.build(
        1,
        expenses=[make_expense(1, payer_id=1, amount="100")],
        shares=make_shares(1, {1: "49.97", 2: "50"}),
    )

    assert not ConsistencyValidator().validate(snapshot).ok
    assert ConsistencyValidator(Decimal("0.05")).validate(snapshot).ok
