"""Tests for the cash ledger."""

import pytest

from portfolio_snapshot import InvariantViolationError
from tlh_engine import CashLedger


def test_available_cash_includes_proceeds():
    ledger = CashLedger(starting_cash=1000, portfolio_value=10000)
    ledger.credit_sale(500)

    assert ledger.available_cash == 1500
    assert ledger.remaining == 1500


def test_buy_sized_down_to_whole_shares():
    ledger = CashLedger(starting_cash=1000, portfolio_value=10000)

    assert ledger.size_buy(price=300, allocated=1000) == 3


def test_buy_never_exceeds_remaining_cash():
    ledger = CashLedger(starting_cash=1000, portfolio_value=10000)
    ledger.record_buy(900)

    assert ledger.size_buy(price=50, allocated=1000) == 2


def test_overinvestment_only_for_last_buy():
    ledger = CashLedger(starting_cash=1000, portfolio_value=10000, allow_overinvestment=True,
                        max_overinvestment_percent=5.0)

    assert ledger.size_buy(price=260, allocated=1000, shortfall=1000, is_last=False) == 3
    assert ledger.size_buy(price=260, allocated=1000, shortfall=1000, is_last=True) == 4


def test_overinvestment_capped_by_shortfall():
    ledger = CashLedger(starting_cash=1000, portfolio_value=10000, allow_overinvestment=True,
                        max_overinvestment_percent=50.0)

    # 600 of shortfall rounds up to 3 shares at most
    assert ledger.size_buy(price=250, allocated=600, shortfall=600, is_last=True) == 3
    assert ledger.size_buy(price=200, allocated=600, shortfall=600, is_last=True) == 3


def test_allowance_bounded_by_available_cash():
    ledger = CashLedger(starting_cash=100, portfolio_value=100000, allow_overinvestment=True,
                        max_overinvestment_percent=5.0)

    assert ledger.overinvestment_allowance == pytest.approx(5.0)
    assert ledger.spending_limit == pytest.approx(105.0)


def test_no_allowance_without_overinvestment():
    ledger = CashLedger(starting_cash=100, portfolio_value=1000, max_overinvestment_percent=5.0)

    assert ledger.spending_limit == 100


def test_overspend_is_invariant_violation():
    ledger = CashLedger(starting_cash=100, portfolio_value=1000)

    with pytest.raises(InvariantViolationError):
        ledger.record_buy(150)


def test_non_positive_price_rejected():
    ledger = CashLedger(starting_cash=100, portfolio_value=1000)

    with pytest.raises(InvariantViolationError):
        ledger.size_buy(price=0, allocated=100)


def test_negative_proceeds_rejected():
    ledger = CashLedger(starting_cash=100, portfolio_value=1000)

    with pytest.raises(InvariantViolationError):
        ledger.credit_sale(-1)
