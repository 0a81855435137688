"""Tests for harvest-then-rebalance."""

from datetime import timedelta

import pytest

from factories import NOW, cash, entry, orphans, request, restriction, sleeve, summarize


def losing_aapl():
    return entry("AAPL", 1, qty=235, price=200, taxable=True, gain=-3000.0, opened_at=NOW - timedelta(days=30))


def test_harvest_then_top_up_replacement(calculator):
    """Harvest proceeds buy VOO; leftover cash tops VOO up to the whole sleeve target."""
    sleeves = [
        cash(3000),
        sleeve("tech", 1.0, [losing_aapl(), entry("VOO", 2, price=400)], name="Tech"),
        orphans(),
    ]
    result = calculator.execute_rebalance(request("tlhRebalance"), sleeves, now=NOW)

    assert summarize(result.trades) == [("SELL", "AAPL", 235), ("BUY", "VOO", 125)]
    buy = result.trades[1]
    assert "replacement for AAPL" in buy.reason
    assert "toward target" in buy.reason
    assert result.invested_cash == pytest.approx(50000.0)


def test_harvested_ticker_never_sold_twice_or_bought_back(calculator):
    sleeves = [
        cash(),
        sleeve("tech", 0.5, [losing_aapl(), entry("VOO", 2, price=400)], name="Tech"),
        sleeve("bonds", 0.5, [entry("BND", 1, qty=100, price=80)], name="Bonds"),
        orphans(),
    ]
    result = calculator.execute_rebalance(request("tlhRebalance"), sleeves, now=NOW)

    aapl = [t for t in result.trades if t.ticker == "AAPL"]
    assert len(aapl) == 1
    assert aapl[0].type == "SELL"
    assert aapl[0].qty == 235


def test_blocked_harvest_is_frozen(calculator):
    sleeves = [
        cash(),
        sleeve("tech", 0.5, [losing_aapl(), entry("VOO", 2, price=400)], name="Tech"),
        sleeve("bonds", 0.5, [entry("BND", 1, qty=100, price=80)], name="Bonds"),
        orphans(),
    ]
    result = calculator.execute_rebalance(
        request("tlhRebalance"), sleeves, wash_sale_restrictions=[restriction("VOO", 12, 18)], now=NOW
    )

    aapl = [t for t in result.trades if t.ticker == "AAPL"]
    assert len(aapl) == 1
    assert aapl[0].can_execute is False
    assert not any(t.ticker == "VOO" for t in result.trades)


def test_allocation_runs_without_harvest_candidates(calculator):
    sleeves = [
        cash(),
        sleeve("tech", 0.2, [entry("AAPL", 1, qty=125, price=200), entry("MSFT", 2, price=50)], name="Tech"),
        sleeve("bonds", 0.8, [entry("BND", 1, qty=750, price=100)], name="Bonds"),
        orphans(),
    ]
    result = calculator.execute_rebalance(request("tlhRebalance"), sleeves, now=NOW)

    assert summarize(result.trades) == [("SELL", "AAPL", 25), ("BUY", "MSFT", 100)]
