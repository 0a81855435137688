"""Tests for trade consolidation, ordering and projections."""

import pytest

from portfolio_snapshot import NoSleeveCandidates, Trade
from tlh_engine.summaries import calculate_post_holdings, consolidate_trades, sort_trades

from factories import cash, entry, sleeve


def trade(ticker, type_, qty, sleeve_name="Tech", price=10.0, reason="r", can_execute=True, account_id="A"):
    return Trade(
        ticker=ticker,
        type=type_,
        qty=qty,
        price=price,
        estimated_value=qty * price,
        reason=reason,
        account_id=account_id,
        sleeve_id=sleeve_name.lower(),
        sleeve_name=sleeve_name,
        can_execute=can_execute,
        blocking_reason=None if can_execute else NoSleeveCandidates(),
    )


def test_consolidate_merges_same_ticker_side_and_account():
    merged = consolidate_trades([
        trade("VOO", "BUY", 3, reason="replacement"),
        trade("VOO", "BUY", 2, reason="top up"),
        trade("VOO", "BUY", 1, account_id="B"),
    ])

    assert [(t.ticker, t.qty, t.account_id) for t in merged] == [("VOO", 5, "A"), ("VOO", 1, "B")]
    assert merged[0].reason == "replacement; top up"
    assert merged[0].estimated_value == pytest.approx(50.0)


def test_blocked_trades_never_merged():
    merged = consolidate_trades([
        trade("AAPL", "SELL", 3, can_execute=False),
        trade("AAPL", "SELL", 2, can_execute=False),
    ])

    assert len(merged) == 2


def test_sort_by_sleeve_name_then_sells_first():
    trades = [
        trade("BND", "BUY", 1, sleeve_name="Bonds"),
        trade("MSFT", "BUY", 1),
        trade("AAPL", "SELL", 1),
        trade("AGG", "SELL", 1, sleeve_name="Bonds"),
        trade("XYZ", "SELL", 1, sleeve_name="Alpha"),
    ]

    assert [t.ticker for t in sort_trades(trades)] == ["XYZ", "AGG", "BND", "AAPL", "MSFT"]


def test_post_holdings_apply_executable_trades_and_cash():
    sleeves = [cash(1000), sleeve("tech", 1.0, [entry("AAPL", qty=10, price=10.0), entry("MSFT", price=10.0)])]
    trades = [
        trade("AAPL", "SELL", 4),
        trade("MSFT", "BUY", 9),
        trade("AAPL", "SELL", 6, can_execute=False),
    ]

    post = {h.ticker: h.qty for h in calculate_post_holdings(sleeves, trades)}

    assert post == {"$$$": pytest.approx(950.0), "AAPL": pytest.approx(6.0), "MSFT": pytest.approx(9.0)}
