"""Post-trade consolidation, ordering and projections"""

from collections import OrderedDict
from typing import Dict, List, Tuple

from portfolio_snapshot import HoldingPost, Sleeve, SleeveSummary, Trade

def consolidate_trades(trades: List[Trade]) -> List[Trade]:
    """
    Merge executable trades for the same ticker, account, side and sleeve.

    Blocked trades are never merged. Order of first appearance is preserved.
    """
    merged: "OrderedDict[Tuple, Trade]" = OrderedDict()
    for index, trade in enumerate(trades):
        if not trade.can_execute:
            merged[('blocked', index)] = trade
            continue

        key = (trade.ticker, trade.account_id, trade.type, trade.sleeve_id)
        existing = merged.get(key)
        if existing is None:
            merged[key] = trade.model_copy()
            continue

        reasons = existing.reason.split('; ')
        if trade.reason not in reasons:
            reasons.append(trade.reason)
        realized = None
        if existing.realized_gain_loss is not None or trade.realized_gain_loss is not None:
            realized = (existing.realized_gain_loss or 0.0) + (trade.realized_gain_loss or 0.0)
        merged[key] = existing.model_copy(update={
            'qty': existing.qty + trade.qty,
            'estimated_value': existing.estimated_value + trade.estimated_value,
            'reason': '; '.join(reasons),
            'realized_gain_loss': realized,
        })
    return list(merged.values())

def sort_trades(trades: List[Trade]) -> List[Trade]:
    """Sleeve name ascending, SELL before BUY within a sleeve; otherwise stable"""
    return sorted(trades, key=lambda t: (t.sleeve_name, 0 if t.type == 'SELL' else 1))

def _net_trade_values(trades: List[Trade]) -> Tuple[Dict[str, float], Dict[str, float], Dict[str, int]]:
    qty_by_ticker: Dict[str, float] = {}
    value_by_sleeve: Dict[str, float] = {}
    qty_by_sleeve: Dict[str, int] = {}
    for trade in trades:
        if not trade.can_execute:
            continue
        sign = 1 if trade.type == 'BUY' else -1
        qty_by_ticker[trade.ticker] = qty_by_ticker.get(trade.ticker, 0.0) + sign * trade.qty
        value_by_sleeve[trade.sleeve_id] = value_by_sleeve.get(trade.sleeve_id, 0.0) + sign * trade.estimated_value
        qty_by_sleeve[trade.sleeve_id] = qty_by_sleeve.get(trade.sleeve_id, 0) + sign * trade.qty
    return qty_by_ticker, value_by_sleeve, qty_by_sleeve

def calculate_post_holdings(sleeves: List[Sleeve], trades: List[Trade]) -> List[HoldingPost]:
    """Projected quantity per ticker after executable trades; cash absorbs the net trade value"""
    qty_by_ticker, value_by_sleeve, _ = _net_trade_values(trades)
    net_cash_flow = -sum(value_by_sleeve.values())

    current: Dict[str, float] = {}
    cash_ticker = None
    for sleeve in sleeves:
        for entry in sleeve.securities:
            current[entry.ticker] = current.get(entry.ticker, 0.0) + entry.current_qty
            if sleeve.is_cash and cash_ticker is None and entry.price > 0:
                cash_ticker = entry.ticker

    post: Dict[str, float] = {}
    for ticker in set(current) | set(qty_by_ticker):
        post[ticker] = current.get(ticker, 0.0) + qty_by_ticker.get(ticker, 0.0)

    if cash_ticker is not None:
        cash_price = next(e.price for s in sleeves if s.is_cash for e in s.securities if e.ticker == cash_ticker)
        post[cash_ticker] = post.get(cash_ticker, 0.0) + net_cash_flow / cash_price

    return [HoldingPost(ticker=ticker, qty=qty) for ticker, qty in sorted(post.items()) if abs(qty) > 1e-9]

def calculate_sleeve_summaries(sleeves: List[Sleeve], trades: List[Trade], total_value: float) -> List[SleeveSummary]:
    """Per-sleeve net trade quantity and value, with projected value and percent of portfolio"""
    _, value_by_sleeve, qty_by_sleeve = _net_trade_values(trades)
    net_cash_flow = -sum(value_by_sleeve.values())

    summaries = []
    for sleeve in sleeves:
        trade_value = value_by_sleeve.get(sleeve.sleeve_id, 0.0)
        post_value = sleeve.current_value + (net_cash_flow if sleeve.is_cash else trade_value)
        summaries.append(SleeveSummary(
            sleeve_id=sleeve.sleeve_id,
            sleeve_name=sleeve.display_name,
            trade_qty=qty_by_sleeve.get(sleeve.sleeve_id, 0),
            trade_value=trade_value,
            post_value=post_value,
            post_pct=(post_value / total_value * 100) if total_value > 0 else 0.0,
        ))
    return summaries
