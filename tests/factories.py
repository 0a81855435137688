"""Snapshot builders shared by the tests."""

from datetime import datetime, timedelta, timezone
from typing import List, Optional

from portfolio_snapshot import (
    CASH_SLEEVE_ID,
    ORPHAN_SLEEVE_ID,
    Eligible,
    RebalanceRequest,
    SecurityEntry,
    Sleeve,
    WashSaleRestriction,
)

NOW = datetime(2024, 6, 3, 15, 0, tzinfo=timezone.utc)


def entry(ticker, rank=1, qty=0.0, price=100.0, account_id="ACC-1", taxable=False, gain=0.0,
          eligibility=None, opened_at=None) -> SecurityEntry:
    return SecurityEntry(
        ticker=ticker,
        rank=rank,
        current_qty=qty,
        price=price,
        account_id=account_id,
        is_taxable=taxable,
        unrealized_gain=gain,
        opened_at=opened_at,
        eligibility=eligibility or Eligible(),
    )


def sleeve(sleeve_id, target_pct, entries: List[SecurityEntry], name: Optional[str] = None) -> Sleeve:
    return Sleeve(sleeve_id=sleeve_id, name=name or sleeve_id, target_pct=target_pct, securities=entries)


def cash(amount=0.0, manual=0.0) -> Sleeve:
    entries = []
    if amount:
        entries.append(entry("$$$", rank=1, qty=amount, price=1.0))
    if manual:
        entries.append(entry("MCASH", rank=2, qty=manual, price=1.0))
    return Sleeve(sleeve_id=CASH_SLEEVE_ID, name="Cash", securities=entries)


def orphans(*entries: SecurityEntry) -> Sleeve:
    return Sleeve(sleeve_id=ORPHAN_SLEEVE_ID, name="Orphan Securities", securities=list(entries))


def request(method, **kwargs) -> RebalanceRequest:
    return RebalanceRequest(portfolio_id="P-1", method=method, **kwargs)


def restriction(ticker, days_left, sold_days_ago=None) -> WashSaleRestriction:
    sold_at = NOW - timedelta(days=sold_days_ago) if sold_days_ago is not None else None
    return WashSaleRestriction(
        ticker=ticker,
        restricted_until=NOW + timedelta(days=days_left),
        reason=f"Harvested {ticker} at a loss",
        sold_at=sold_at,
    )


def summarize(trades):
    """Compact (type, ticker, qty) view of a trade list."""
    return [(t.type, t.ticker, t.qty) for t in trades]


def buy_total(trades) -> float:
    return sum(t.estimated_value for t in trades if t.type == "BUY")
