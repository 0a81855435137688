"""Holding period classification used to narrate harvest trades"""

import math
from datetime import datetime
from typing import Iterable, Optional

from portfolio_snapshot import SecurityEntry, Transaction
from portfolio_snapshot.models import ensure_utc

def resolve_opened_at(entry: SecurityEntry, transactions: Iterable[Transaction]) -> Optional[datetime]:
    """Position open date, falling back to the earliest BUY for the ticker in the entry's account"""
    if entry.opened_at is not None:
        return entry.opened_at

    buys = [
        tx.executed_at for tx in transactions
        if tx.ticker == entry.ticker and tx.type == 'BUY'
        and (tx.account_id is None or tx.account_id == entry.account_id)
    ]
    return min(buys) if buys else None

def days_held(opened_at: datetime, now: datetime) -> int:
    seconds = (ensure_utc(now) - ensure_utc(opened_at)).total_seconds()
    return math.floor(seconds / 86400)

def is_long_term(held_days: int, long_term_holding_days: int = 365) -> bool:
    return held_days > long_term_holding_days

def classify_term(entry: SecurityEntry, transactions: Iterable[Transaction], now: datetime,
                  long_term_holding_days: int = 365) -> Optional[str]:
    """Return 'long-term' or 'short-term', or None when no open date is known"""
    opened_at = resolve_opened_at(entry, transactions)
    if opened_at is None:
        return None
    held = days_held(opened_at, now)
    return 'long-term' if is_long_term(held, long_term_holding_days) else 'short-term'
