"""Point-in-time index of active wash-sale restrictions"""

import math
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from portfolio_snapshot import Restricted, WashSaleRestriction
from portfolio_snapshot.models import ensure_utc

class WashSaleIndex:
    """
    Answers whether a ticker is blocked from repurchase at the run's instant.

    The instant is fixed when the index is built; restrictions that have already
    expired at that instant are dropped and never reconsidered during the run.
    """

    def __init__(self, restrictions: Iterable[WashSaleRestriction], now: datetime):
        self.now = ensure_utc(now)
        self._active: Dict[str, WashSaleRestriction] = {}

        for restriction in restrictions:
            if restriction.restricted_until <= self.now:
                continue
            existing = self._active.get(restriction.ticker)
            if existing is None or restriction.restricted_until > existing.restricted_until:
                self._active[restriction.ticker] = restriction

    def is_restricted(self, ticker: str) -> Optional[Restricted]:
        restriction = self._active.get(ticker)
        if restriction is None:
            return None
        return Restricted(
            until=restriction.restricted_until,
            reason=restriction.reason,
            sold_at=restriction.sold_at,
        )

    def days_remaining(self, until: datetime) -> int:
        """Whole days until a restriction lifts, rounded up"""
        seconds = (ensure_utc(until) - self.now).total_seconds()
        return max(0, math.ceil(seconds / 86400))

    def active_restrictions(self) -> List[WashSaleRestriction]:
        return [self._active[ticker] for ticker in sorted(self._active)]

    def __contains__(self, ticker: str) -> bool:
        return ticker in self._active

    def __len__(self) -> int:
        return len(self._active)
