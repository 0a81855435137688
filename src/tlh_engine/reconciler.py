"""Cash and rounding reconciliation for whole-share buys"""

import logging
import math
from typing import Optional

from portfolio_snapshot import InvariantViolationError

_EPSILON = 1e-9

class CashLedger:
    """
    Running cash pool for one rebalance run.

    Sale proceeds are credited as sells are tallied; buys are sized against what
    remains. With overinvestment allowed, total buys may exceed the available cash
    by the allowance, but only through the one-share round-up granted to the last
    buy of a sleeve.
    """

    def __init__(self, starting_cash: float, portfolio_value: float, allow_overinvestment: bool = False,
                 max_overinvestment_percent: float = 0.0, dust_tolerance: float = 0.01,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.starting_cash = max(0.0, starting_cash)
        self.portfolio_value = portfolio_value
        self.allow_overinvestment = allow_overinvestment
        self.max_overinvestment_percent = max_overinvestment_percent
        self.dust_tolerance = dust_tolerance
        self.proceeds = 0.0
        self.invested = 0.0

    @property
    def available_cash(self) -> float:
        return self.starting_cash + self.proceeds

    @property
    def remaining(self) -> float:
        return self.available_cash - self.invested

    @property
    def overinvestment_allowance(self) -> float:
        if not self.allow_overinvestment:
            return 0.0
        # Bounded by both the available cash and the portfolio value
        base = min(self.available_cash, self.portfolio_value)
        return max(0.0, base) * self.max_overinvestment_percent / 100

    @property
    def spending_limit(self) -> float:
        return self.available_cash + self.overinvestment_allowance

    def credit_sale(self, value: float) -> None:
        if value < 0:
            raise InvariantViolationError(f"Negative sale proceeds: {value}")
        self.proceeds += value

    def size_buy(self, price: float, allocated: float, shortfall: Optional[float] = None,
                 is_last: bool = False) -> int:
        """
        Whole shares affordable for `allocated` cash, never more than remains.

        The last buy of a sleeve may take one extra share when overinvestment is
        allowed, the extra share stays within `shortfall`, and total buys stay
        within the spending limit.
        """
        if price <= 0:
            raise InvariantViolationError(f"Cannot size a buy at non-positive price {price}")

        budget = max(0.0, min(allocated, self.remaining))
        qty = math.floor(budget / price + _EPSILON)
        if qty > 0 and qty * price > budget + 1e-6:
            qty -= 1

        if self.allow_overinvestment and is_last and shortfall is not None and qty * price < allocated:
            cap = math.ceil(shortfall / price - _EPSILON)
            extra_cost = (qty + 1) * price
            if qty + 1 <= cap and self.invested + extra_cost <= self.spending_limit + 1e-6:
                self.logger.debug(f"Overinvesting one share at ${price:.2f} to avoid stranding "
                                  f"${allocated - qty * price:,.2f}")
                qty += 1

        if qty < 0:
            raise InvariantViolationError(f"Computed negative buy quantity {qty}")
        return qty

    def record_buy(self, value: float) -> None:
        if value < 0:
            raise InvariantViolationError(f"Negative buy value: {value}")
        self.invested += value
        if self.invested > self.spending_limit + self.dust_tolerance:
            raise InvariantViolationError(
                f"Buys of ${self.invested:,.2f} exceed spending limit ${self.spending_limit:,.2f}"
            )
