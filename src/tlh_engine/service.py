import asyncio
import logging
from collections import defaultdict
from datetime import datetime, timezone
from typing import Optional

from portfolio_snapshot import RebalanceRequest, RebalanceResult, SnapshotSource
from portfolio_snapshot.models import ensure_utc
from rebalancer_config import RebalancerConfig, get_config
from .calculator import TradeCalculator
from .targets import build_sleeves
from .wash_sale import WashSaleIndex

class RebalanceService:
    """Load a snapshot from a source, build sleeves and run the calculator"""

    # Class-level locks shared across all instances
    _portfolio_locks = defaultdict(asyncio.Lock)

    def __init__(self, calculator: Optional[TradeCalculator] = None, config: Optional[RebalancerConfig] = None,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or (calculator.config if calculator else get_config())
        self.calculator = calculator or TradeCalculator(logger=self.logger, config=self.config)

    async def rebalance(self, source: SnapshotSource, request: RebalanceRequest,
                        now: Optional[datetime] = None) -> RebalanceResult:
        now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)

        async with self._portfolio_locks[request.portfolio_id]:
            self.logger.debug(f"Loading snapshot for portfolio {request.portfolio_id}")
            holdings, model_members, definitions, restrictions, transactions, seeds = await asyncio.gather(
                source.get_holdings(request.portfolio_id),
                source.get_model_members(request.portfolio_id),
                source.get_sleeve_definitions(request.portfolio_id),
                source.get_wash_sale_restrictions(request.portfolio_id),
                source.get_transactions(request.portfolio_id),
                source.get_replacement_candidates(request.portfolio_id),
            )
            self.logger.info(f"Loaded snapshot for portfolio {request.portfolio_id}: {len(holdings)} holdings, "
                             f"{len(model_members)} model sleeves, {len(restrictions)} restrictions")

            sleeves = build_sleeves(
                holdings, model_members, definitions, WashSaleIndex(restrictions, now), self.config
            )
            return self.calculator.execute_rebalance(
                request, sleeves, restrictions, seeds, transactions, now=now
            )
