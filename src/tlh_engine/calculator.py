"""Rebalance entry point: validate, prepare sleeves, run a method, assemble the result"""

from datetime import datetime, timezone
from typing import List, Optional
import logging
from portfolio_snapshot import (
    RebalanceError,
    RebalanceRequest,
    RebalanceResult,
    ReplacementCandidate,
    RequestValidationError,
    Sleeve,
    Transaction,
    WashSaleRestriction,
)
from portfolio_snapshot.models import ensure_utc
from rebalancer_config import RebalancerConfig, get_config
from .context import RunContext, clear_current_run, set_current_run
from .models import RunInputs
from .replacement import ReplacementResolver
from .strategies import get_strategy
from .summaries import calculate_post_holdings, calculate_sleeve_summaries, consolidate_trades, sort_trades
from .targets import check_target_invariant, portfolio_value, prepare_sleeves
from .wash_sale import WashSaleIndex

class TradeCalculator:
    """Calculate trades for a portfolio snapshot under one rebalance method"""

    def __init__(self, logger: Optional[logging.Logger] = None, config: Optional[RebalancerConfig] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.config = config or get_config()

    def execute_rebalance(self, request: RebalanceRequest, sleeves: List[Sleeve],
                          wash_sale_restrictions: Optional[List[WashSaleRestriction]] = None,
                          replacement_candidates: Optional[List[ReplacementCandidate]] = None,
                          transactions: Optional[List[Transaction]] = None,
                          now: Optional[datetime] = None) -> RebalanceResult:
        """
        Produce the ordered trade list for a snapshot.

        The snapshot is never mutated. Identical inputs and `now` always give
        identical results.

        Raises:
            RequestValidationError: If the request or snapshot is malformed
            InvariantViolationError: If an internal consistency check fails
            RebalanceError: If the calculation fails unexpectedly
        """
        self._validate_request(request, sleeves)
        now = ensure_utc(now) if now is not None else datetime.now(timezone.utc)

        set_current_run(RunContext(portfolio_id=request.portfolio_id, method=request.method))
        try:
            self.logger.info(f"Starting {request.method} rebalance for portfolio {request.portfolio_id}")

            wash_sale_index = WashSaleIndex(wash_sale_restrictions or [], now)
            prepared = prepare_sleeves(sleeves, wash_sale_index, self.config)
            self._validate_weights(prepared)
            check_target_invariant(prepared, self.config)
            total_value = portfolio_value(prepared)

            self.logger.info(f"Portfolio value ${total_value:,.2f}, {len(prepared) - 2} model sleeves, "
                             f"{len(wash_sale_index)} active wash-sale restrictions")

            run = RunInputs(
                request=request,
                sleeves=prepared,
                total_value=total_value,
                now=now,
                wash_sale_index=wash_sale_index,
                resolver=ReplacementResolver(wash_sale_index, replacement_candidates, self.logger),
                transactions=list(transactions or []),
            )
            strategy = get_strategy(request.method, self.config, self.logger)
            method_result = strategy.generate(run)

            trades = sort_trades(consolidate_trades(method_result.trades))
            diagnostics = [d for sleeve in prepared for d in sleeve.diagnostics] + method_result.diagnostics

            sells = [t for t in trades if t.type == 'SELL']
            blocked = [t for t in trades if not t.can_execute]
            self.logger.info(f"Generated {len(trades)} trades ({len(sells)} sells, {len(trades) - len(sells)} buys, "
                             f"{len(blocked)} blocked); invested ${method_result.invested_cash:,.2f} "
                             f"of ${method_result.available_cash:,.2f}")

            return RebalanceResult(
                portfolio_id=request.portfolio_id,
                method=request.method,
                trades=trades,
                diagnostics=diagnostics,
                warnings=method_result.warnings,
                post_holdings=calculate_post_holdings(prepared, trades),
                sleeve_summaries=calculate_sleeve_summaries(prepared, trades, total_value),
                available_cash=method_result.available_cash,
                invested_cash=method_result.invested_cash,
            )
        except (RequestValidationError, RebalanceError):
            raise
        except Exception as e:
            self.logger.error(f"Rebalance failed for portfolio {request.portfolio_id}: {e}", exc_info=True)
            raise RebalanceError(f"Rebalance failed: {e}", portfolio_id=request.portfolio_id) from e
        finally:
            clear_current_run()

    def _validate_request(self, request: RebalanceRequest, sleeves: List[Sleeve]) -> None:
        if not request.portfolio_id or not request.portfolio_id.strip():
            raise RequestValidationError("Portfolio ID is required", field="portfolio_id")

        if request.cash_amount is not None and request.cash_amount < 0:
            raise RequestValidationError("Cash amount must not be negative", field="cash_amount")

        ceiling = self.config.overinvestment.max_percent_ceiling
        if not 0 <= request.max_overinvestment_percent <= ceiling:
            raise RequestValidationError(
                f"Max overinvestment percent must be between 0 and {ceiling}",
                field="max_overinvestment_percent",
            )

        if not sleeves:
            raise RequestValidationError("At least one sleeve is required", field="sleeves")

        sleeve_ids = [sleeve.sleeve_id for sleeve in sleeves]
        if len(sleeve_ids) != len(set(sleeve_ids)):
            raise RequestValidationError("Sleeve IDs must be unique", field="sleeves")

    def _validate_weights(self, sleeves: List[Sleeve]) -> None:
        total_bps = self.config.allocation.total_weight_bps
        model_sleeves = [s for s in sleeves if not (s.is_cash or s.is_orphan)]
        weight_bps = round(sum(s.target_pct for s in model_sleeves) * total_bps)
        if weight_bps != total_bps:
            raise RequestValidationError(
                f"Sleeve targets sum to {weight_bps} bps, expected {total_bps}", field="sleeves"
            )

def execute_rebalance(request: RebalanceRequest, sleeves: List[Sleeve],
                      wash_sale_restrictions: Optional[List[WashSaleRestriction]] = None,
                      replacement_candidates: Optional[List[ReplacementCandidate]] = None,
                      transactions: Optional[List[Transaction]] = None,
                      now: Optional[datetime] = None,
                      config: Optional[RebalancerConfig] = None) -> RebalanceResult:
    """Run one rebalance with a fresh calculator"""
    return TradeCalculator(config=config).execute_rebalance(
        request, sleeves, wash_sale_restrictions, replacement_candidates, transactions, now=now
    )
