"""Trade generation for the four rebalance methods"""

import logging
import math
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set, Tuple, Type

from portfolio_snapshot import (
    BlockingReason,
    DiagnosticCode,
    Inactive,
    Legacy,
    Restricted,
    SecurityEntry,
    SelfRestricted,
    Sleeve,
    SleeveDiagnostic,
    Trade,
)
from rebalancer_config import RebalancerConfig
from .holding_period import classify_term
from .models import MethodResult, RunInputs
from .reconciler import CashLedger
from .targets import investable_cash, portfolio_value, redistribute_targets

_EPSILON = 1e-9

def whole_shares(qty: float) -> int:
    """Round a share count toward zero, tolerating float noise"""
    return max(0, math.floor(qty + _EPSILON))

@dataclass
class HarvestOutcome:
    """Tickers touched by the harvest phase"""
    harvested: Set[str] = field(default_factory=set)
    blocked: Set[str] = field(default_factory=set)
    replacement_buys: List[Trade] = field(default_factory=list)

class RebalanceStrategy(ABC):
    """Base class for rebalance methods"""

    method: str = ''

    def __init__(self, config: RebalancerConfig, logger: Optional[logging.Logger] = None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)

    @property
    def dust(self) -> float:
        return self.config.allocation.dust_tolerance_usd

    @abstractmethod
    def generate(self, run: RunInputs) -> MethodResult:
        """Produce the method's trades for one run"""
        pass

    def open_ledger(self, run: RunInputs, starting_cash: Optional[float] = None) -> CashLedger:
        if starting_cash is None:
            starting_cash = investable_cash(run.cash_sleeve, self.config)
        return CashLedger(
            starting_cash=starting_cash,
            portfolio_value=run.total_value,
            allow_overinvestment=run.request.allow_overinvestment,
            max_overinvestment_percent=run.request.max_overinvestment_percent,
            dust_tolerance=self.dust,
            logger=self.logger,
        )

    def _finish(self, result: MethodResult, ledger: CashLedger) -> MethodResult:
        result.available_cash = ledger.available_cash
        result.invested_cash = ledger.invested
        if ledger.remaining > self.dust:
            self.logger.info(f"${ledger.remaining:,.2f} stays in the cash sleeve after rounding")
        return result

    def _sell(self, sleeve: Sleeve, entry: SecurityEntry, qty: int, reason: str, can_execute: bool = True,
              blocking_reason: Optional[BlockingReason] = None) -> Trade:
        realized = entry.unrealized_gain * qty / entry.current_qty if entry.current_qty > 0 else 0.0
        return Trade(
            ticker=entry.ticker,
            type='SELL',
            qty=qty,
            price=entry.price,
            estimated_value=qty * entry.price,
            reason=reason,
            account_id=entry.account_id,
            sleeve_id=sleeve.sleeve_id,
            sleeve_name=sleeve.display_name,
            rank=entry.rank,
            realized_gain_loss=realized,
            can_execute=can_execute,
            blocking_reason=blocking_reason,
        )

    def _buy(self, sleeve: Sleeve, entry: SecurityEntry, qty: int, reason: str,
             account_id: Optional[str] = None) -> Trade:
        return Trade(
            ticker=entry.ticker,
            type='BUY',
            qty=qty,
            price=entry.price,
            estimated_value=qty * entry.price,
            reason=reason,
            account_id=account_id or entry.account_id,
            sleeve_id=sleeve.sleeve_id,
            sleeve_name=sleeve.display_name,
            rank=entry.rank,
        )

    def _sellable_shares(self, sleeve: Sleeve, entry: SecurityEntry, result: MethodResult) -> int:
        """Whole shares of a full liquidation, warning about any fractional remainder"""
        shares = whole_shares(entry.current_qty)
        remainder = entry.current_qty - shares
        if remainder > 1e-6:
            value = remainder * entry.price
            warning_message = (
                f"Position {entry.ticker} ({entry.current_qty:.4f} shares) leaves {remainder:.4f} shares "
                f"(${value:.2f}) unsold.\n\n"
                f"Only whole-share orders are generated.\n\n"
                f"Please close the fractional remainder manually."
            )
            result.warnings.append(warning_message)
            result.diagnostics.append(SleeveDiagnostic(
                sleeve_id=sleeve.sleeve_id,
                code=DiagnosticCode.FRACTIONAL_POSITION,
                message=f"Fractional remainder of {remainder:.4f} {entry.ticker} cannot be sold",
                ticker=entry.ticker,
                amount=value,
            ))
            self.logger.warning(
                f"Cannot sell fractional remainder: {entry.ticker} ({remainder:.4f} shares). "
                f"Manual intervention required."
            )
        return shares

    def _liquidate(self, sleeve: Sleeve, entry: SecurityEntry, reason: str, ledger: CashLedger,
                   result: MethodResult) -> Optional[Trade]:
        shares = self._sellable_shares(sleeve, entry, result)
        if shares < 1:
            return None
        self.logger.info(f"Liquidating: {entry.ticker} ({shares:,} shares @ ${entry.price:.2f})")
        trade = self._sell(sleeve, entry, shares, reason)
        ledger.credit_sale(trade.estimated_value)
        result.trades.append(trade)
        return trade

    def _liquidate_orphans(self, run: RunInputs, ledger: CashLedger, result: MethodResult) -> None:
        orphan = run.orphan_sleeve
        for entry in orphan.ranked():
            if entry.current_qty > 0:
                self._liquidate(orphan, entry, f"Liquidate orphan security {entry.ticker}", ledger, result)

    def _record_unaffordable(self, sleeve: Sleeve, entry: SecurityEntry, allocated: float,
                             result: MethodResult) -> None:
        if allocated <= self.dust:
            self.logger.debug(f"No cash left for {entry.ticker} in sleeve {sleeve.display_name}")
            return
        message = (f"${allocated:,.2f} allocated to {entry.ticker} cannot buy one share "
                   f"at ${entry.price:,.2f}")
        self.logger.info(f"Dropping buy: {message}")
        result.diagnostics.append(SleeveDiagnostic(
            sleeve_id=sleeve.sleeve_id,
            code=DiagnosticCode.BUY_BELOW_ONE_SHARE,
            message=message,
            ticker=entry.ticker,
            amount=allocated,
        ))

class AllocationStrategy(RebalanceStrategy):
    """Bring every eligible member to its target; liquidate ineligible members and orphans"""

    method = 'allocation'

    def generate(self, run: RunInputs) -> MethodResult:
        result = MethodResult(trades=[])
        ledger = self.open_ledger(run)
        self.sell_phase(run, ledger, result)
        self._liquidate_orphans(run, ledger, result)
        self.buy_phase(run, ledger, result)
        return self._finish(result, ledger)

    def _ineligible_reason(self, sleeve: Sleeve, entry: SecurityEntry) -> str:
        eligibility = entry.eligibility
        if isinstance(eligibility, Restricted):
            return (f"Sell {entry.ticker}: wash-sale restricted until "
                    f"{eligibility.until.strftime('%m/%d/%Y')}, not a target of {sleeve.display_name}")
        if isinstance(eligibility, Inactive):
            return f"Sell {entry.ticker}: inactive member of {sleeve.display_name}"
        if isinstance(eligibility, Legacy):
            return f"Sell {entry.ticker}: legacy member of {sleeve.display_name}"
        return f"Sell {entry.ticker}: not a target of {sleeve.display_name}"

    def sell_phase(self, run: RunInputs, ledger: CashLedger, result: MethodResult,
                   sleeves: Optional[List[Sleeve]] = None, frozen: FrozenSet[str] = frozenset()) -> None:
        """
        Tally every sell before any buy.

        Ineligible members are sold in full. Eligible members above their own
        target sell whole shares, capped by what the sleeve as a whole holds
        above the sleeve target.
        """
        for sleeve in sleeves if sleeves is not None else run.model_sleeves:
            sleeve_target = run.total_value * sum(entry.target_pct for entry in sleeve.securities)
            sleeve_current = portfolio_value([sleeve])

            for entry in sleeve.ranked():
                if entry.ticker in frozen or entry.is_eligible or entry.current_qty <= 0:
                    continue
                trade = self._liquidate(sleeve, entry, self._ineligible_reason(sleeve, entry), ledger, result)
                if trade is not None:
                    sleeve_current -= trade.estimated_value

            excess = sleeve_current - sleeve_target
            if excess <= self.dust:
                continue

            for entry in sleeve.ranked():
                if entry.ticker in frozen or not entry.is_eligible or entry.current_qty <= 0:
                    continue
                member_excess = entry.current_value - entry.target_pct * run.total_value
                if member_excess <= self.dust:
                    continue
                qty = min(whole_shares(min(member_excess, excess) / entry.price), whole_shares(entry.current_qty))
                if qty < 1:
                    continue
                trade = self._sell(sleeve, entry, qty,
                                   f"Rebalance {sleeve.display_name}: sell {qty} {entry.ticker} above target")
                ledger.credit_sale(trade.estimated_value)
                result.trades.append(trade)
                self.logger.debug(f"  Sell {entry.ticker}: {qty} shares (${trade.estimated_value:,.2f})")
                excess -= trade.estimated_value
                if excess <= self.dust:
                    break

    def buy_phase(self, run: RunInputs, ledger: CashLedger, result: MethodResult,
                  sleeves: Optional[List[Sleeve]] = None, frozen: FrozenSet[str] = frozenset()) -> None:
        """Fund shortfalls in sleeve order, preferred members first"""
        for sleeve in sleeves if sleeves is not None else run.model_sleeves:
            candidates: List[Tuple[SecurityEntry, float]] = []
            for entry in sleeve.eligible_members():
                if entry.ticker in frozen:
                    continue
                shortfall = entry.target_pct * run.total_value - entry.current_value
                if shortfall > self.dust:
                    candidates.append((entry, shortfall))

            for position, (entry, shortfall) in enumerate(candidates):
                is_last = position == len(candidates) - 1
                qty = ledger.size_buy(entry.price, shortfall, shortfall=shortfall, is_last=is_last)
                if qty < 1:
                    self._record_unaffordable(sleeve, entry, min(shortfall, max(ledger.remaining, 0.0)), result)
                    continue
                trade = self._buy(sleeve, entry, qty,
                                  f"Rebalance {sleeve.display_name}: buy {qty} {entry.ticker} toward target")
                ledger.record_buy(trade.estimated_value)
                result.trades.append(trade)
                self.logger.debug(f"  Buy {entry.ticker}: {qty} shares (${trade.estimated_value:,.2f})")

class TlhSwapStrategy(RebalanceStrategy):
    """Harvest qualifying losses and reinvest proceeds in a same-sleeve replacement"""

    method = 'tlhSwap'

    def generate(self, run: RunInputs) -> MethodResult:
        result = MethodResult(trades=[])
        ledger = self.open_ledger(run)
        self.harvest_phase(run, ledger, result)
        self._liquidate_orphans(run, ledger, result)
        return self._finish(result, ledger)

    def loss_metrics(self, entry: SecurityEntry) -> Tuple[float, float]:
        """Dollar loss and loss as a percent of cost basis"""
        loss = -entry.unrealized_gain
        cost_basis = entry.cost_basis
        loss_pct = loss / cost_basis * 100 if cost_basis > 0 else 0.0
        return loss, loss_pct

    def is_harvestable(self, entry: SecurityEntry) -> bool:
        if not entry.is_taxable or entry.is_legacy or entry.current_qty <= 0 or entry.unrealized_gain >= 0:
            return False
        loss, loss_pct = self.loss_metrics(entry)
        harvest = self.config.harvest
        return loss_pct >= harvest.min_loss_percent or loss >= harvest.min_loss_usd

    def _harvest_reason(self, run: RunInputs, entry: SecurityEntry, loss: float) -> str:
        term = classify_term(entry, run.transactions, run.now, self.config.harvest.long_term_holding_days)
        label = f" {term}" if term else ""
        return f"Sell {entry.ticker} to harvest ${loss:,.2f}{label} loss"

    def _block(self, sleeve: Sleeve, entry: SecurityEntry, shares: int, reason: str,
               blocking_reason: BlockingReason, loss: float, result: MethodResult) -> None:
        trade = self._sell(sleeve, entry, shares, reason, can_execute=False, blocking_reason=blocking_reason)
        result.trades.append(trade)
        result.diagnostics.append(SleeveDiagnostic(
            sleeve_id=sleeve.sleeve_id,
            code=DiagnosticCode.HARVEST_BLOCKED,
            message=trade.blocking_message,
            ticker=entry.ticker,
            amount=loss,
        ))
        self.logger.warning(f"Harvest of {entry.ticker} blocked: {trade.blocking_message}")

    def harvest_phase(self, run: RunInputs, ledger: CashLedger, result: MethodResult) -> HarvestOutcome:
        """Emit harvest sells per sleeve, then the replacement buys they fund"""
        outcome = HarvestOutcome()

        for sleeve in run.model_sleeves:
            harvestable = [entry for entry in sleeve.ranked() if self.is_harvestable(entry)]
            if not harvestable:
                continue
            harvesting = {entry.ticker for entry in harvestable}
            pending: List[Tuple[SecurityEntry, SecurityEntry, float]] = []

            for entry in harvestable:
                shares = self._sellable_shares(sleeve, entry, result)
                if shares < 1:
                    continue
                loss, loss_pct = self.loss_metrics(entry)
                sold_loss = loss * shares / entry.current_qty
                reason = self._harvest_reason(run, entry, sold_loss)

                own_restriction = run.wash_sale_index.is_restricted(entry.ticker)
                if own_restriction is None and isinstance(entry.eligibility, Restricted):
                    own_restriction = entry.eligibility
                if own_restriction is not None:
                    self._block(sleeve, entry, shares, reason,
                                SelfRestricted(ticker=entry.ticker, until=own_restriction.until), loss, result)
                    outcome.blocked.add(entry.ticker)
                    continue

                replacement = run.resolver.find_replacement(sleeve, entry.ticker, exclude=harvesting)
                if replacement is None:
                    blocking_reason = run.resolver.classify_block(
                        sleeve, entry.ticker, loss=loss, loss_pct=loss_pct, exclude=harvesting
                    )
                    self._block(sleeve, entry, shares, reason, blocking_reason, loss, result)
                    outcome.blocked.add(entry.ticker)
                    continue

                trade = self._sell(sleeve, entry, shares, reason)
                ledger.credit_sale(trade.estimated_value)
                result.trades.append(trade)
                outcome.harvested.add(entry.ticker)
                pending.append((entry, replacement, trade.estimated_value))
                self.logger.info(f"Harvesting {entry.ticker}: {shares:,} shares, loss ${sold_loss:,.2f} "
                                 f"({loss_pct:.2f}%), replacement {replacement.ticker}")

            for entry, replacement, proceeds in pending:
                qty = ledger.size_buy(replacement.price, proceeds)
                if qty < 1:
                    message = (f"Proceeds of ${proceeds:,.2f} from {entry.ticker} cannot buy one share of "
                               f"{replacement.ticker} at ${replacement.price:,.2f}")
                    result.warnings.append(message)
                    result.diagnostics.append(SleeveDiagnostic(
                        sleeve_id=sleeve.sleeve_id,
                        code=DiagnosticCode.NO_REPLACEMENT_SHARES,
                        message=message,
                        ticker=replacement.ticker,
                        amount=proceeds,
                    ))
                    self.logger.warning(message)
                    continue
                trade = self._buy(sleeve, replacement, qty,
                                  f"Buy {replacement.ticker} as replacement for {entry.ticker}",
                                  account_id=entry.account_id)
                ledger.record_buy(trade.estimated_value)
                result.trades.append(trade)
                outcome.replacement_buys.append(trade)

        return outcome

class TlhRebalanceStrategy(RebalanceStrategy):
    """Harvest first, then rebalance the post-harvest holdings"""

    method = 'tlhRebalance'

    def __init__(self, config: RebalancerConfig, logger: Optional[logging.Logger] = None):
        super().__init__(config, logger)
        self.harvester = TlhSwapStrategy(config, self.logger)
        self.allocator = AllocationStrategy(config, self.logger)

    def generate(self, run: RunInputs) -> MethodResult:
        result = MethodResult(trades=[])
        ledger = self.open_ledger(run)

        outcome = self.harvester.harvest_phase(run, ledger, result)
        self._liquidate_orphans(run, ledger, result)

        post_harvest = self._post_harvest_sleeves(run, result, outcome)
        replaced = {trade.ticker for trade in outcome.replacement_buys}
        no_sell = frozenset(outcome.harvested | outcome.blocked | replaced)
        no_buy = frozenset(outcome.harvested | outcome.blocked)
        self.logger.info(f"Post-harvest allocation: {len(outcome.harvested)} harvested, "
                         f"{len(outcome.blocked)} blocked, ${ledger.remaining:,.2f} cash")

        self.allocator.sell_phase(run, ledger, result, sleeves=post_harvest, frozen=no_sell)
        self.allocator.buy_phase(run, ledger, result, sleeves=post_harvest, frozen=no_buy)
        return self._finish(result, ledger)

    def _post_harvest_sleeves(self, run: RunInputs, result: MethodResult, outcome: HarvestOutcome) -> List[Sleeve]:
        """Model sleeves with executable harvest trades applied and targets re-split"""
        deltas: Dict[Tuple[str, str], float] = defaultdict(float)
        for trade in result.trades:
            if trade.can_execute:
                signed = trade.qty if trade.type == 'BUY' else -trade.qty
                deltas[(trade.sleeve_id, trade.ticker)] += signed

        sleeves = []
        for sleeve in run.model_sleeves:
            updated = redistribute_targets(sleeve, excluded=outcome.harvested)
            for entry in updated.securities:
                entry.current_qty = max(0.0, entry.current_qty + deltas.get((sleeve.sleeve_id, entry.ticker), 0.0))
            updated.current_value = portfolio_value([updated])
            result.diagnostics.extend(updated.diagnostics[len(sleeve.diagnostics):])
            sleeves.append(updated)
        return sleeves

class InvestCashStrategy(RebalanceStrategy):
    """Deploy cash into underfunded sleeves without selling anything"""

    method = 'investCash'

    def generate(self, run: RunInputs) -> MethodResult:
        result = MethodResult(trades=[])
        request = run.request
        deployable = investable_cash(run.cash_sleeve, self.config)
        if request.cash_amount is not None:
            # A requested amount can only narrow what is held
            deployable = min(request.cash_amount, deployable)
        ledger = self.open_ledger(run, starting_cash=deployable)

        if deployable <= self.dust:
            result.warnings.append("No cash available to invest")
            self.logger.info("No cash available to invest")
            return self._finish(result, ledger)

        needs: List[Tuple[Sleeve, float]] = []
        for sleeve in run.model_sleeves:
            if not sleeve.eligible_members():
                continue
            need = max(sleeve.target_value - sleeve.current_value, 0.0)
            if need <= self.dust:
                self.logger.debug(f"Skipping {sleeve.display_name}: at or above target")
                continue
            needs.append((sleeve, need))

        total_need = sum(need for _, need in needs)
        if not needs:
            result.warnings.append("All sleeves are at or above target; nothing to invest")
            self.logger.info("All sleeves are at or above target; nothing to invest")
            return self._finish(result, ledger)

        self.logger.info(f"Investing ${deployable:,.2f} across {len(needs)} sleeves "
                         f"(unfulfilled target ${total_need:,.2f})")

        # Floor remainders carry forward to the next sleeve
        carry = 0.0
        for sleeve, need in needs:
            budget = deployable * need / total_need + carry
            spent = self._fund_sleeve(run, sleeve, budget, ledger, result)
            carry = budget - spent

        return self._finish(result, ledger)

    def _fund_sleeve(self, run: RunInputs, sleeve: Sleeve, budget: float, ledger: CashLedger,
                     result: MethodResult) -> float:
        members = sleeve.eligible_members()
        left = budget
        spent = 0.0
        for position, entry in enumerate(members):
            is_last = position == len(members) - 1
            member_need = max(entry.target_pct * run.total_value - entry.current_value, 0.0)
            allocated = left if is_last else min(member_need, left)
            if allocated <= self.dust:
                continue
            qty = ledger.size_buy(entry.price, allocated, shortfall=allocated, is_last=is_last)
            if qty < 1:
                self._record_unaffordable(sleeve, entry, allocated, result)
                continue
            trade = self._buy(sleeve, entry, qty, f"Invest cash in {sleeve.display_name}: buy {qty} {entry.ticker}")
            ledger.record_buy(trade.estimated_value)
            result.trades.append(trade)
            spent += trade.estimated_value
            left -= trade.estimated_value
        return spent

STRATEGIES: Dict[str, Type[RebalanceStrategy]] = {
    AllocationStrategy.method: AllocationStrategy,
    TlhSwapStrategy.method: TlhSwapStrategy,
    TlhRebalanceStrategy.method: TlhRebalanceStrategy,
    InvestCashStrategy.method: InvestCashStrategy,
}

def get_strategy(method: str, config: RebalancerConfig, logger: Optional[logging.Logger] = None) -> RebalanceStrategy:
    try:
        strategy_class = STRATEGIES[method]
    except KeyError:
        raise ValueError(f"Unknown rebalance method: {method}") from None
    return strategy_class(config, logger)
