"""Sleeve target construction: model weights and holdings into per-sleeve targets"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Set

from portfolio_snapshot import (
    CASH_SLEEVE_ID,
    ORPHAN_SLEEVE_ID,
    DiagnosticCode,
    Eligible,
    Holding,
    Inactive,
    InvariantViolationError,
    Legacy,
    ModelMember,
    RequestValidationError,
    SecurityEntry,
    Sleeve,
    SleeveDefinition,
    SleeveDiagnostic,
)
from rebalancer_config import RebalancerConfig
from .wash_sale import WashSaleIndex

logger = logging.getLogger(__name__)

@dataclass
class _Position:
    """Holdings of one ticker aggregated across accounts"""
    ticker: str
    account_id: str
    price: float
    qty: float = 0.0
    cost_basis: float = 0.0
    is_taxable: bool = False
    opened_at: Optional[datetime] = None

    @property
    def market_value(self) -> float:
        return self.qty * self.price

def _aggregate_holdings(holdings: Iterable[Holding]) -> Dict[str, _Position]:
    positions: Dict[str, _Position] = {}
    for holding in holdings:
        position = positions.get(holding.ticker)
        if position is None:
            position = _Position(ticker=holding.ticker, account_id=holding.account_id, price=holding.price)
            positions[holding.ticker] = position
        position.qty += holding.qty
        position.cost_basis += holding.cost_basis
        position.is_taxable = position.is_taxable or holding.is_taxable
        if holding.opened_at is not None and (position.opened_at is None or holding.opened_at < position.opened_at):
            position.opened_at = holding.opened_at
    return positions

def portfolio_value(sleeves: Iterable[Sleeve]) -> float:
    """Total market value across every sleeve, cash included"""
    return sum(entry.current_value for sleeve in sleeves for entry in sleeve.securities)

def investable_cash(cash_sleeve: Optional[Sleeve], config: RebalancerConfig) -> float:
    """Cash the run may deploy; manual cash counts only when configured"""
    if cash_sleeve is None:
        return 0.0
    return sum(
        entry.current_value for entry in cash_sleeve.securities
        if config.cash.include_manual_cash or entry.ticker != config.cash.manual_cash_ticker
    )

def orphan_rank_floor(sleeves: Iterable[Sleeve], config: RebalancerConfig) -> int:
    """Rank placed strictly after every real sleeve member"""
    real_ranks = [
        entry.rank for sleeve in sleeves if not (sleeve.is_cash or sleeve.is_orphan)
        for entry in sleeve.securities
    ]
    return max([config.allocation.orphan_rank] + [rank + 1 for rank in real_ranks])

def _zero_eligible_diagnostic(sleeve: Sleeve) -> SleeveDiagnostic:
    return SleeveDiagnostic(
        sleeve_id=sleeve.sleeve_id,
        code=DiagnosticCode.ZERO_ELIGIBLE_MEMBERS,
        message=(
            f"Sleeve {sleeve.display_name} has zero eligible members; "
            f"${sleeve.target_value:,.2f} of target value is unallocated"
        ),
        amount=sleeve.target_value,
    )

def redistribute_targets(sleeve: Sleeve, excluded: Optional[Set[str]] = None) -> Sleeve:
    """
    Split the sleeve's target percent evenly across its eligible members.

    Members in `excluded` are treated as ineligible for the split. Ineligible
    members always get a zero target. Returns a new sleeve; the input is untouched.
    """
    excluded = excluded or set()
    result = sleeve.model_copy(deep=True)
    eligible = [entry for entry in result.securities if entry.is_eligible and entry.ticker not in excluded]
    share = result.target_pct / len(eligible) if eligible else 0.0
    eligible_ids = {id(entry) for entry in eligible}

    for entry in result.securities:
        entry.target_pct = share if id(entry) in eligible_ids else 0.0

    already_flagged = any(d.code == DiagnosticCode.ZERO_ELIGIBLE_MEMBERS for d in result.diagnostics)
    if not eligible and result.target_pct > 0 and not already_flagged:
        diagnostic = _zero_eligible_diagnostic(result)
        logger.warning(diagnostic.message)
        result.diagnostics.append(diagnostic)

    return result

def check_target_invariant(sleeves: Iterable[Sleeve], config: RebalancerConfig) -> None:
    total_pct = sum(sleeve.target_pct for sleeve in sleeves)
    if total_pct > 1.0 + config.allocation.target_pct_tolerance:
        raise InvariantViolationError(f"Sleeve targets sum to {total_pct * 100:.6f}%, above 100%")

def build_sleeves(holdings: List[Holding], model_members: List[ModelMember],
                  sleeve_definitions: List[SleeveDefinition], wash_sale_index: WashSaleIndex,
                  config: RebalancerConfig, default_account_id: Optional[str] = None) -> List[Sleeve]:
    """
    Build the ordered sleeve list for a run: cash first, model sleeves in model
    order, orphan sleeve last.

    Raises:
        RequestValidationError: If model weights do not sum to the configured total
        InvariantViolationError: If computed sleeve targets exceed 100%
    """
    total_bps = config.allocation.total_weight_bps
    weight_sum = sum(member.target_weight_bps for member in model_members)
    if weight_sum != total_bps:
        raise RequestValidationError(
            f"Model weights sum to {weight_sum} bps, expected {total_bps}", field="model_members"
        )
    if any(member.target_weight_bps < 0 for member in model_members):
        raise RequestValidationError("Model weights must not be negative", field="model_members")

    seen_ids = [member.sleeve_id for member in model_members]
    if len(seen_ids) != len(set(seen_ids)):
        raise RequestValidationError("Model lists a sleeve more than once", field="model_members")

    positions = _aggregate_holdings(holdings)
    total_value = sum(position.market_value for position in positions.values())
    if default_account_id is None:
        default_account_id = holdings[0].account_id if holdings else ""

    definitions = {definition.sleeve_id: definition for definition in sleeve_definitions}
    cash_tickers = (config.cash.base_cash_ticker, config.cash.manual_cash_ticker)

    logger.info(f"Building sleeves: {len(model_members)} model sleeves, {len(positions)} held tickers, "
                f"portfolio value ${total_value:,.2f}")

    # Cash sleeve
    cash_entries = []
    for rank, ticker in enumerate(cash_tickers, start=1):
        position = positions.get(ticker)
        if position is None:
            continue
        cash_entries.append(SecurityEntry(
            ticker=ticker,
            rank=rank,
            current_qty=position.qty,
            price=position.price,
            account_id=position.account_id,
        ))
    cash_sleeve = Sleeve(sleeve_id=CASH_SLEEVE_ID, name="Cash", securities=cash_entries)
    cash_sleeve.current_value = portfolio_value([cash_sleeve])

    # Model sleeves
    assigned: Set[str] = set()
    model_sleeves: List[Sleeve] = []
    for member in model_members:
        definition = definitions.get(member.sleeve_id) or SleeveDefinition(sleeve_id=member.sleeve_id)
        target_pct = member.target_weight_bps / total_bps
        sleeve = Sleeve(
            sleeve_id=member.sleeve_id,
            name=member.name or definition.name,
            target_pct=target_pct,
            target_value=total_value * target_pct,
        )

        for member_def in sorted(definition.members, key=lambda m: (m.rank, m.ticker)):
            ticker = member_def.ticker
            position = positions.get(ticker) if ticker not in assigned else None
            assigned.add(ticker)

            if not member_def.is_active:
                eligibility = Inactive()
            elif member_def.is_legacy:
                eligibility = Legacy()
            else:
                eligibility = wash_sale_index.is_restricted(ticker) or Eligible()

            if position is not None:
                price = position.price
            elif member_def.price is not None and member_def.price > 0:
                price = member_def.price
            else:
                price = config.allocation.missing_price_fallback
                message = f"No price for {ticker} in sleeve {sleeve.display_name}; using ${price:.2f}"
                logger.warning(message)
                sleeve.diagnostics.append(SleeveDiagnostic(
                    sleeve_id=sleeve.sleeve_id,
                    code=DiagnosticCode.MISSING_PRICE,
                    message=message,
                    ticker=ticker,
                ))

            sleeve.securities.append(SecurityEntry(
                ticker=ticker,
                rank=member_def.rank,
                current_qty=position.qty if position else 0.0,
                price=price,
                account_id=position.account_id if position else default_account_id,
                is_taxable=position.is_taxable if position else False,
                unrealized_gain=(position.market_value - position.cost_basis) if position else 0.0,
                opened_at=position.opened_at if position else None,
                eligibility=eligibility,
            ))

        sleeve.current_value = portfolio_value([sleeve])
        model_sleeves.append(redistribute_targets(sleeve))

    check_target_invariant(model_sleeves, config)

    # Orphan sleeve
    orphan_rank = orphan_rank_floor(model_sleeves, config)
    orphan_entries = [
        SecurityEntry(
            ticker=position.ticker,
            rank=orphan_rank,
            current_qty=position.qty,
            price=position.price,
            account_id=position.account_id,
            is_taxable=position.is_taxable,
            unrealized_gain=position.market_value - position.cost_basis,
            opened_at=position.opened_at,
        )
        for ticker, position in sorted(positions.items())
        if ticker not in assigned and ticker not in cash_tickers and position.qty > 0
    ]
    orphan_sleeve = Sleeve(sleeve_id=ORPHAN_SLEEVE_ID, name="Orphan Securities", securities=orphan_entries)
    orphan_sleeve.current_value = portfolio_value([orphan_sleeve])
    if orphan_entries:
        logger.info(f"Orphan securities: {', '.join(e.ticker for e in orphan_entries)}")

    return [cash_sleeve] + model_sleeves + [orphan_sleeve]

def prepare_sleeves(sleeves: List[Sleeve], wash_sale_index: WashSaleIndex, config: RebalancerConfig) -> List[Sleeve]:
    """
    Normalize caller-supplied sleeves for a run.

    Returns copies ordered cash, model sleeves as supplied, orphan last. Synthetic
    sleeves are created when missing, values and targets are recomputed against the
    run's portfolio value, members restricted at the run's instant lose eligibility,
    and orphan ranks are pinned after every real rank.
    """
    total_value = portfolio_value(sleeves)
    cash = next((s for s in sleeves if s.is_cash), None)
    orphan = next((s for s in sleeves if s.is_orphan), None)

    cash = cash.model_copy(deep=True) if cash else Sleeve(sleeve_id=CASH_SLEEVE_ID, name="Cash")
    orphan = orphan.model_copy(deep=True) if orphan else Sleeve(sleeve_id=ORPHAN_SLEEVE_ID, name="Orphan Securities")
    cash.target_pct = cash.target_value = 0.0
    orphan.target_pct = orphan.target_value = 0.0

    model_sleeves = []
    for sleeve in sleeves:
        if sleeve.is_cash or sleeve.is_orphan:
            continue
        prepared = sleeve.model_copy(deep=True)
        if prepared.target_pct <= 0 and prepared.target_value > 0 and total_value > 0:
            prepared.target_pct = prepared.target_value / total_value
        prepared.target_value = prepared.target_pct * total_value

        for entry in prepared.securities:
            if entry.is_eligible:
                restriction = wash_sale_index.is_restricted(entry.ticker)
                if restriction is not None:
                    entry.eligibility = restriction
        model_sleeves.append(redistribute_targets(prepared))

    floor_rank = orphan_rank_floor(model_sleeves, config)
    for entry in orphan.securities:
        entry.rank = max(entry.rank, floor_rank)

    ordered = [cash] + model_sleeves + [orphan]
    for sleeve in ordered:
        sleeve.current_value = portfolio_value([sleeve])
    return ordered
