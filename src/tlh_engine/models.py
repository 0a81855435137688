from dataclasses import dataclass, field
from datetime import datetime
from typing import List
from pydantic import BaseModel, Field
from portfolio_snapshot import RebalanceRequest, Sleeve, SleeveDiagnostic, Trade, Transaction

from .replacement import ReplacementResolver
from .wash_sale import WashSaleIndex

class MethodResult(BaseModel):
    """Trades produced by one rebalance method, with warnings and diagnostics"""
    trades: List[Trade]
    warnings: List[str] = Field(default_factory=list)
    diagnostics: List[SleeveDiagnostic] = Field(default_factory=list)
    available_cash: float = 0.0
    invested_cash: float = 0.0

@dataclass
class RunInputs:
    """Everything a strategy reads during one run"""
    request: RebalanceRequest
    sleeves: List[Sleeve]
    total_value: float
    now: datetime
    wash_sale_index: WashSaleIndex
    resolver: ReplacementResolver
    transactions: List[Transaction] = field(default_factory=list)

    @property
    def cash_sleeve(self) -> Sleeve:
        return next(s for s in self.sleeves if s.is_cash)

    @property
    def orphan_sleeve(self) -> Sleeve:
        return next(s for s in self.sleeves if s.is_orphan)

    @property
    def model_sleeves(self) -> List[Sleeve]:
        return [s for s in self.sleeves if not (s.is_cash or s.is_orphan)]
