from datetime import datetime, timezone
from typing import Annotated, List, Literal, Optional, Union, get_args
from pydantic import BaseModel, Field, computed_field, field_validator

from .blocking import BlockingReason, format_blocking_reason

CASH_SLEEVE_ID = "cash"
ORPHAN_SLEEVE_ID = "orphan-securities"

RebalanceMethod = Literal['allocation', 'tlhSwap', 'tlhRebalance', 'investCash']
REBALANCE_METHODS = get_args(RebalanceMethod)

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive timestamps as UTC so every comparison in a run is well defined"""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

# Eligibility variants
class Eligible(BaseModel):
    kind: Literal['eligible'] = 'eligible'

class Restricted(BaseModel):
    """Active wash-sale restriction attached to a sleeve member"""
    kind: Literal['restricted'] = 'restricted'
    until: datetime
    reason: str
    sold_at: Optional[datetime] = None

    @field_validator('until', 'sold_at')
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

class Inactive(BaseModel):
    kind: Literal['inactive'] = 'inactive'

class Legacy(BaseModel):
    kind: Literal['legacy'] = 'legacy'

Eligibility = Annotated[Union[Eligible, Restricted, Inactive, Legacy], Field(discriminator='kind')]

# Snapshot models
class SecurityEntry(BaseModel):
    """One ticker's position within a sleeve"""
    ticker: str
    rank: int
    current_qty: float = 0.0
    target_pct: float = 0.0  # fraction of total portfolio value
    price: float
    account_id: str
    is_taxable: bool = False
    unrealized_gain: float = 0.0
    opened_at: Optional[datetime] = None
    eligibility: Eligibility = Field(default_factory=Eligible)

    @field_validator('opened_at')
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def current_value(self) -> float:
        return self.current_qty * self.price

    @property
    def cost_basis(self) -> float:
        return self.current_value - self.unrealized_gain

    @property
    def is_eligible(self) -> bool:
        return isinstance(self.eligibility, Eligible)

    @property
    def is_legacy(self) -> bool:
        return isinstance(self.eligibility, Legacy)

class SleeveDiagnostic(BaseModel):
    """Per-sleeve or per-security condition surfaced to the caller"""
    sleeve_id: str
    code: str
    message: str
    ticker: Optional[str] = None
    amount: Optional[float] = None

class DiagnosticCode:
    """Diagnostic codes attached to results"""
    ZERO_ELIGIBLE_MEMBERS = "ZERO_ELIGIBLE_MEMBERS"
    BUY_BELOW_ONE_SHARE = "BUY_BELOW_ONE_SHARE"
    FRACTIONAL_POSITION = "FRACTIONAL_POSITION"
    MISSING_PRICE = "MISSING_PRICE"
    HARVEST_BLOCKED = "HARVEST_BLOCKED"
    NO_REPLACEMENT_SHARES = "NO_REPLACEMENT_SHARES"

class Sleeve(BaseModel):
    """A ranked group of interchangeable securities filling one model slot"""
    sleeve_id: str
    name: Optional[str] = None
    target_value: float = 0.0
    target_pct: float = 0.0
    current_value: float = 0.0
    securities: List[SecurityEntry] = Field(default_factory=list)
    diagnostics: List[SleeveDiagnostic] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        return self.name or self.sleeve_id

    @property
    def is_cash(self) -> bool:
        return self.sleeve_id == CASH_SLEEVE_ID

    @property
    def is_orphan(self) -> bool:
        return self.sleeve_id == ORPHAN_SLEEVE_ID

    def ranked(self) -> List[SecurityEntry]:
        return sorted(self.securities, key=lambda s: (s.rank, s.ticker))

    def eligible_members(self) -> List[SecurityEntry]:
        return [s for s in self.ranked() if s.is_eligible]

class WashSaleRestriction(BaseModel):
    ticker: str
    restricted_until: datetime
    reason: str
    sold_at: Optional[datetime] = None

    @field_validator('restricted_until', 'sold_at')
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

class ReplacementCandidate(BaseModel):
    original_ticker: str
    replacement_ticker: str
    rank: int

class Transaction(BaseModel):
    """Executed trade from history; used for holding-period narration only"""
    ticker: str
    type: Literal['BUY', 'SELL']
    qty: float
    price: float = 0.0
    executed_at: datetime
    account_id: Optional[str] = None
    realized_gain_loss: float = 0.0

    @field_validator('executed_at')
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

# Builder inputs
class Holding(BaseModel):
    """A raw position in one account, as loaded by the caller"""
    account_id: str
    ticker: str
    qty: float
    price: float
    cost_basis: float = 0.0  # total cost of the position
    is_taxable: bool = False
    opened_at: Optional[datetime] = None

    @field_validator('opened_at')
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)

    @property
    def market_value(self) -> float:
        return self.qty * self.price

class ModelMember(BaseModel):
    sleeve_id: str
    target_weight_bps: int
    name: Optional[str] = None

class SleeveMemberDefinition(BaseModel):
    ticker: str
    rank: int
    is_active: bool = True
    is_legacy: bool = False
    price: Optional[float] = None

class SleeveDefinition(BaseModel):
    sleeve_id: str
    name: Optional[str] = None
    members: List[SleeveMemberDefinition] = Field(default_factory=list)

# Trade and request models
class Trade(BaseModel):
    """Proposed whole-share order"""
    ticker: str
    type: Literal['BUY', 'SELL']
    qty: int = Field(gt=0)
    price: float
    estimated_value: float
    reason: str
    account_id: str
    sleeve_id: str
    sleeve_name: str
    rank: Optional[int] = None
    realized_gain_loss: Optional[float] = None
    can_execute: bool = True
    blocking_reason: Optional[BlockingReason] = None

    @computed_field
    @property
    def blocking_message(self) -> Optional[str]:
        if self.blocking_reason is None:
            return None
        return format_blocking_reason(self.blocking_reason)

class RebalanceRequest(BaseModel):
    portfolio_id: str
    method: RebalanceMethod
    allow_overinvestment: bool = False
    max_overinvestment_percent: float = 5.0
    cash_amount: Optional[float] = None

# Result models
class HoldingPost(BaseModel):
    """Projected quantity after executable trades"""
    ticker: str
    qty: float

class SleeveSummary(BaseModel):
    sleeve_id: str
    sleeve_name: str
    trade_qty: int
    trade_value: float  # buys positive, sells negative
    post_value: float
    post_pct: float

class RebalanceResult(BaseModel):
    """Result of a rebalance calculation"""
    portfolio_id: str
    method: RebalanceMethod
    trades: List[Trade]
    diagnostics: List[SleeveDiagnostic] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    post_holdings: List[HoldingPost] = Field(default_factory=list)
    sleeve_summaries: List[SleeveSummary] = Field(default_factory=list)
    available_cash: float = 0.0
    invested_cash: float = 0.0
