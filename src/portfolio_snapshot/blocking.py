"""Structured reasons a proposed trade cannot execute, and their rendering"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union
from pydantic import BaseModel, Field

def _date(value: datetime) -> str:
    return value.strftime('%m/%d/%Y')

class RestrictedCandidate(BaseModel):
    """A sleeve member that would be a replacement but is wash-sale restricted"""
    ticker: str
    until: datetime
    sold_at: Optional[datetime] = None
    reason: Optional[str] = None
    days_remaining: int

class SelfRestricted(BaseModel):
    """The harvested position itself is under an active restriction"""
    kind: Literal['self_restricted'] = 'self_restricted'
    ticker: str
    until: datetime

class RestrictedReplacements(BaseModel):
    """Every other candidate in the sleeve is wash-sale restricted"""
    kind: Literal['restricted_replacements'] = 'restricted_replacements'
    loss: float
    loss_pct: float
    blocked: List[RestrictedCandidate]

class InactiveReplacements(BaseModel):
    """Every other candidate in the sleeve is inactive or legacy"""
    kind: Literal['inactive_replacements'] = 'inactive_replacements'
    tickers: List[str]

class NoSleeveCandidates(BaseModel):
    """The sleeve holds nothing but the original security"""
    kind: Literal['no_sleeve_candidates'] = 'no_sleeve_candidates'

class MixedReplacements(BaseModel):
    """Candidates exist but each is restricted or inactive"""
    kind: Literal['mixed_replacements'] = 'mixed_replacements'
    restricted: List[RestrictedCandidate] = Field(default_factory=list)
    inactive: List[str] = Field(default_factory=list)

BlockingReason = Annotated[
    Union[SelfRestricted, RestrictedReplacements, InactiveReplacements, NoSleeveCandidates, MixedReplacements],
    Field(discriminator='kind'),
]

def _restricted_line(candidate: RestrictedCandidate) -> str:
    if candidate.sold_at is not None:
        return (f"- {candidate.ticker} sold on {_date(candidate.sold_at)}, blocked until "
                f"{_date(candidate.until)} ({candidate.days_remaining} days left)")
    line = f"- {candidate.ticker} blocked until {_date(candidate.until)} ({candidate.days_remaining} days left)"
    if candidate.reason:
        line += f": {candidate.reason}"
    return line

def format_blocking_reason(reason) -> str:
    """Render a blocking reason as operator-facing text"""
    if isinstance(reason, SelfRestricted):
        return f"Wash sale restriction on {reason.ticker} until {_date(reason.until)}"

    if isinstance(reason, RestrictedReplacements):
        details = "\n".join(_restricted_line(c) for c in reason.blocked)
        return (
            f"Unable to harvest ${abs(reason.loss):,.2f} ({abs(reason.loss_pct):.2f}%) loss because of "
            f"potential wash sales with all replacement securities:\n{details}"
        )

    if isinstance(reason, InactiveReplacements):
        return f"All replacement securities in this sleeve are inactive: {', '.join(reason.tickers)}"

    if isinstance(reason, NoSleeveCandidates):
        return "No replacement securities available in this sleeve"

    if isinstance(reason, MixedReplacements):
        parts = [f"{c.ticker} (restricted until {_date(c.until)})" for c in reason.restricted]
        parts.extend(f"{ticker} (inactive)" for ticker in reason.inactive)
        return f"No available replacement securities: {', '.join(parts)}"

    raise TypeError(f"Unknown blocking reason: {reason!r}")
