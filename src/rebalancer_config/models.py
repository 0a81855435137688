"""Pydantic models for rebalancer configuration with validation."""

from typing import Literal, Optional
from pydantic import BaseModel, Field, field_validator


class HarvestConfig(BaseModel):
    """Tax-loss harvesting thresholds."""

    min_loss_percent: float = Field(
        default=5.0,
        ge=0.0,
        le=100.0,
        description="Harvest a position when its loss is at least this percent of cost basis"
    )
    min_loss_usd: float = Field(
        default=2500.0,
        ge=0.0,
        description="Harvest a position when its dollar loss is at least this amount"
    )
    long_term_holding_days: int = Field(
        default=365,
        ge=1,
        le=3650,
        description="A lot held more than this many days is long-term"
    )


class AllocationConfig(BaseModel):
    """Sleeve target and ordering parameters."""

    total_weight_bps: int = Field(
        default=10000,
        description="Sum that model member weights must reach"
    )
    orphan_rank: int = Field(
        default=999,
        ge=1,
        description="Minimum rank given to held tickers not mapped to any sleeve"
    )
    dust_tolerance_usd: float = Field(
        default=0.01,
        ge=0.0,
        le=1.0,
        description="Value differences at or below this amount are treated as zero"
    )
    target_pct_tolerance: float = Field(
        default=1e-6,
        ge=0.0,
        le=0.01,
        description="Allowed rounding slack when checking that sleeve targets sum to 100%"
    )
    missing_price_fallback: float = Field(
        default=1.0,
        gt=0.0,
        description="Price used for an unheld sleeve member with no quoted price"
    )


class CashConfig(BaseModel):
    """Cash sleeve settings."""

    base_cash_ticker: str = Field(
        default="$$$",
        description="Ticker of broker-reported cash"
    )
    manual_cash_ticker: str = Field(
        default="MCASH",
        description="Ticker of user-entered cash"
    )
    include_manual_cash: bool = Field(
        default=True,
        description="Count manual cash as investable"
    )

    @field_validator("base_cash_ticker", "manual_cash_ticker")
    @classmethod
    def validate_ticker(cls, v: str) -> str:
        """Cash tickers must be non-empty."""
        if not v.strip():
            raise ValueError("Cash ticker must not be empty")
        return v.strip()


class OverinvestmentConfig(BaseModel):
    """Defaults applied when a request does not set overinvestment itself."""

    max_percent_ceiling: float = Field(
        default=100.0,
        ge=0.0,
        le=100.0,
        description="Largest overinvestment percent a request may ask for"
    )


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Root log level"
    )
    format: Literal["text", "json"] = Field(
        default="text",
        description="Log line format"
    )
    file_path: Optional[str] = Field(
        default=None,
        description="When set, also write logs to this file with daily rotation"
    )
    backup_count: int = Field(
        default=30,
        ge=1,
        le=365,
        description="Rotated log files kept"
    )

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v):
        """Accept lower-case level names."""
        return v.upper() if isinstance(v, str) else v


class RebalancerConfig(BaseModel):
    """Root rebalancer configuration."""

    harvest: HarvestConfig = Field(
        default_factory=HarvestConfig,
        description="Tax-loss harvesting thresholds"
    )
    allocation: AllocationConfig = Field(
        default_factory=AllocationConfig,
        description="Sleeve target and ordering parameters"
    )
    cash: CashConfig = Field(
        default_factory=CashConfig,
        description="Cash sleeve settings"
    )
    overinvestment: OverinvestmentConfig = Field(
        default_factory=OverinvestmentConfig,
        description="Overinvestment limits"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration"
    )
