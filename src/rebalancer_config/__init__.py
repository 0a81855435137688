"""Configuration management for the sleeve rebalancer."""

from .models import (
    RebalancerConfig,
    HarvestConfig,
    AllocationConfig,
    CashConfig,
    OverinvestmentConfig,
    LoggingConfig,
)
from .loader import load_config, get_config, parse_config, resolve_config_path

__all__ = [
    "RebalancerConfig",
    "HarvestConfig",
    "AllocationConfig",
    "CashConfig",
    "OverinvestmentConfig",
    "LoggingConfig",
    "load_config",
    "get_config",
    "parse_config",
    "resolve_config_path",
]
