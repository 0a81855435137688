"""Load rebalancer settings from YAML and hold the active configuration."""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import ValidationError

from .models import RebalancerConfig

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "REBALANCER_CONFIG"
DEFAULT_CONFIG_PATH = Path("config") / "rebalancer.yaml"

_config: Optional[RebalancerConfig] = None


def resolve_config_path(config_path: Optional[str | Path] = None) -> Path:
    """Explicit path, else $REBALANCER_CONFIG, else config/rebalancer.yaml."""
    if config_path is not None:
        return Path(config_path)
    return Path(os.environ.get(CONFIG_PATH_ENV, DEFAULT_CONFIG_PATH))


def parse_config(raw: Optional[Dict[str, Any]]) -> RebalancerConfig:
    """Validate a mapping of sections; a missing or empty document means all defaults."""
    if raw is None:
        return RebalancerConfig()
    if not isinstance(raw, dict):
        raise ValueError(f"Configuration must be a mapping of sections, got {type(raw).__name__}")
    try:
        return RebalancerConfig(**raw)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e


def load_config(config_path: Optional[str | Path] = None) -> RebalancerConfig:
    """
    Read, validate and activate a rebalancer.yaml.

    Raises:
        FileNotFoundError: If the resolved file doesn't exist
        ValueError: If a section fails validation
        yaml.YAMLError: If the file isn't valid YAML
    """
    global _config

    path = resolve_config_path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path, 'r') as f:
        document = yaml.safe_load(f)

    try:
        config = parse_config(document)
    except ValueError as e:
        logger.error(f"Rejected configuration {path}: {e}")
        raise

    harvest, cash = config.harvest, config.cash
    logger.info(f"Loaded configuration from {path}: harvest at {harvest.min_loss_percent}% "
                f"or ${harvest.min_loss_usd:,.2f}, long-term after {harvest.long_term_holding_days} days, "
                f"orphan rank {config.allocation.orphan_rank}, cash {cash.base_cash_ticker}/{cash.manual_cash_ticker}"
                f"{'' if cash.include_manual_cash else ' (manual cash excluded)'}, "
                f"overinvestment ceiling {config.overinvestment.max_percent_ceiling}%")

    _config = config
    return _config


def get_config() -> RebalancerConfig:
    """Active configuration; raises RuntimeError until load_config() has run."""
    if _config is None:
        raise RuntimeError("Configuration not loaded. Call load_config() first.")
    return _config
