"""Pytest configuration and fixtures."""

import pytest

from rebalancer_config import RebalancerConfig
from tlh_engine import TradeCalculator


@pytest.fixture
def config():
    """Default configuration, independent of any loaded YAML."""
    return RebalancerConfig()


@pytest.fixture
def calculator(config):
    return TradeCalculator(config=config)


@pytest.fixture
def config_file(tmp_path):
    """Write a rebalancer.yaml and return its path."""
    def _write(content: str):
        path = tmp_path / "rebalancer.yaml"
        path.write_text(content)
        return path
    return _write
