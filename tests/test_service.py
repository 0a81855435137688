"""Tests for loading a snapshot through a source and running a rebalance."""

import asyncio
from datetime import timedelta

import pytest

from portfolio_snapshot import (
    DiagnosticCode,
    RebalanceRequest,
    Holding,
    ModelMember,
    SleeveDefinition,
    SleeveMemberDefinition,
    SnapshotSource,
    WashSaleRestriction,
)
from tlh_engine import RebalanceService

from factories import NOW, request, summarize


class InMemorySource(SnapshotSource):
    def __init__(self, restrictions=None):
        self.restrictions = restrictions or []
        self.calls = []

    async def get_holdings(self, portfolio_id):
        self.calls.append(("holdings", portfolio_id))
        return [
            Holding(account_id="TAX-1", ticker="$$$", qty=1000, price=1.0, cost_basis=1000),
            Holding(account_id="TAX-1", ticker="AAPL", qty=10, price=100.0, cost_basis=1000, is_taxable=True),
            Holding(account_id="TAX-1", ticker="XYZ", qty=5, price=20.0, cost_basis=100, is_taxable=True),
        ]

    async def get_model_members(self, portfolio_id):
        return [ModelMember(sleeve_id="tech", target_weight_bps=10000, name="Tech")]

    async def get_sleeve_definitions(self, portfolio_id):
        return [SleeveDefinition(sleeve_id="tech", members=[
            SleeveMemberDefinition(ticker="AAPL", rank=1),
            SleeveMemberDefinition(ticker="MSFT", rank=2, price=50.0),
        ])]

    async def get_wash_sale_restrictions(self, portfolio_id):
        return self.restrictions

    async def get_transactions(self, portfolio_id):
        return []


@pytest.fixture
def service(config):
    return RebalanceService(config=config)


def test_rebalance_from_source(service):
    source = InMemorySource()

    result = asyncio.run(service.rebalance(source, request("allocation"), now=NOW))

    assert summarize(result.trades) == [("SELL", "XYZ", 5), ("BUY", "MSFT", 21)]
    assert source.calls == [("holdings", "P-1")]
    assert any(d.code == DiagnosticCode.BUY_BELOW_ONE_SHARE and d.ticker == "AAPL" for d in result.diagnostics)


def test_source_restrictions_applied(service):
    source = InMemorySource(restrictions=[
        WashSaleRestriction(ticker="MSFT", restricted_until=NOW + timedelta(days=10), reason="harvested"),
    ])

    result = asyncio.run(service.rebalance(source, request("allocation"), now=NOW))

    assert summarize(result.trades) == [("SELL", "XYZ", 5), ("BUY", "AAPL", 11)]


def test_concurrent_runs_for_one_portfolio(service):
    async def run_both():
        return await asyncio.gather(
            service.rebalance(InMemorySource(), RebalanceRequest(portfolio_id="P-2", method="allocation"), now=NOW),
            service.rebalance(InMemorySource(), RebalanceRequest(portfolio_id="P-2", method="investCash"), now=NOW),
        )

    allocation, invest = asyncio.run(run_both())

    assert allocation.method == "allocation"
    assert all(t.type == "BUY" for t in invest.trades)
