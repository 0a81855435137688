"""Tests for replacement resolution and block classification."""

import pytest

from portfolio_snapshot import (
    Inactive,
    InactiveReplacements,
    Legacy,
    MixedReplacements,
    NoSleeveCandidates,
    ReplacementCandidate,
    RestrictedReplacements,
)
from tlh_engine import ReplacementResolver, WashSaleIndex, load_replacement_candidates

from factories import NOW, entry, restriction, sleeve


def resolver(restrictions=(), seeds=None):
    return ReplacementResolver(WashSaleIndex(list(restrictions), NOW), seeds)


class TestFindReplacement:
    def test_lowest_rank_eligible_member(self):
        tech = sleeve("tech", 1.0, [entry("QQQ", 3), entry("AAPL", 1), entry("VOO", 2)])

        assert resolver().find_replacement(tech, "AAPL").ticker == "VOO"

    def test_skips_inactive_legacy_and_restricted(self):
        tech = sleeve("tech", 1.0, [
            entry("AAPL", 1),
            entry("VOO", 2, eligibility=Inactive()),
            entry("IVV", 3, eligibility=Legacy()),
            entry("SPLG", 4),
            entry("QQQ", 5),
        ])

        found = resolver([restriction("SPLG", 3)]).find_replacement(tech, "AAPL")
        assert found.ticker == "QQQ"

    def test_none_when_sleeve_has_only_original(self):
        tech = sleeve("tech", 1.0, [entry("AAPL", 1)])

        assert resolver().find_replacement(tech, "AAPL") is None

    def test_excluded_tickers_skipped(self):
        tech = sleeve("tech", 1.0, [entry("AAPL", 1), entry("VOO", 2), entry("QQQ", 3)])

        assert resolver().find_replacement(tech, "AAPL", exclude={"VOO"}).ticker == "QQQ"

    def test_seed_order_applies_inside_sleeve_only(self):
        tech = sleeve("tech", 1.0, [entry("AAPL", 1), entry("VOO", 2), entry("QQQ", 3)])
        seeds = [
            ReplacementCandidate(original_ticker="AAPL", replacement_ticker="SPY", rank=1),
            ReplacementCandidate(original_ticker="AAPL", replacement_ticker="QQQ", rank=2),
        ]

        assert resolver(seeds=seeds).find_replacement(tech, "AAPL").ticker == "QQQ"


class TestClassifyBlock:
    def test_restricted_only(self):
        tech = sleeve("tech", 1.0, [entry("AAPL", 1), entry("VOO", 2), entry("QQQ", 3)])
        reason = resolver([restriction("VOO", 10, 20), restriction("QQQ", 4)]).classify_block(
            tech, "AAPL", loss=3000.0, loss_pct=6.0
        )

        assert isinstance(reason, RestrictedReplacements)
        assert [c.ticker for c in reason.blocked] == ["VOO", "QQQ"]
        assert [c.days_remaining for c in reason.blocked] == [10, 4]
        assert reason.loss == 3000.0

    def test_inactive_only_counts_legacy(self):
        tech = sleeve("tech", 1.0, [
            entry("AAPL", 1),
            entry("VOO", 2, eligibility=Inactive()),
            entry("IVV", 3, eligibility=Legacy()),
        ])
        reason = resolver().classify_block(tech, "AAPL")

        assert isinstance(reason, InactiveReplacements)
        assert reason.tickers == ["VOO", "IVV"]

    def test_only_original(self):
        reason = resolver().classify_block(sleeve("tech", 1.0, [entry("AAPL", 1)]), "AAPL")

        assert isinstance(reason, NoSleeveCandidates)

    def test_mixed(self):
        tech = sleeve("tech", 1.0, [entry("AAPL", 1), entry("VOO", 2), entry("OLD", 3, eligibility=Inactive())])
        reason = resolver([restriction("VOO", 7)]).classify_block(tech, "AAPL")

        assert isinstance(reason, MixedReplacements)
        assert [c.ticker for c in reason.restricted] == ["VOO"]
        assert reason.inactive == ["OLD"]


class TestLoadReplacementCandidates:
    def test_loads_ranked_seeds(self, tmp_path):
        path = tmp_path / "replacement-sets.yaml"
        path.write_text(
            "AAPL:\n"
            "  - ticker: VOO\n"
            "    rank: 2\n"
            "  - ticker: QQQ\n"
            "VTI:\n"
            "  - ticker: ITOT\n"
        )

        seeds = load_replacement_candidates(path)

        assert [(s.original_ticker, s.replacement_ticker, s.rank) for s in seeds] == [
            ("AAPL", "VOO", 2),
            ("AAPL", "QQQ", 2),
            ("VTI", "ITOT", 1),
        ]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_replacement_candidates(tmp_path / "missing.yaml")

    def test_malformed_entry(self, tmp_path):
        path = tmp_path / "replacement-sets.yaml"
        path.write_text("AAPL:\n  - rank: 1\n")

        with pytest.raises(ValueError):
            load_replacement_candidates(path)
