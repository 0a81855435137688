"""Tests for blocking reason rendering."""

from datetime import datetime, timezone

import pytest
from pydantic import TypeAdapter

from portfolio_snapshot import (
    BlockingReason,
    InactiveReplacements,
    MixedReplacements,
    NoSleeveCandidates,
    RestrictedCandidate,
    RestrictedReplacements,
    SelfRestricted,
    format_blocking_reason,
)

UNTIL = datetime(2024, 7, 1, tzinfo=timezone.utc)
SOLD = datetime(2024, 6, 1, tzinfo=timezone.utc)


def test_restricted_replacements_lists_each_ticker():
    reason = RestrictedReplacements(loss=-3000.0, loss_pct=6.0, blocked=[
        RestrictedCandidate(ticker="VOO", until=UNTIL, sold_at=SOLD, days_remaining=28),
        RestrictedCandidate(ticker="QQQ", until=UNTIL, days_remaining=28),
    ])

    assert format_blocking_reason(reason) == (
        "Unable to harvest $3,000.00 (6.00%) loss because of potential wash sales with all replacement securities:\n"
        "- VOO sold on 06/01/2024, blocked until 07/01/2024 (28 days left)\n"
        "- QQQ blocked until 07/01/2024 (28 days left)"
    )


def test_restriction_reason_shown_when_sale_date_unknown():
    reason = RestrictedReplacements(loss=-500.0, loss_pct=5.5, blocked=[
        RestrictedCandidate(ticker="IVV", until=UNTIL, reason="Tax loss harvested on 05/14/2024", days_remaining=9),
    ])

    assert format_blocking_reason(reason).endswith(
        "- IVV blocked until 07/01/2024 (9 days left): Tax loss harvested on 05/14/2024"
    )


@pytest.mark.parametrize("reason, expected", [
    (SelfRestricted(ticker="AAPL", until=UNTIL), "Wash sale restriction on AAPL until 07/01/2024"),
    (InactiveReplacements(tickers=["VOO", "IVV"]), "All replacement securities in this sleeve are inactive: VOO, IVV"),
    (NoSleeveCandidates(), "No replacement securities available in this sleeve"),
    (
        MixedReplacements(
            restricted=[RestrictedCandidate(ticker="VOO", until=UNTIL, days_remaining=3)], inactive=["OLD"]
        ),
        "No available replacement securities: VOO (restricted until 07/01/2024), OLD (inactive)",
    ),
])
def test_reason_text(reason, expected):
    assert format_blocking_reason(reason) == expected


def test_reasons_parse_by_kind():
    adapter = TypeAdapter(BlockingReason)

    parsed = adapter.validate_python({"kind": "inactive_replacements", "tickers": ["VOO"]})

    assert isinstance(parsed, InactiveReplacements)


def test_unknown_reason_rejected():
    with pytest.raises(TypeError):
        format_blocking_reason("not a reason")
