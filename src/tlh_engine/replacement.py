"""
Replacement resolution for harvested or blocked securities.

Substitutes always come from the same sleeve, so the replacement keeps the
economic exposure the sleeve stands for. Optional seed pairs loaded from
replacement-sets.yaml only reorder candidates inside the sleeve.
"""

import logging
import yaml
from collections import defaultdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Set

from portfolio_snapshot import (
    BlockingReason,
    InactiveReplacements,
    MixedReplacements,
    NoSleeveCandidates,
    ReplacementCandidate,
    Restricted,
    RestrictedCandidate,
    RestrictedReplacements,
    SecurityEntry,
    Sleeve,
)
from .wash_sale import WashSaleIndex

class ReplacementResolver:
    """Find the best-ranked eligible substitute for a ticker within its sleeve"""

    def __init__(self, wash_sale_index: WashSaleIndex,
                 replacement_candidates: Optional[Iterable[ReplacementCandidate]] = None,
                 logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.wash_sale_index = wash_sale_index
        self.seeds: Dict[str, List[ReplacementCandidate]] = defaultdict(list)
        for candidate in replacement_candidates or []:
            self.seeds[candidate.original_ticker].append(candidate)
        for seeds in self.seeds.values():
            seeds.sort(key=lambda c: (c.rank, c.replacement_ticker))

    def _restriction(self, entry: SecurityEntry) -> Optional[Restricted]:
        if isinstance(entry.eligibility, Restricted):
            return entry.eligibility
        return self.wash_sale_index.is_restricted(entry.ticker)

    def is_candidate(self, entry: SecurityEntry) -> bool:
        """Active, not legacy and not restricted at the run's instant"""
        return entry.is_eligible and self._restriction(entry) is None

    def find_replacement(self, sleeve: Sleeve, original_ticker: str,
                         exclude: Optional[Set[str]] = None) -> Optional[SecurityEntry]:
        exclude = exclude or set()
        candidates = [
            entry for entry in sleeve.ranked()
            if entry.ticker != original_ticker and entry.ticker not in exclude and self.is_candidate(entry)
        ]
        if not candidates:
            self.logger.debug(f"No replacement for {original_ticker} in sleeve {sleeve.display_name}")
            return None

        by_ticker = {entry.ticker: entry for entry in candidates}
        for seed in self.seeds.get(original_ticker, []):
            seeded = by_ticker.get(seed.replacement_ticker)
            if seeded is not None:
                self.logger.debug(f"Seeded replacement for {original_ticker}: {seeded.ticker}")
                return seeded

        return candidates[0]

    def classify_block(self, sleeve: Sleeve, original_ticker: str, loss: float = 0.0,
                       loss_pct: float = 0.0, exclude: Optional[Set[str]] = None) -> BlockingReason:
        """Structured reason why `find_replacement` found nothing"""
        exclude = exclude or set()
        others = [
            entry for entry in sleeve.ranked()
            if entry.ticker != original_ticker and entry.ticker not in exclude
        ]
        if not others:
            return NoSleeveCandidates()

        restricted: List[RestrictedCandidate] = []
        inactive: List[str] = []
        for entry in others:
            if self.is_candidate(entry):
                continue
            restriction = self._restriction(entry)
            if restriction is not None and entry.eligibility.kind in ('eligible', 'restricted'):
                restricted.append(RestrictedCandidate(
                    ticker=entry.ticker,
                    until=restriction.until,
                    sold_at=restriction.sold_at,
                    reason=restriction.reason,
                    days_remaining=self.wash_sale_index.days_remaining(restriction.until),
                ))
            else:
                inactive.append(entry.ticker)

        if not restricted and not inactive:
            return NoSleeveCandidates()
        if restricted and not inactive:
            return RestrictedReplacements(loss=loss, loss_pct=loss_pct, blocked=restricted)
        if inactive and not restricted:
            return InactiveReplacements(tickers=inactive)
        return MixedReplacements(restricted=restricted, inactive=inactive)

def load_replacement_candidates(path: str | Path) -> List[ReplacementCandidate]:
    """
    Load replacement seeds from YAML.

    Expected layout maps each original ticker to its ranked substitutes:

        AAPL:
          - ticker: VOO
            rank: 1

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If an entry is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Replacement sets file not found: {path}")

    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}

    candidates = []
    for original, replacements in data.items():
        for position, item in enumerate(replacements or [], start=1):
            try:
                candidates.append(ReplacementCandidate(
                    original_ticker=str(original),
                    replacement_ticker=item['ticker'],
                    rank=item.get('rank', position),
                ))
            except (KeyError, TypeError, AttributeError) as e:
                raise ValueError(f"Invalid replacement entry for {original}: {item!r}") from e
    return candidates
