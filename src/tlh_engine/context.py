"""
Run context management using ContextVar so log records carry the run being calculated.
"""

from contextvars import ContextVar
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RunContext:
    portfolio_id: str
    method: str


# Context variable holding the rebalance run currently being calculated
current_run: ContextVar[Optional[RunContext]] = ContextVar('current_run', default=None)


def set_current_run(run: RunContext) -> None:
    """Set the current run in the context."""
    current_run.set(run)


def get_current_run() -> Optional[RunContext]:
    """Get the current run from the context."""
    return current_run.get()


def clear_current_run() -> None:
    """Clear the current run from the context."""
    current_run.set(None)
