from .calculator import TradeCalculator, execute_rebalance
from .context import RunContext, get_current_run
from .logger import StructuredFormatter, configure_root_logger
from .models import MethodResult, RunInputs
from .reconciler import CashLedger
from .replacement import ReplacementResolver, load_replacement_candidates
from .service import RebalanceService
from .strategies import (
    AllocationStrategy,
    InvestCashStrategy,
    RebalanceStrategy,
    TlhRebalanceStrategy,
    TlhSwapStrategy,
    get_strategy,
)
from .targets import build_sleeves, prepare_sleeves, redistribute_targets
from .wash_sale import WashSaleIndex
from portfolio_snapshot import RebalanceRequest, RebalanceResult, Trade

__version__ = "1.0.0"

__all__ = [
    "TradeCalculator",
    "execute_rebalance",
    "RunContext",
    "get_current_run",
    "StructuredFormatter",
    "configure_root_logger",
    "MethodResult",
    "RunInputs",
    "CashLedger",
    "ReplacementResolver",
    "load_replacement_candidates",
    "RebalanceService",
    "RebalanceStrategy",
    "AllocationStrategy",
    "TlhSwapStrategy",
    "TlhRebalanceStrategy",
    "InvestCashStrategy",
    "get_strategy",
    "build_sleeves",
    "prepare_sleeves",
    "redistribute_targets",
    "WashSaleIndex",
    "RebalanceRequest",
    "RebalanceResult",
    "Trade",
    "__version__",
]
