from .base_source import SnapshotSource
from .blocking import (
    BlockingReason,
    RestrictedCandidate,
    SelfRestricted,
    RestrictedReplacements,
    InactiveReplacements,
    NoSleeveCandidates,
    MixedReplacements,
    format_blocking_reason,
)
from .models import (
    # Snapshot models
    Sleeve,
    SecurityEntry,
    SleeveDiagnostic,
    DiagnosticCode,
    Eligibility,
    Eligible,
    Restricted,
    Inactive,
    Legacy,
    WashSaleRestriction,
    ReplacementCandidate,
    Transaction,
    # Builder inputs
    Holding,
    ModelMember,
    SleeveDefinition,
    SleeveMemberDefinition,
    # Trade and result models
    Trade,
    RebalanceRequest,
    RebalanceResult,
    HoldingPost,
    SleeveSummary,
    CASH_SLEEVE_ID,
    ORPHAN_SLEEVE_ID,
    REBALANCE_METHODS,
    RebalanceMethod,
)
from .exceptions import (
    RebalanceError,
    RequestValidationError,
    InvariantViolationError,
)

__version__ = "1.0.0"

__all__ = [
    "SnapshotSource",
    "BlockingReason",
    "RestrictedCandidate",
    "SelfRestricted",
    "RestrictedReplacements",
    "InactiveReplacements",
    "NoSleeveCandidates",
    "MixedReplacements",
    "format_blocking_reason",
    "Sleeve",
    "SecurityEntry",
    "SleeveDiagnostic",
    "DiagnosticCode",
    "Eligibility",
    "Eligible",
    "Restricted",
    "Inactive",
    "Legacy",
    "WashSaleRestriction",
    "ReplacementCandidate",
    "Transaction",
    "Holding",
    "ModelMember",
    "SleeveDefinition",
    "SleeveMemberDefinition",
    "Trade",
    "RebalanceRequest",
    "RebalanceResult",
    "HoldingPost",
    "SleeveSummary",
    "CASH_SLEEVE_ID",
    "ORPHAN_SLEEVE_ID",
    "REBALANCE_METHODS",
    "RebalanceMethod",
    "RebalanceError",
    "RequestValidationError",
    "InvariantViolationError",
    "__version__",
]
