from typing import Optional

class RebalanceError(Exception):
    """Raised when a rebalance calculation fails"""

    def __init__(self, message: str, portfolio_id: Optional[str] = None):
        super().__init__(message)
        self.portfolio_id = portfolio_id

class RequestValidationError(ValueError):
    """Raised when a rebalance request or snapshot is malformed"""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

class InvariantViolationError(RebalanceError):
    """Raised when the engine detects an internal inconsistency"""
    pass
