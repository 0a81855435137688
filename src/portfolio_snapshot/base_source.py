from abc import ABC, abstractmethod
from typing import List
from .models import (
    Holding,
    ModelMember,
    ReplacementCandidate,
    SleeveDefinition,
    Transaction,
    WashSaleRestriction,
)

class SnapshotSource(ABC):
    """Abstract base class for stores that supply a portfolio snapshot"""

    @abstractmethod
    async def get_holdings(self, portfolio_id: str) -> List[Holding]:
        """Get holdings with current prices across the portfolio's accounts"""
        pass

    @abstractmethod
    async def get_model_members(self, portfolio_id: str) -> List[ModelMember]:
        """Get the assigned model's sleeve weights in basis points"""
        pass

    @abstractmethod
    async def get_sleeve_definitions(self, portfolio_id: str) -> List[SleeveDefinition]:
        """Get ranked sleeve membership for the assigned model"""
        pass

    @abstractmethod
    async def get_wash_sale_restrictions(self, portfolio_id: str) -> List[WashSaleRestriction]:
        """Get wash-sale restrictions for the portfolio's tickers"""
        pass

    @abstractmethod
    async def get_transactions(self, portfolio_id: str) -> List[Transaction]:
        """Get transaction history for the portfolio's accounts"""
        pass

    async def get_replacement_candidates(self, portfolio_id: str) -> List[ReplacementCandidate]:
        """Get replacement seeds; empty means replacements come from sleeve ranks"""
        return []
